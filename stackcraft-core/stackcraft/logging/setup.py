import logging
import sys
import warnings

from stackcraft import config

from .format import AddFormattedAttributes, DefaultFormatter, RequestTraceFormatter

# The log levels for modules are evaluated incrementally for logging granularity,
# from highest (DEBUG) to lowest (TRACE). Hence, each module below should have
# higher level which serves as the default.

default_log_levels = {
    "requests": logging.WARNING,
    "urllib3": logging.WARNING,
    "werkzeug": logging.WARNING,
    "stackcraft.request": logging.WARNING,
}

trace_log_levels = {
    "stackcraft.request": logging.DEBUG,
    "urllib3": logging.DEBUG,
}


def get_log_level_from_config():
    # overriding the log level if STACKCRAFT_LOG has been set
    if config.STACKCRAFT_LOG:
        log_level = str(config.STACKCRAFT_LOG).upper()
        if log_level.lower() in config.TRACE_LOG_LEVELS:
            log_level = "DEBUG"
        if log_level == "WARN":
            log_level = "WARNING"
        return logging.getLevelName(log_level)

    return logging.DEBUG if config.DEBUG else logging.INFO


def setup_logging_from_config():
    log_level = get_log_level_from_config()
    setup_logging(log_level)

    if config.is_trace_logging_enabled():
        for name, level in trace_log_levels.items():
            logging.getLogger(name).setLevel(level)
        setup_request_trace_logger(log_level)


def create_default_handler(log_level: int):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(DefaultFormatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging(log_level=logging.INFO) -> None:
    """
    Configures the python logging environment for stackcraft.

    :param log_level: the optional log level.
    """
    # set create a default handler for the root logger (basically logging.basicConfig but explicit)
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler], force=True)

    # disable some logs and warnings
    warnings.filterwarnings("ignore")
    logging.captureWarnings(True)

    # set log levels of loggers
    logging.root.setLevel(log_level)
    logging.getLogger("stackcraft").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)


def setup_request_trace_logger(log_level=logging.DEBUG) -> None:
    """
    Gives the ``stackcraft.request`` logger its own handler with the ``RequestTraceFormatter``, so every signed API
    call is printed together with its (truncated) payloads.

    :param log_level: the log level of the trace handler
    """
    logger = logging.getLogger("stackcraft.request")
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(log_level)
    handler.addFilter(AddFormattedAttributes())
    handler.setFormatter(RequestTraceFormatter())
    logger.handlers = [handler]
    logger.propagate = False
