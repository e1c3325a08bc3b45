"""Tools for formatting stackcraft logs."""
import logging
from functools import lru_cache

from stackcraft.utils.strings import truncate

MAX_THREAD_NAME_LEN = 12
MAX_NAME_LEN = 26

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(sc_level)5s --- [%(sc_thread){MAX_THREAD_NAME_LEN}s] %(sc_name)-{MAX_NAME_LEN}s : %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

CUSTOM_LEVEL_NAMES = {
    50: "FATAL",
    40: "ERROR",
    30: "WARN",
    20: "INFO",
    10: "DEBUG",
}


class DefaultFormatter(logging.Formatter):
    """
    A formatter that uses ``LOG_FORMAT`` and ``LOG_DATE_FORMAT``.
    """

    def __init__(self, fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT):
        super(DefaultFormatter, self).__init__(fmt=fmt, datefmt=datefmt)


class AddFormattedAttributes(logging.Filter):
    """
    Filter that adds three attributes to a log record:

    - sc_level: the abbreviated loglevel that's max 5 characters long
    - sc_name: the abbreviated name of the logger (e.g., `s.cloudformation.waiter`), trimmed to ``MAX_NAME_LEN``
    - sc_thread: the abbreviated thread name (prefix trimmed, .e.g, ``omeThread-108``)
    """

    max_name_len: int
    max_thread_len: int

    def __init__(self, max_name_len: int = None, max_thread_len: int = None):
        super(AddFormattedAttributes, self).__init__()
        self.max_name_len = max_name_len if max_name_len else MAX_NAME_LEN
        self.max_thread_len = max_thread_len if max_thread_len else MAX_THREAD_NAME_LEN

    def filter(self, record):
        record.sc_level = CUSTOM_LEVEL_NAMES.get(record.levelno, record.levelname)
        record.sc_name = self._get_compressed_logger_name(record.name)
        record.sc_thread = record.threadName[-self.max_thread_len :]
        return True

    @lru_cache(maxsize=256)
    def _get_compressed_logger_name(self, name):
        return compress_logger_name(name, self.max_name_len)


def compress_logger_name(name: str, length: int) -> str:
    """
    Creates a short version of a logger name. For example ``my.very.long.logger.name`` with length=17 turns into
    ``m.v.l.logger.name``.

    :param name: the logger name
    :param length: the max length of the logger name
    :return: the compressed name
    """
    if len(name) <= length:
        return name

    parts = name.split(".")
    parts.reverse()

    new_parts = []

    # we start by assuming that all parts are collapsed
    # x.x.x requires 5 = 2n - 1 characters
    cur_length = (len(parts) * 2) - 1

    for i in range(len(parts)):
        # try to expand the current part and calculate the resulting length
        part = parts[i]
        next_len = cur_length + (len(part) - 1)

        if next_len > length:
            # if the resulting length would exceed the limit, add only the first letter of the parts of all remaining
            # parts
            new_parts += [p[0] for p in parts[i:]]

            # but if this is the first item, that means we would display nothing, so at least display as much of the
            # max length as possible
            if i == 0:
                remaining = length - cur_length
                if remaining > 0:
                    new_parts[0] = part[: (remaining + 1)]

            break

        # expanding the current part, i.e., instead of using just the one character, we add the entire part
        new_parts.append(part)
        cur_length = next_len

    new_parts.reverse()
    return ".".join(new_parts)


class RequestTraceFormatter(logging.Formatter):
    """
    Formatter for the ``stackcraft.request`` logger, which the signing HTTP client uses to trace every API call. The
    record is expected to carry ``method``, ``url``, ``status_code``, ``request_body`` and ``response_body`` extras.
    Bodies are truncated, the ``Authorization`` header is never part of the record.
    """

    request_trace_format = (
        LOG_FORMAT + "; %(method)s %(url)s => %(status_code)s; request=%(request_body)s; response=%(response_body)s"
    )
    body_display_threshold = 512

    def __init__(self):
        super().__init__(fmt=self.request_trace_format, datefmt=LOG_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        for attr in ("method", "url", "status_code"):
            if not hasattr(record, attr):
                setattr(record, attr, "-")
        record.request_body = self._shorten(getattr(record, "request_body", None))
        record.response_body = self._shorten(getattr(record, "response_body", None))
        return super().format(record=record)

    def _shorten(self, body) -> str:
        if body is None:
            return "-"
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        return truncate(body, self.body_display_threshold)
