import logging

import pytest

from stackcraft import config
from stackcraft.logging.format import AddFormattedAttributes, DefaultFormatter, RequestTraceFormatter
from stackcraft.logging.setup import setup_logging_from_config


@pytest.fixture
def restore_logging():
    """Restores the handlers and levels touched by the logging setup."""
    names = ["stackcraft", "stackcraft.request", "urllib3", "requests", "werkzeug"]
    root_handlers = list(logging.root.handlers)
    root_level = logging.root.level
    levels = {name: logging.getLogger(name).level for name in names}
    request_logger = logging.getLogger("stackcraft.request")
    request_handlers = list(request_logger.handlers)
    request_propagate = request_logger.propagate

    yield

    logging.captureWarnings(False)
    logging.root.handlers = root_handlers
    logging.root.setLevel(root_level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
    request_logger.handlers = request_handlers
    request_logger.propagate = request_propagate


def test_setup_logging(monkeypatch, restore_logging):
    monkeypatch.setattr(config, "STACKCRAFT_LOG", False)
    monkeypatch.setattr(config, "DEBUG", False)

    setup_logging_from_config()

    assert logging.getLogger("stackcraft").level == logging.INFO
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("stackcraft.request").level == logging.WARNING
    handler = logging.root.handlers[0]
    assert isinstance(handler.formatter, DefaultFormatter)
    assert any(isinstance(f, AddFormattedAttributes) for f in handler.filters)


def test_setup_trace_logging(monkeypatch, restore_logging):
    monkeypatch.setattr(config, "STACKCRAFT_LOG", "trace")

    setup_logging_from_config()

    assert logging.getLogger("stackcraft").level == logging.DEBUG
    request_logger = logging.getLogger("stackcraft.request")
    assert request_logger.level == logging.DEBUG
    assert not request_logger.propagate
    assert isinstance(request_logger.handlers[0].formatter, RequestTraceFormatter)
