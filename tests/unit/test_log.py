import logging

from rich.logging import RichHandler

import toolstash.log as log_module
from toolstash.log import configure_logging, resolve_level


def test_resolve_level_variants():
    assert resolve_level(None) == logging.WARNING
    assert resolve_level("") == logging.WARNING
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level("15") == 15
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("nonsense") == logging.WARNING


def test_configure_logging_installs_single_rich_handler(monkeypatch):
    monkeypatch.setattr(log_module, "_configured", False)
    logger = logging.getLogger("toolstash")
    original_level = logger.level
    original_handlers = list(logger.handlers)
    try:
        configure_logging("INFO")
        configure_logging("DEBUG")
        assert logger.level == logging.INFO
        configure_logging("DEBUG", force=True)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
    finally:
        logger.handlers[:] = original_handlers
        logger.setLevel(original_level)


def test_level_from_environment(monkeypatch):
    monkeypatch.setattr(log_module, "_configured", False)
    monkeypatch.setenv("TOOLSTASH_LOG_LEVEL", "error")
    logger = logging.getLogger("toolstash")
    original_level = logger.level
    original_handlers = list(logger.handlers)
    try:
        configure_logging()
        assert logger.level == logging.ERROR
    finally:
        logger.handlers[:] = original_handlers
        logger.setLevel(original_level)
