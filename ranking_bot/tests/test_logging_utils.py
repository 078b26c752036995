import logging

from ranking_bot.core.logging_utils import configure_library_logging, get_logger


def test_configure_library_logging_sets_handlers():
    logger = configure_library_logging(level=logging.DEBUG)
    assert logger.name == "ranking_bot"
    assert logger.level == logging.DEBUG
    assert logger.handlers
    assert logger.propagate is False


def test_configure_accepts_level_names():
    logger = configure_library_logging(level="warning")
    assert logger.level == logging.WARNING
    logger = configure_library_logging(level="nonsense")
    assert logger.level == logging.INFO


def test_get_logger_returns_child():
    parent = configure_library_logging()
    child = get_logger("tests")
    assert child.name == "ranking_bot.tests"
    assert child.parent is parent
