import logging

from starrocks_profile_analyzer.core.config import config
from starrocks_profile_analyzer.core.logging import get_logger


def test_get_logger_attaches_one_handler():
    first = get_logger("starrocks_profile_analyzer.tests.once")
    second = get_logger("starrocks_profile_analyzer.tests.once")

    assert first is second
    assert len(first.handlers) == 1
    assert isinstance(first.handlers[0], logging.StreamHandler)


def test_get_logger_uses_configured_level():
    logger = get_logger("starrocks_profile_analyzer.tests.level")

    assert logger.level == logging.getLevelName(config.LOG_LEVEL)
