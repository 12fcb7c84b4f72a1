import logging

from starrocks_profile_analyzer.core.config import config


def get_logger(name: str) -> logging.Logger:
    """Return a logger with a single stream handler at the configured level."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(config.LOG_LEVEL)
        handler = logging.StreamHandler()
        handler.setLevel(config.LOG_LEVEL)
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    return logger
