"""
Debug logging setup.

The status line owns stdout, so diagnostics go to a file and only in debug mode.
"""

import logging

from .loader import StatuslineConfig

LOGGER_NAME = "agent_statusline"
LOG_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_debug_logging(config: StatuslineConfig) -> logging.Logger:
    """Attach a file handler to the package logger when debug is enabled.

    Safe to call more than once; previously attached handlers are replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.propagate = False
    if not config.debug:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.WARNING)
        return logger

    try:
        handler = logging.FileHandler(config.debug_log_path, encoding="utf-8")
    except OSError:
        logger.addHandler(logging.NullHandler())
        return logger

    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return logger
