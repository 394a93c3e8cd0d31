"""
pageready/utils/logger.py

Logger factory shared by every module in the package.
"""

import logging

from pageready.config import Config

_PACKAGE_LOGGER_NAME = "pageready"
_configured = False


def _configure_package_logger() -> None:
    """Attach a single stream handler to the package root logger."""
    global _configured
    if _configured:
        return

    package_logger = logging.getLogger(_PACKAGE_LOGGER_NAME)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=Config.LOG_FORMAT, datefmt=Config.LOG_DATE_FORMAT))
        package_logger.addHandler(handler)
    package_logger.setLevel(Config.LOG_LEVEL)
    package_logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger configured with the package format and level.
    Args:
        name: Logger name, usually `__name__` of the calling module.
    Returns:
        The configured logger.
    """
    _configure_package_logger()
    return logging.getLogger(name)
