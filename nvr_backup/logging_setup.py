"""
Logging configuration.

One named logger is configured at process start and handed to the
components that log. Records carry their key facts in the message and in
extra={...}.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(level: str = "info", name: str = "nvr_backup") -> logging.Logger:
    """
    Configure and return the application logger.

    Called once at process start. The level is fixed from then on and the
    returned logger is passed to the components that log.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_LEVELS.get(level.lower(), logging.INFO))
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
