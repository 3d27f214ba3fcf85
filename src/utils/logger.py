"""Centralized logging setup for the extraction and rendering services.

All modules log through named loggers obtained from :func:`get_logger`;
the root handler is installed once by :func:`setup_logging`.
"""

import logging
import sys

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at DEBUG/INFO.
_NOISY_LOGGERS = ("PIL", "multipart", "asyncio")


def setup_logging(level: str = "INFO") -> None:
    """Install a stdout handler on the root logger.

    Calling this more than once is a no-op once a handler exists.

    Args:
        level: Logging level name. Unknown names fall back to INFO.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
