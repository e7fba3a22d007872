"""
Opt-in log output for applications and scripts using das_recon.

The package itself only carries a NullHandler; ``enable_logging`` attaches
stream/file handlers to the ``das_recon`` logger and ``disable_logging``
removes exactly those again.
"""

import logging
import sys
from typing import List, Optional, Union

PACKAGE_LOGGER = "das_recon"
_HANDLER_NAME = "das_recon.output"

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level {level!r}")
        return resolved
    return int(level)


def _installed_handlers(logger: logging.Logger) -> List[logging.Handler]:
    return [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]


def enable_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    stream=None,
) -> logging.Logger:
    """
    Send das_recon log records to a stream and, optionally, a file.

    Calling it again replaces the handlers of the previous call; handlers
    added by the application are left alone.

    Parameters:
    -----------
    level : int or str
        Level for the package logger, e.g. ``logging.DEBUG`` or ``"debug"``
    log_file : str, optional
        Also append records to this file
    stream : file-like, optional
        Defaults to ``sys.stderr`` so benchmark reports on stdout stay clean
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    disable_logging()
    logger.setLevel(_resolve_level(level))

    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def disable_logging() -> None:
    """Remove the handlers installed by :func:`enable_logging`."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _installed_handlers(logger):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
