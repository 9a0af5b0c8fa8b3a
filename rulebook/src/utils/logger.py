"""
Rulebook - Logging
===================
All Rulebook loggers hang under one ``rulebook`` parent logger.  The
parent owns the only handler (stdout, pipe-separated format); module
loggers carry no handlers and propagate to it, so a record is printed
once whichever module emits it.

Level follows ``ENV``: ``dev`` logs DEBUG and up, ``prod`` WARNING and up.

Usage:
    from rulebook.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[INGEST] %d chunk(s) stored.", n)
"""

import logging
import sys

from rulebook.config.settings import runtime_mode

ROOT_LOGGER_NAME = "rulebook"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_BY_MODE = {"dev": logging.DEBUG, "prod": logging.WARNING}


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(_LEVEL_BY_MODE.get(runtime_mode(), logging.INFO))
        root.propagate = False
    return root


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger for *name*, nested under ``rulebook``.

    Args:
        name:  Usually ``__name__``; names outside the package are
               prefixed with ``rulebook.``.
        level: Optional per-logger override; otherwise inherited.
    """
    root = _root_logger()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name) if name != ROOT_LOGGER_NAME else root
    if level is not None:
        logger.setLevel(level)
    return logger
