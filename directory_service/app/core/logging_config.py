"""
Logging configuration for the directory.

``setup_logging`` attaches handlers to the ``directory_service`` package
logger rather than the root logger, so an embedding application (or
uvicorn) keeps control of its own loggers.  Console output is short;
the optional log file also records the thread, since store operations
may run concurrently on worker threads.  Logging is set up exactly once
per process.
"""

import logging
from pathlib import Path
from typing import Optional

LOGGER_NAME = "directory_service"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s (%(threadName)s): %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> logging.Logger:
    """Configure and return the directory's package logger.

    Parameters
    ----------
    level : str
        Logging level name (e.g. ``"DEBUG"``, ``"INFO"``).  Case
        insensitive; unknown names fall back to ``INFO``.
    logfile : Optional[str]
        Path to a file to log messages to.  Missing parent directories
        are created.  If omitted, no file handler is added.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        # Already configured (tests, or ``create_app`` called repeatedly).
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if logfile:
        log_path = Path(logfile).expanduser().resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)
    return logger
