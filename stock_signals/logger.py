import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from . import settings

CONSOLE_FORMAT = "%(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILENAME = "signals.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3


def _attach(logger: logging.Logger, handler: logging.Handler, fmt: str, level: int):
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)


def setup_logger(
    name: Optional[str] = None,
    log_level: Optional[int] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configures `name` (the root logger by default) once: bare messages on
    stdout, timestamped records in a rotating file under LOG_DIR.
    """
    level = log_level if log_level is not None else settings.LOG_LEVEL
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.hasHandlers():
        return logger

    _attach(logger, logging.StreamHandler(sys.stdout), CONSOLE_FORMAT, level)

    directory = log_dir or settings.LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    rotating = RotatingFileHandler(
        directory / LOG_FILENAME,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    _attach(logger, rotating, FILE_FORMAT, level)

    return logger
