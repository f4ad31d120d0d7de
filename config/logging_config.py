"""
Centralized logging configuration.

Handlers live on the 'revisions' logger only; module loggers are its
children and propagate to it, so the log file is opened once per process.
"""
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

from .constants import (
    LOG_LEVEL, LOG_FORMAT, LOG_FILE,
    LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT
)

ROOT_LOGGER_NAME = 'revisions'


def setup_logger(
    level: Optional[str] = None,
    log_file: Optional[str] = LOG_FILE,
) -> logging.Logger:
    """
    Configure the 'revisions' logger: console at INFO, rotating file at DEBUG.

    Level comes from the argument, then REVISIONS_LOG_LEVEL, then LOG_LEVEL.
    Pass log_file=None to log to the console only. Calling again is a no-op.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    level_name = (level or os.environ.get("REVISIONS_LOG_LEVEL") or LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=LOG_BACKUP_COUNT,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Usage:
        from config.logging_config import get_logger
        logger = get_logger(__name__)
    """
    setup_logger()
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# Usage: from config.logging_config import logger
logger = get_logger()
