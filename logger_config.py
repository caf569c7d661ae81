"""Centralized logging configuration for the AxleNote service.

Each component (api, worker, notifier, crud) writes its own rotating file
under LOG_DIR and echoes to the console. Level, directory and rotation
come from config.settings.
"""

import logging
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

from config import settings

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))

# Third-party loggers kept at WARNING so a sweep log stays readable
QUIET_LOGGERS = ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'httpcore')


def resolve_log_dir(log_dir: Optional[str] = None) -> str:
    """Absolute log directory, created if missing."""
    path = log_dir or settings.LOG_DIR
    if not os.path.isabs(path):
        path = os.path.join(PROJECT_ROOT, path)
    os.makedirs(path, exist_ok=True)
    return path


def resolve_log_level(level: Optional[str] = None) -> int:
    """Map a level name from settings to a logging constant (INFO if unknown)."""
    value = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logger(
    name: str,
    log_file: str = 'service.log',
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """Setup a component logger with rotation.

    Args:
        name: Logger name (usually __name__)
        log_file: Log file name (e.g., 'worker.log', 'api.log')
        log_dir: Override for settings.LOG_DIR
        level: Override for settings.LOG_LEVEL

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    log_level = resolve_log_level(level)
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = RotatingFileHandler(
        os.path.join(resolve_log_dir(log_dir), log_file),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    console_handler = logging.StreamHandler()

    for handler in (file_handler, console_handler):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_root_logger():
    """Reduce third-party library noise."""
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# Auto-configure on import
configure_root_logger()
