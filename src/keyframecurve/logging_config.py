"""
Logging Configuration
Sets up the package logger for the editor and its Qt host.
"""
import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "keyframecurve"
LEVEL_ENV_VAR = "KEYFRAMECURVE_LOG_LEVEL"

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
_DATE_FORMAT = '%H:%M:%S'


def level_from_env(default: int = logging.INFO) -> int:
    """
    Read the log level name from the environment (e.g. ``DEBUG``).

    Unknown names fall back to `default`.
    """
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def setup_logging(level: Optional[int] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the logger for the 'keyframecurve' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG). Read from the environment when None.
        log_file: Optional path to save logs to a file.

    Returns:
        The configured package logger.
    """
    if level is None:
        level = level_from_env()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate records when the host window is recreated
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug(f"Logging initialized at level {logging.getLevelName(level)}.")
    return logger
