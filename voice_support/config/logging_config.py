"""
Logging setup for the voice support server.

Every module logs through the ``voice_support`` logger. It writes to stdout
and, unless disabled, to a rotating file under the log directory. Client
libraries that log every frame or request are capped at WARNING so audio
streaming does not flood the output.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from voice_support.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Log file configuration
DEFAULT_LOG_DIR = "logs"
LOG_FILENAME = "voice_support.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

QUIET_LOGGERS = ("websockets", "httpx", "httpcore")


def _file_handler(log_dir: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the application logger with console and file handlers.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_dir: Directory for the rotating log file. Defaults to the LOG_DIR
            environment variable, then ``logs``. An empty string disables
            file logging.

    Returns:
        logging.Logger: The configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is None:
        log_dir = os.getenv("LOG_DIR", DEFAULT_LOG_DIR)
    if log_dir:
        try:
            logger.addHandler(_file_handler(Path(log_dir), formatter))
        except OSError as e:
            logger.warning(f"Could not set up file logging in {log_dir}: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Prevent log propagation to root logger
    logger.propagate = False

    logger.debug(f"Logging configured at {logging.getLevelName(logger.level)}")
    return logger
