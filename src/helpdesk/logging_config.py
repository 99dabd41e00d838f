"""
Logging configuration for the Helpdesk Knowledge Agent.

Provides centralized logging with both console and file output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

# Default log directory
LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "helpdesk.log"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Package logger; module loggers created with getLogger(__name__) inherit from it
ROOT_LOGGER_NAME = __name__.rpartition(".")[0] or "helpdesk"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure logging for the agent.

    Args:
        level: Logging level (default: INFO).
        log_file: Optional path to log file (default: logs/helpdesk.log).
        console: Whether to log to stderr (default: True).

    Returns:
        Root logger of the agent.
    """
    log_path = log_file or LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (prefixed with the package logger name).

    Returns:
        Logger instance.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# Minimal console logging until setup_logging() is called
_root_logger = logging.getLogger(ROOT_LOGGER_NAME)
if not _root_logger.handlers:
    _root_logger.setLevel(logging.INFO)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    _root_logger.addHandler(_handler)
