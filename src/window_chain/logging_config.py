"""Logging setup for applications embedding Window Chain."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import LoggingConfig

logger = logging.getLogger(__name__)


def setup_logging(log_config: Optional[LoggingConfig] = None,
                  root: Optional[logging.Logger] = None) -> logging.Logger:
    """Configure handlers for the ``window_chain`` logger tree.

    Args:
        log_config: Logging configuration, defaults to ``LoggingConfig()``
        root: Logger to configure, defaults to the package logger

    Returns:
        The configured logger
    """
    log_config = log_config or LoggingConfig()
    target = root or logging.getLogger("window_chain")
    target.setLevel(getattr(logging, log_config.level.upper(), logging.INFO))

    # Drop handlers from a previous call
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    target.addHandler(console_handler)

    if log_config.file_path:
        log_file = Path(log_config.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_config.file_path,
            maxBytes=log_config.max_file_size,
            backupCount=log_config.backup_count
        )
        file_handler.setFormatter(formatter)
        target.addHandler(file_handler)

    # Keep asyncio debug chatter out of application logs
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={log_config.level}, file={log_config.file_path}")
    return target
