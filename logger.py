"""Logging configuration for NutriQuest."""

import logging
import sys
from datetime import datetime
from pathlib import Path

from config import LOG_DIR, LOG_LEVEL


def setup_logging() -> logging.Logger:
    """Set up logging to the console and, when LOG_DIR is set, a dated file."""
    logger = logging.getLogger("nutriquest")
    logger.setLevel(LOG_LEVEL)

    # Clear any existing handlers
    logger.handlers.clear()

    if LOG_DIR:
        log_dir = Path(LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{datetime.now().strftime('%Y-%m-%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    if sys.stdout is not None:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        logger.addHandler(console_handler)

    return logger


# Global logger instance
logger = setup_logging()
