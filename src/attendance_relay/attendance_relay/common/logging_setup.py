"""Logging configuration for the relay service.

A console handler is always installed; the file handler is best effort so a
missing or read-only log directory never prevents the service from starting.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ROOT_LOGGER_NAME = "attendance_relay"
ATTENDANCE_LOGGER_NAME = "attendance_relay.attendance"


def default_log_path(log_dir: str = "logs") -> Path:
    return Path(log_dir) / f"attendance_relay_{datetime.now():%Y%m%d}.log"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    append: bool = True,
) -> Optional[Path]:
    """Install console and file handlers on the package logger.

    Returns the log file path when file logging is active, otherwise None.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    # Clear existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    logger.addHandler(console_handler)

    path = Path(log_file) if log_file else default_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a" if append else "w", encoding="utf-8")
    except OSError as e:
        logger.warning("File logging disabled, could not open %s: %s", path, e)
        return None

    file_handler.setFormatter(formatter)
    file_handler.setLevel(log_level)
    logger.addHandler(file_handler)
    logger.info("File logger initialized (%s)", "appending" if append else "new session")
    return path


def flush_logging() -> None:
    for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler.flush()
