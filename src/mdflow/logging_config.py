"""Logging setup for the mdflow package logger."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "mdflow"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _level_number(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _handlers(log_file: Optional[Union[str, Path]]) -> list[logging.Handler]:
    # stdout carries converted documents, so the console handler uses stderr
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    format_string: Optional[str] = None,
    force: bool = False,
) -> logging.Logger:
    """
    Configure the "mdflow" logger.

    Handlers are installed once. Later calls only change the level unless
    force is set, in which case existing handlers are closed and replaced.
    Unknown level names fall back to INFO.

    Args:
        level: Level name such as "DEBUG" or "warning"
        log_file: File that receives a copy of every record
        format_string: Format for both handlers
        force: Replace handlers from an earlier call

    Returns:
        The package logger
    """
    numeric_level = _level_number(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.propagate = False

    if logger.handlers and not force:
        for handler in logger.handlers:
            handler.setLevel(numeric_level)
        return logger

    while logger.handlers:
        stale = logger.handlers[0]
        logger.removeHandler(stale)
        stale.close()

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    for handler in _handlers(log_file):
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
