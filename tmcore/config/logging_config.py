"""
Logging configuration.

Usage:
    from tmcore.config.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Imported 12 terms")
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """
    Configure the ``tmcore`` logger hierarchy.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        log_file: Optional file path; a rotating handler is added when given.
        force: Reconfigure even if logging was already set up.
    """
    global _configured
    if _configured and not force:
        return

    from .settings import settings

    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    root = logging.getLogger("tmcore")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Keep records inside our handlers
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger (configures the package logger on first call)."""
    setup_logging()
    return logging.getLogger(name)
