"""Configuration package."""

from .settings import settings, Settings, BASE_DIR
from .logging_config import get_logger, setup_logging

__all__ = ["settings", "Settings", "BASE_DIR", "get_logger", "setup_logging"]
