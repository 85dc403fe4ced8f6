"""
Storage plumbing: declarative base, pooled SQLite backend, async runner.
"""

from .base import Base, generate_uuid, utc_now, normalize_text, compute_hash
from .protocol import StorageBackend
from .sqlite_backend import SQLiteBackend
from .config import get_db_backend
from .runner import run_storage_call, retry_with_backoff, current_cancel_event

__all__ = [
    "Base",
    "generate_uuid",
    "utc_now",
    "normalize_text",
    "compute_hash",
    "StorageBackend",
    "SQLiteBackend",
    "get_db_backend",
    "run_storage_call",
    "retry_with_backoff",
    "current_cancel_event",
]
