"""
Database configuration: reads the backend type from settings
and returns the appropriate StorageBackend instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .protocol import StorageBackend
from .sqlite_backend import SQLiteBackend


def get_db_backend(
    db_name: Optional[str] = None,
    db_dir: Optional[Path] = None,
) -> StorageBackend:
    """
    Factory: return a StorageBackend for the given database name.

    Args:
        db_name: logical name; for SQLite this becomes ``<db_dir>/<db_name>.db``.
                 Defaults to settings.database_name.
        db_dir:  directory for database files.  Defaults to settings.database_dir.

    Returns:
        A StorageBackend instance (currently always SQLiteBackend).
    """
    from tmcore.config.settings import settings

    backend_type = settings.database_backend
    db_name = db_name or settings.database_name
    db_dir = db_dir or settings.database_dir

    if backend_type == "sqlite":
        return SQLiteBackend(
            Path(db_dir) / f"{db_name}.db",
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            busy_timeout=settings.sqlite_busy_timeout,
            echo=settings.database_echo,
        )

    raise ValueError(f"Unsupported database backend: {backend_type}")
