"""
SQLite implementation of StorageBackend.

One SQLAlchemy engine per database file with a bounded QueuePool. Sessions
are checked out per call, committed on success, rolled back on error and
returned to the pool on exit.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from tmcore.exceptions import OperationCancelledError, TransientStorageError
from .base import Base, import_models
from .runner import current_cancel_event

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = ("database is locked", "database is busy", "unable to open database")


def is_transient(exc: OperationalError) -> bool:
    """Whether an OperationalError is lock contention rather than a real fault."""
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class SQLiteBackend:
    """
    SQLite StorageBackend implementation.

    Tables for every engine model are created on first engine access.
    """

    def __init__(
        self,
        db_path: str | Path,
        pool_size: int = 5,
        max_overflow: int = 5,
        pool_timeout: float = 5.0,
        busy_timeout: float = 5.0,
        echo: bool = False,
    ):
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.busy_timeout = busy_timeout
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._init_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            with self._init_lock:
                if self._engine is None:
                    self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=self.echo,
            poolclass=QueuePool,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=self.pool_timeout,
            connect_args={"check_same_thread": False, "timeout": self.busy_timeout},
        )

        @event.listens_for(engine, "connect")
        def _set_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        import_models()
        Base.metadata.create_all(engine)
        logger.info(f"Opened storage at {self.db_path}")
        return engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory

    @contextmanager
    def session(self, cancel_event: Optional[threading.Event] = None) -> Iterator[Session]:
        try:
            session = self.session_factory()
        except PoolTimeoutError as e:
            raise TransientStorageError(f"connection pool exhausted: {e}") from e

        try:
            yield session
            if self._cancelled(cancel_event):
                session.rollback()
                raise OperationCancelledError("storage transaction")
            session.commit()
        except PoolTimeoutError as e:
            session.rollback()
            raise TransientStorageError(f"connection pool exhausted: {e}") from e
        except OperationalError as e:
            session.rollback()
            if is_transient(e):
                raise TransientStorageError(str(e.orig)) from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        ambient = current_cancel_event.get()
        return ambient is not None and ambient.is_set()

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
