"""
StorageBackend protocol: the contract every backend must satisfy.

Usage:
    with backend.session() as session:
        session.add(unit)
    # committed on success, rolled back on exception
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol, runtime_checkable

from sqlalchemy.orm import Session


@runtime_checkable
class StorageBackend(Protocol):
    """
    Protocol that all storage backends must implement.

    session() yields a SQLAlchemy Session that commits on success and rolls
    back on exception. Pool exhaustion and lock contention surface as
    TransientStorageError; a set cancel event rolls the session back and
    raises OperationCancelledError instead of committing.
    """

    @contextmanager
    def session(
        self, cancel_event: Optional[threading.Event] = None
    ) -> Iterator[Session]: ...

    def close(self) -> None: ...
