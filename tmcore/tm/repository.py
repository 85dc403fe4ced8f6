"""
Translation Memory Repository
Database access layer for translation units.
"""
import logging
import threading
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from tmcore.database.base import normalize_text, compute_hash
from tmcore.database.protocol import StorageBackend
from tmcore.exceptions import ValidationError, OperationCancelledError
from .models import TranslationUnit
from .schemas import UnitCreate, UnitUpdate

logger = logging.getLogger(__name__)


def escape_like(pattern: str) -> str:
    """Escape LIKE wildcards so the pattern matches literally."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UnitRepository:
    """
    Repository for translation unit operations.

    Handles CRUD, batch insert and the lookups used by the match engine.
    """

    def __init__(self, backend: StorageBackend):
        """Initialize repository with a storage backend."""
        self.backend = backend

    # ==================== WRITE OPERATIONS ====================

    def insert(
        self,
        data: UnitCreate,
        cancel_event: Optional[threading.Event] = None,
    ) -> TranslationUnit:
        """Insert a single unit."""
        with self.backend.session(cancel_event) as session:
            unit = TranslationUnit(**data.model_dump())
            session.add(unit)
            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError("unit", f"constraint violated: {e.orig}") from e
            logger.info(f"Added unit {unit.id} to project {unit.project_id}")
            return unit

    def insert_batch(
        self,
        items: List[UnitCreate],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Insert units in one transaction.

        Either every unit is stored or none is. Returns count inserted.
        """
        return len(self.insert_many(items, cancel_event))

    def insert_many(
        self,
        items: List[UnitCreate],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TranslationUnit]:
        """Atomic batch insert returning the stored units."""
        if not items:
            return []

        units = []
        with self.backend.session(cancel_event) as session:
            for index, data in enumerate(items):
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError(f"unit batch insert at item {index}")
                unit = TranslationUnit(**data.model_dump())
                session.add(unit)
                units.append(unit)
            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError("units", f"constraint violated: {e.orig}") from e

        logger.info(f"Batch inserted {len(units)} units")
        return units

    def update(self, unit_id: str, data: UnitUpdate) -> Optional[TranslationUnit]:
        """Update a unit. Returns None when it doesn't exist."""
        with self.backend.session() as session:
            unit = session.get(TranslationUnit, unit_id)
            if not unit:
                return None

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(unit, field, value)

            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError("unit", f"constraint violated: {e.orig}") from e
            return unit

    def delete(self, unit_id: str) -> bool:
        """Delete a unit. Returns whether a row existed."""
        with self.backend.session() as session:
            unit = session.get(TranslationUnit, unit_id)
            if not unit:
                return False
            session.delete(unit)
            logger.info(f"Deleted unit {unit_id}")
            return True

    # ==================== READ OPERATIONS ====================

    def get(self, unit_id: str) -> Optional[TranslationUnit]:
        """Get unit by ID."""
        with self.backend.session() as session:
            return session.get(TranslationUnit, unit_id)

    def get_by_project(
        self,
        project_id: str,
        chapter_id: Optional[str] = None,
    ) -> List[TranslationUnit]:
        """All units of a project (optionally one chapter), oldest first."""
        with self.backend.session() as session:
            query = session.query(TranslationUnit).filter(
                TranslationUnit.project_id == project_id
            )
            if chapter_id:
                query = query.filter(TranslationUnit.chapter_id == chapter_id)
            return query.order_by(TranslationUnit.created_at, TranslationUnit.id).all()

    def count(self, project_id: Optional[str] = None) -> int:
        with self.backend.session() as session:
            query = session.query(func.count(TranslationUnit.id))
            if project_id:
                query = query.filter(TranslationUnit.project_id == project_id)
            return query.scalar() or 0

    def search(
        self,
        project_id: str,
        pattern: str,
        exact: bool = False,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
        limit: int = 100,
    ) -> List[TranslationUnit]:
        """
        Search units by source or target text.

        Case-insensitive substring match unless exact is requested. Results
        are ordered by relevance: exact source match, then source prefix,
        then any substring; newest first within a tier.
        """
        pattern = pattern.strip()
        if not pattern:
            return []

        with self.backend.session() as session:
            query = session.query(TranslationUnit).filter(
                TranslationUnit.project_id == project_id
            )
            if source_language:
                query = query.filter(TranslationUnit.source_language == source_language)
            if target_language:
                query = query.filter(TranslationUnit.target_language == target_language)

            if exact:
                needle = normalize_text(pattern)
                query = query.filter(or_(
                    TranslationUnit.source_normalized == needle,
                    TranslationUnit.target_normalized == needle,
                ))
            else:
                like = f"%{escape_like(pattern.lower())}%"
                query = query.filter(or_(
                    func.lower(TranslationUnit.source_text).like(like, escape="\\"),
                    func.lower(TranslationUnit.target_text).like(like, escape="\\"),
                ))

            units = query.order_by(TranslationUnit.updated_at.desc()).limit(limit * 4).all()

        needle = normalize_text(pattern)

        def relevance(unit: TranslationUnit) -> int:
            if unit.source_normalized == needle:
                return 0
            if unit.source_normalized.startswith(needle):
                return 1
            if needle in unit.source_normalized:
                return 2
            return 3

        # sort is stable, so newest-first order survives inside a tier
        units.sort(key=relevance)
        return units[:limit]

    # ==================== MATCH ENGINE LOOKUPS ====================

    def find_exact(
        self,
        source_text: str,
        source_language: str,
        target_language: str,
        project_id: Optional[str] = None,
    ) -> List[TranslationUnit]:
        """Units whose normalized source equals the query."""
        source_hash = compute_hash(source_text, source_language, target_language)
        with self.backend.session() as session:
            query = session.query(TranslationUnit).filter(
                TranslationUnit.source_hash == source_hash
            )
            if project_id:
                query = query.filter(TranslationUnit.project_id == project_id)
            return query.order_by(TranslationUnit.updated_at.desc()).all()

    def get_candidates(
        self,
        source_language: str,
        target_language: str,
        project_id: Optional[str] = None,
        limit: int = 5000,
    ) -> List[TranslationUnit]:
        """Most recently updated units of a language pair for approximate matching."""
        with self.backend.session() as session:
            query = session.query(TranslationUnit).filter(
                TranslationUnit.source_language == source_language,
                TranslationUnit.target_language == target_language,
            )
            if project_id:
                query = query.filter(TranslationUnit.project_id == project_id)
            return query.order_by(TranslationUnit.updated_at.desc()).limit(limit).all()

    def exists_pair(
        self,
        project_id: str,
        source_text: str,
        target_text: str,
        source_language: str,
        target_language: str,
    ) -> bool:
        """Whether the exact source/target pair is already stored."""
        source_hash = compute_hash(source_text, source_language, target_language)
        with self.backend.session() as session:
            return session.query(TranslationUnit.id).filter(
                TranslationUnit.project_id == project_id,
                TranslationUnit.source_hash == source_hash,
                TranslationUnit.target_text == target_text,
            ).first() is not None
