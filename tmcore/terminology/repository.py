"""
Terminology Repository
Database access layer for project terms.
"""
import logging
import threading
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from tmcore.config.settings import settings
from tmcore.database.protocol import StorageBackend
from tmcore.exceptions import ValidationError, OperationCancelledError
from tmcore.tm.repository import escape_like
from .models import Term, term_key
from .schemas import TermCreate, TermUpdate

logger = logging.getLogger(__name__)


class TermRepository:
    """Repository for terminology CRUD and lookup."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    # ==================== WRITE OPERATIONS ====================

    def insert(self, data: TermCreate) -> Term:
        """Insert a term; a duplicate in the project is a ValidationError."""
        with self.backend.session() as session:
            term = Term(**data.model_dump())
            session.add(term)
            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError(
                    "term", f"'{data.term}' already exists in project", data.term
                ) from e
            logger.info(f"Added term '{term.term}' to project {term.project_id}")
            return term

    def insert_batch(
        self,
        items: List[TermCreate],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Insert terms in one transaction; all or nothing. Returns count inserted."""
        if not items:
            return 0

        with self.backend.session(cancel_event) as session:
            for index, data in enumerate(items):
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError(f"term batch insert at item {index}")
                session.add(Term(**data.model_dump()))
            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError("term", "duplicate term in batch or project") from e

        logger.info(f"Batch inserted {len(items)} terms")
        return len(items)

    def update(self, term_id: str, data: TermUpdate) -> Optional[Term]:
        """Update a term. Returns None when it doesn't exist."""
        with self.backend.session() as session:
            term = session.get(Term, term_id)
            if not term:
                return None

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(term, field, value)

            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError(
                    "term", f"'{data.term}' already exists in project", data.term
                ) from e
            return term

    def delete(self, term_id: str) -> bool:
        """Delete a term. Returns whether a row existed."""
        with self.backend.session() as session:
            term = session.get(Term, term_id)
            if not term:
                return False
            session.delete(term)
            logger.info(f"Deleted term {term_id}")
            return True

    # ==================== READ OPERATIONS ====================

    def get(self, term_id: str) -> Optional[Term]:
        with self.backend.session() as session:
            return session.get(Term, term_id)

    def get_by_project(self, project_id: str) -> List[Term]:
        """All terms of a project, alphabetical."""
        with self.backend.session() as session:
            return session.query(Term).filter(
                Term.project_id == project_id
            ).order_by(Term.term_key, Term.term).all()

    def get_by_term(self, project_id: str, text: str) -> Optional[Term]:
        """Look up a term by text using the project's uniqueness rule."""
        with self.backend.session() as session:
            return session.query(Term).filter(
                Term.project_id == project_id,
                Term.term_key == term_key(text, settings.terms_case_sensitive),
            ).first()

    def count(self, project_id: str) -> int:
        with self.backend.session() as session:
            return session.query(func.count(Term.id)).filter(
                Term.project_id == project_id
            ).scalar() or 0

    def search(self, project_id: str, pattern: str, exact: bool = False) -> List[Term]:
        """
        Search by term or definition.

        Case-insensitive substring unless exact; exact term matches first,
        then terms starting with the pattern, then the rest alphabetically.
        """
        pattern = pattern.strip()
        if not pattern:
            return []

        with self.backend.session() as session:
            query = session.query(Term).filter(Term.project_id == project_id)
            if exact:
                query = query.filter(Term.term_key == term_key(pattern, settings.terms_case_sensitive))
            else:
                like = f"%{escape_like(pattern.lower())}%"
                query = query.filter(or_(
                    func.lower(Term.term).like(like, escape="\\"),
                    func.lower(Term.definition).like(like, escape="\\"),
                ))
            terms = query.order_by(Term.term_key).all()

        needle = pattern.casefold()

        def relevance(term: Term) -> int:
            text = term.term.casefold()
            if text == needle:
                return 0
            if text.startswith(needle):
                return 1
            if needle in text:
                return 2
            return 3

        terms.sort(key=relevance)
        return terms
