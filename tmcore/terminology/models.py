"""
Terminology Database Models
SQLAlchemy model for project terminology entries.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Boolean, DateTime, Index, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from tmcore.database.base import Base, generate_uuid, utc_now


def term_key(term: str, case_sensitive: bool = False) -> str:
    """Uniqueness key for a term within a project."""
    term = term.strip()
    return term if case_sensitive else term.casefold()


class Term(Base):
    """
    Terminology entry of a project.

    Term text is unique per project; uniqueness is case-insensitive unless
    case-sensitive terms are configured.
    """

    __tablename__ = "terms"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )

    project_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # Content
    term: Mapped[str] = mapped_column(String(500), nullable=False)
    term_key: Mapped[str] = mapped_column(String(500), nullable=False)
    definition: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Flags
    do_not_translate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    # Indexes
    __table_args__ = (
        UniqueConstraint("project_id", "term_key", name="uq_term_project_key"),
        Index("idx_term_project", "project_id"),
        Index("idx_term_text", "term"),
    )

    def __repr__(self):
        return f"<Term {self.term}{' (DNT)' if self.do_not_translate else ''}>"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "term": self.term,
            "definition": self.definition,
            "do_not_translate": self.do_not_translate,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@event.listens_for(Term, "before_insert")
@event.listens_for(Term, "before_update")
def _sync_term_key(mapper, connection, target: Term):
    from tmcore.config.settings import settings
    target.term = target.term.strip()
    target.term_key = term_key(target.term, settings.terms_case_sensitive)
