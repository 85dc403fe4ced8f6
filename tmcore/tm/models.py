"""
Translation Memory Database Models
SQLAlchemy model for translation units.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Float, DateTime, Index, CheckConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from tmcore.database.base import (
    Base, generate_uuid, utc_now, normalize_text, compute_hash,
)


class TranslationUnit(Base):
    """
    Translation Unit - one source/target sentence or paragraph pair.

    Units are the atomic unit of translation memory. Each belongs to exactly
    one chapter/chunk of a project.
    """

    __tablename__ = "translation_units"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )

    # Ownership
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    chapter_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    chunk_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Text content
    source_language: Mapped[str] = mapped_column(String(10), nullable=False)
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    target_language: Mapped[str] = mapped_column(String(10), nullable=False)
    target_text: Mapped[str] = mapped_column(Text, nullable=False)

    # Lookup optimization
    source_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    source_normalized: Mapped[str] = mapped_column(Text, nullable=False)
    target_normalized: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Quality
    confidence_score: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    quality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Context / provenance
    context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    translator_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reviewer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    # Indexes
    __table_args__ = (
        Index("idx_unit_project", "project_id"),
        Index("idx_unit_language_pair", "source_language", "target_language"),
        Index("idx_unit_hash", "source_hash"),
        Index("idx_unit_chapter", "project_id", "chapter_id"),
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_unit_confidence_range",
        ),
        CheckConstraint(
            "quality_score IS NULL OR (quality_score >= 0 AND quality_score <= 1)",
            name="ck_unit_quality_range",
        ),
    )

    def __repr__(self):
        src = self.source_text[:30] + "..." if len(self.source_text) > 30 else self.source_text
        return f"<Unit {src}>"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "chapter_id": self.chapter_id,
            "chunk_id": self.chunk_id,
            "source_language": self.source_language,
            "source_text": self.source_text,
            "target_language": self.target_language,
            "target_text": self.target_text,
            "confidence_score": self.confidence_score,
            "quality_score": self.quality_score,
            "context": self.context,
            "translator_id": self.translator_id,
            "reviewer_id": self.reviewer_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# Keep lookup columns in sync with the texts
@event.listens_for(TranslationUnit, "before_insert")
@event.listens_for(TranslationUnit, "before_update")
def _sync_lookup_columns(mapper, connection, target: TranslationUnit):
    target.source_normalized = normalize_text(target.source_text)
    target.target_normalized = normalize_text(target.target_text)
    target.source_hash = compute_hash(
        target.source_text, target.source_language, target.target_language
    )
