"""
Sentence Alignment Database Models
SQLAlchemy models for sentence alignments and the correction log.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import (
    String, Text, Integer, Float, Boolean, DateTime, Index, CheckConstraint, JSON,
)
from sqlalchemy.orm import Mapped, mapped_column

from tmcore.database.base import Base, generate_uuid, utc_now


class SentenceAlignment(Base):
    """
    Sentence Alignment - one source sentence paired with one target sentence.

    Alignments produced by one align run share a document_key. A status set
    by a user locks the alignment until it is reset.
    """

    __tablename__ = "sentence_alignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    document_key: Mapped[str] = mapped_column(String(64), nullable=False)

    source_language: Mapped[str] = mapped_column(String(10), nullable=False)
    target_language: Mapped[str] = mapped_column(String(10), nullable=False)

    # Spans in the aligned texts
    source_start: Mapped[int] = mapped_column(Integer, nullable=False)
    source_end: Mapped[int] = mapped_column(Integer, nullable=False)
    target_start: Mapped[int] = mapped_column(Integer, nullable=False)
    target_end: Mapped[int] = mapped_column(Integer, nullable=False)
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    target_text: Mapped[str] = mapped_column(Text, nullable=False)

    # Relative position of each sentence in its document, in [0, 1)
    source_position: Mapped[float] = mapped_column(Float, default=0.0)
    target_position: Mapped[float] = mapped_column(Float, default=0.0)

    source_chunk_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    target_chunk_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default="position_based")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    user_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_alignment_confidence"),
        Index("idx_alignment_document", "document_key", "source_start"),
        Index("idx_alignment_languages", "source_language", "target_language"),
    )

    def __repr__(self):
        return (
            f"<SentenceAlignment {self.id[:8]} "
            f"[{self.source_start}:{self.source_end}]->[{self.target_start}:{self.target_end}] "
            f"{self.status}>"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_key": self.document_key,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "source_start": self.source_start,
            "source_end": self.source_end,
            "target_start": self.target_start,
            "target_end": self.target_end,
            "source_text": self.source_text,
            "target_text": self.target_text,
            "source_position": self.source_position,
            "target_position": self.target_position,
            "source_chunk_id": self.source_chunk_id,
            "target_chunk_id": self.target_chunk_id,
            "confidence": self.confidence,
            "method": self.method,
            "status": self.status,
            "user_locked": self.user_locked,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AlignmentCorrection(Base):
    """Append-only log of user corrections, keyed by structural fingerprint."""

    __tablename__ = "alignment_corrections"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    original: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    corrected: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    corrected_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    __table_args__ = (
        Index("idx_correction_fingerprint", "fingerprint"),
    )

    def __repr__(self):
        return f"<AlignmentCorrection {self.id[:8]} {self.fingerprint}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fingerprint": self.fingerprint,
            "original": dict(self.original or {}),
            "corrected": dict(self.corrected or {}),
            "reason": self.reason,
            "corrected_confidence": self.corrected_confidence,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AlignedDocument(Base):
    """Source and target texts an alignment document_key was computed from."""

    __tablename__ = "aligned_documents"

    document_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    target_text: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<AlignedDocument {self.document_key[:12]}>"
