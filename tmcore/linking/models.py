"""
Chunk Linking Database Models
SQLAlchemy models for alignment chunks and phrase groups.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, Text, Integer, Float, DateTime, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from tmcore.database.base import Base, generate_uuid, utc_now


class ChunkMetadata(Base):
    """
    Chunk - the smallest alignment unit, usually one sentence.

    Linked chunk ids are kept symmetric and never include the chunk itself.
    """

    __tablename__ = "chunks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    project_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    chapter_id: Mapped[str] = mapped_column(String(36), nullable=False)
    original_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chunk_type: Mapped[str] = mapped_column(String(20), nullable=False, default="sentence")

    # JSON lists; always reassigned, never mutated in place
    sentence_boundaries: Mapped[List[int]] = mapped_column(JSON, default=list)
    linked_chunk_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    processing_notes: Mapped[List[str]] = mapped_column(JSON, default=list)

    phrase_group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_chunk_chapter", "chapter_id", "original_position"),
        Index("idx_chunk_project", "project_id"),
        Index("idx_chunk_group", "phrase_group_id"),
    )

    def __repr__(self):
        return f"<Chunk {self.id[:8]} {self.chunk_type}@{self.original_position}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "chapter_id": self.chapter_id,
            "original_position": self.original_position,
            "chunk_type": self.chunk_type,
            "sentence_boundaries": list(self.sentence_boundaries or []),
            "linked_chunk_ids": list(self.linked_chunk_ids or []),
            "processing_notes": list(self.processing_notes or []),
            "phrase_group_id": self.phrase_group_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PhraseGroup(Base):
    """
    Phrase Group - two or more linked chunks translated as one phrase.

    chunk_ids holds the merge order.
    """

    __tablename__ = "phrase_groups"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    project_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    chunk_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    merged_text: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(10), nullable=False)
    merge_strategy: Mapped[str] = mapped_column(String(20), nullable=False, default="sequential")

    # Metadata
    creator: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    confidence: Mapped[float] = mapped_column(Float, default=1.0)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_phrase_group_language", "language"),
        Index("idx_phrase_group_project", "project_id"),
    )

    def __repr__(self):
        return f"<PhraseGroup {self.id[:8]} ({len(self.chunk_ids or [])} chunks)>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "chunk_ids": list(self.chunk_ids or []),
            "merged_text": self.merged_text,
            "language": self.language,
            "merge_strategy": self.merge_strategy,
            "metadata": {
                "creator": self.creator,
                "description": self.description,
                "tags": list(self.tags or []),
                "confidence": self.confidence,
                "usage_count": self.usage_count,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
