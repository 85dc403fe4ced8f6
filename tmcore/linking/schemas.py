"""
Chunk Linking Pydantic Schemas
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, List
from pydantic import BaseModel, Field, field_validator


# ==================== ENUMS ====================

class ChunkType(str, Enum):
    """Structural kind of a chunk."""
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST_ITEM = "list_item"
    CODE_BLOCK = "code_block"
    TABLE = "table"
    LINKED_PHRASE = "linked_phrase"
    CODE = "code"
    LINK = "link"

    @property
    def can_be_linked(self) -> bool:
        return self in (ChunkType.SENTENCE, ChunkType.LIST_ITEM, ChunkType.LINKED_PHRASE)


class SelectionMode(str, Enum):
    """How a session accumulates chunks."""
    INDIVIDUAL = "individual"
    RANGE = "range"
    PATTERN = "pattern"


class MergeStrategy(str, Enum):
    """Order in which linked chunks are merged."""
    SEQUENTIAL = "sequential"  # selection order
    POSITIONAL = "positional"  # original document position
    CUSTOM = "custom"          # explicit permutation


# ==================== CHUNKS ====================

class ChunkCreate(BaseModel):
    """Schema for registering a chunk."""
    id: Optional[str] = Field(None, max_length=36)
    project_id: Optional[str] = Field(None, max_length=36)
    chapter_id: str = Field(..., min_length=1, max_length=36)
    original_position: int = Field(default=0, ge=0)
    chunk_type: ChunkType = ChunkType.SENTENCE
    sentence_boundaries: List[int] = Field(default_factory=list)
    processing_notes: List[str] = Field(default_factory=list)

    @field_validator("sentence_boundaries")
    @classmethod
    def validate_boundaries(cls, v):
        if any(b < 0 for b in v):
            raise ValueError("Sentence boundaries must be non-negative")
        if v != sorted(v):
            raise ValueError("Sentence boundaries must be sorted")
        return v


class ChunkResponse(BaseModel):
    """Schema for chunk response."""
    id: str
    project_id: Optional[str] = None
    chapter_id: str
    original_position: int
    chunk_type: ChunkType
    sentence_boundaries: List[int] = Field(default_factory=list)
    linked_chunk_ids: List[str] = Field(default_factory=list)
    processing_notes: List[str] = Field(default_factory=list)
    phrase_group_id: Optional[str] = None

    class Config:
        from_attributes = True


# ==================== SELECTION ====================

class ChunkSelection(BaseModel):
    """Snapshot of a selection session."""
    session_id: str
    selected_chunks: List[str] = Field(default_factory=list)
    selection_mode: SelectionMode = SelectionMode.INDIVIDUAL
    created_at: datetime


# ==================== PHRASE GROUPS ====================

class MergeOptions(BaseModel):
    """How selected chunks are merged into a phrase."""
    strategy: MergeStrategy = MergeStrategy.SEQUENTIAL
    custom_order: Optional[List[str]] = None
    add_spacing: bool = True
    preserve_formatting: bool = True


class PhraseMetadata(BaseModel):
    """Descriptive data of a phrase group."""
    creator: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    usage_count: int = Field(default=0, ge=0)


class PhraseMetadataUpdate(BaseModel):
    """Partial metadata update."""
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    usage_count: Optional[int] = Field(None, ge=0)


class PhraseGroupResponse(BaseModel):
    """Schema for phrase group response."""
    id: str
    project_id: Optional[str] = None
    chunk_ids: List[str] = Field(..., min_length=2)
    merged_text: str
    language: str
    merge_strategy: MergeStrategy
    metadata: PhraseMetadata
    created_at: datetime
    updated_at: datetime


class LinkingResult(BaseModel):
    """Outcome of linking a selection."""
    success: bool
    message: str
    phrase_group_id: Optional[str] = None
    linked_chunks: List[str] = Field(default_factory=list)
    merged_text: Optional[str] = None


class PhraseStatistics(BaseModel):
    """Aggregate view over all phrase groups."""
    total_phrase_groups: int = 0
    total_linked_chunks: int = 0
    average_chunks_per_group: float = 0.0
    total_usage: int = 0
    groups_by_language: Dict[str, int] = Field(default_factory=dict)
    top_tags: List[str] = Field(default_factory=list)
