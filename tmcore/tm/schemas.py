"""
Translation Memory Pydantic Schemas
Validation schemas for unit, match and suggestion operations.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator


MAX_TEXT_LENGTH = 20000


# ==================== ENUMS ====================

class MatchType(str, Enum):
    """Strategy that produced a match."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    NGRAM = "ngram"


class IndicatorType(str, Enum):
    """Editor confidence indicator kind."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NEW = "new"
    SUGGESTED = "suggested"


# ==================== LANGUAGE PAIR ====================

class LanguagePair(BaseModel):
    """Source/target language codes."""
    source: str = Field(..., min_length=2, max_length=10)
    target: str = Field(..., min_length=2, max_length=10)

    @field_validator("source", "target")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().lower()

    @property
    def key(self) -> str:
        return f"{self.source}:{self.target}"


# ==================== UNIT SCHEMAS ====================

class UnitBase(BaseModel):
    """Base schema for a translation unit."""
    project_id: str = Field(..., min_length=1, max_length=36)
    chapter_id: Optional[str] = Field(None, max_length=36)
    chunk_id: Optional[str] = Field(None, max_length=36)
    source_language: str = Field(..., min_length=2, max_length=10)
    source_text: str = Field(..., max_length=MAX_TEXT_LENGTH)
    target_language: str = Field(..., min_length=2, max_length=10)
    target_text: str = Field(..., max_length=MAX_TEXT_LENGTH)
    confidence_score: float = Field(default=0.8, ge=0.0, le=1.0)
    quality_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    context: Optional[str] = None
    translator_id: Optional[str] = Field(None, max_length=36)
    reviewer_id: Optional[str] = Field(None, max_length=36)

    @field_validator("source_text", "target_text")
    @classmethod
    def validate_text(cls, v):
        if not v or not v.strip():
            raise ValueError("Text must not be empty")
        return v

    @field_validator("source_language", "target_language")
    @classmethod
    def normalize_language(cls, v):
        return v.strip().lower()


class UnitCreate(UnitBase):
    """Schema for creating a translation unit."""
    pass


class UnitUpdate(BaseModel):
    """Schema for updating a unit (partial update)."""
    source_text: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    target_text: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    confidence_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    quality_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    context: Optional[str] = None
    translator_id: Optional[str] = Field(None, max_length=36)
    reviewer_id: Optional[str] = Field(None, max_length=36)

    @field_validator("source_text", "target_text")
    @classmethod
    def validate_text(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Text must not be empty")
        return v


class UnitResponse(UnitBase):
    """Schema for unit response."""
    id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ==================== MATCH SCHEMAS ====================

class TranslationMatch(BaseModel):
    """A ranked candidate returned by the match engine."""
    unit_id: str
    project_id: str
    source_text: str
    target_text: str
    source_language: str
    target_language: str
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    match_type: MatchType
    updated_at: Optional[datetime] = None

    @property
    def ranking_score(self) -> float:
        return (self.confidence_score + self.similarity_score) / 2


class SearchFilters(BaseModel):
    """Optional search filters."""
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_similarity: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_results: Optional[int] = Field(None, ge=1)


# ==================== SUGGESTION SCHEMAS ====================

class SuggestionOptions(BaseModel):
    """Debounced suggestion settings supplied by the caller."""
    delay_ms: int = Field(default=500, ge=0)
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_results: int = Field(default=5, ge=1)


class EditorSuggestion(BaseModel):
    """A suggestion shown in the editor."""
    unit_id: str
    source_text: str
    target_text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    similarity: float = Field(..., ge=0.0, le=1.0)
    match_type: MatchType


class SuggestionResult(BaseModel):
    """Outcome of a debounced suggestion request."""
    suggestions: List[EditorSuggestion] = Field(default_factory=list)
    superseded: bool = False
    from_cache: bool = False


class ConfidenceIndicator(BaseModel):
    """Confidence marker for a position in the editor."""
    position: int = Field(..., ge=0)
    length: int = Field(default=0, ge=0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    quality_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    indicator_type: IndicatorType
