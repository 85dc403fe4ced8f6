"""
Terminology Pydantic Schemas
Validation schemas for terms, highlights, consistency checks and imports.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, List
from pydantic import BaseModel, Field, field_validator


# ==================== ENUMS ====================

class HighlightType(str, Enum):
    """Why a span of text is highlighted."""
    DO_NOT_TRANSLATE = "do_not_translate"
    INCONSISTENT = "inconsistent"
    SUGGESTED = "suggested"
    VALIDATED = "validated"


# ==================== TERM SCHEMAS ====================

class TermBase(BaseModel):
    """Base schema for a terminology entry."""
    term: str = Field(..., max_length=500, description="Term text")
    definition: Optional[str] = Field(None, description="Optional definition")
    do_not_translate: bool = Field(default=False, description="Must appear unchanged in targets")

    @field_validator("term")
    @classmethod
    def validate_term(cls, v):
        if not v or not v.strip():
            raise ValueError("Term must not be empty")
        return v.strip()


class TermCreate(TermBase):
    """Schema for creating a term."""
    project_id: str = Field(..., min_length=1, max_length=36)


class TermUpdate(BaseModel):
    """Schema for updating a term (partial update)."""
    term: Optional[str] = Field(None, max_length=500)
    definition: Optional[str] = None
    do_not_translate: Optional[bool] = None

    @field_validator("term")
    @classmethod
    def validate_term(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Term must not be empty")
        return v.strip() if v is not None else v


class TermResponse(TermBase):
    """Schema for term response."""
    id: str
    project_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ==================== HIGHLIGHTING ====================

class TermHighlight(BaseModel):
    """A highlighted span of text."""
    term_id: str
    term: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    highlight_type: HighlightType
    definition: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def span(self) -> tuple:
        return (self.start, self.end)


class LanguageInconsistency(BaseModel):
    """Non-canonical variants of a do-not-translate term in one language."""
    language: str
    term_id: str
    expected_term: str
    found_terms: List[str]
    positions: List[int]
    suggestion: str


class ConsistencyCheckResult(BaseModel):
    """Result of a cross-language consistency scan."""
    project_id: str
    checked_terms: int = 0
    languages: List[str] = Field(default_factory=list)
    inconsistencies: List[LanguageInconsistency] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.inconsistencies


class TerminologySuggestion(BaseModel):
    """A word that looks like a known term but isn't one."""
    text: str
    start: int
    end: int
    suggested_term: str
    term_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str


# ==================== IMPORT ====================

class TermConflict(BaseModel):
    """Imported row whose term already exists."""
    row: int
    term: str
    existing_definition: Optional[str] = None
    new_definition: Optional[str] = None

    @property
    def definition_differs(self) -> bool:
        return (self.existing_definition or "") != (self.new_definition or "")


class RowIssue(BaseModel):
    """Warning or error attached to one CSV row."""
    row: int
    field: str
    message: str
    value: Optional[str] = None


class ImportResult(BaseModel):
    """Per-row outcome of a terminology CSV import."""
    imported: int = 0
    skipped: int = 0
    total_rows: int = 0
    conflicts: List[TermConflict] = Field(default_factory=list)
    warnings: List[RowIssue] = Field(default_factory=list)
    errors: List[RowIssue] = Field(default_factory=list)
    cancelled: bool = False

    def summary(self) -> Dict[str, int]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "conflicts": len(self.conflicts),
            "warnings": len(self.warnings),
            "errors": len(self.errors),
        }
