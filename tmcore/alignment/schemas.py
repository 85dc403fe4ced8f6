"""
Sentence Alignment Pydantic Schemas
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, List
from pydantic import BaseModel, Field


# ==================== ENUMS ====================

class AlignmentMethod(str, Enum):
    """How an alignment was produced."""
    POSITION_BASED = "position_based"
    LENGTH_RATIO = "length_ratio"
    LEARNED = "learned"
    USER_VALIDATED = "user_validated"
    HYBRID = "hybrid"


class ValidationStatus(str, Enum):
    """Review state of an alignment."""
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class AlignmentIssue(str, Enum):
    """Kind of alignment problem."""
    LENGTH_MISMATCH = "length_mismatch"
    STRUCTURAL_DIVERGENCE = "structural_divergence"
    MISSING_SENTENCE = "missing_sentence"
    EXTRA_SENTENCE = "extra_sentence"
    ORDER_MISMATCH = "order_mismatch"
    BOUNDARY_DETECTION_ERROR = "boundary_detection_error"

    @property
    def auto_fixable(self) -> bool:
        return self in (AlignmentIssue.LENGTH_MISMATCH, AlignmentIssue.BOUNDARY_DETECTION_ERROR)


class BoundaryType(str, Enum):
    """Punctuation that closed a sentence."""
    PERIOD = "period"
    EXCLAMATION = "exclamation"
    QUESTION = "question"
    ELLIPSIS = "ellipsis"
    END_OF_PARAGRAPH = "end_of_paragraph"


# ==================== ALIGNMENTS ====================

class AlignmentResponse(BaseModel):
    """Schema for alignment response."""
    id: str
    document_key: str
    source_language: str
    target_language: str
    source_start: int
    source_end: int
    target_start: int
    target_end: int
    source_text: str
    target_text: str
    source_position: float = 0.0
    target_position: float = 0.0
    source_chunk_id: Optional[str] = None
    target_chunk_id: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    method: AlignmentMethod
    status: ValidationStatus
    user_locked: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProblemArea(BaseModel):
    """A span where alignment quality is poor."""
    alignment_id: Optional[str] = None
    start_position: int
    end_position: int
    issue_type: AlignmentIssue
    severity: float = Field(..., ge=0.0, le=1.0)
    suggestion: str
    informational: bool = False


class QualityIndicators(BaseModel):
    """Real-time quality feedback for a set of alignments."""
    overall_quality: float = 0.0
    position_consistency: float = 0.0
    length_ratio_consistency: float = 0.0
    structural_coherence: float = 0.0
    user_validation_rate: float = 0.0
    problem_areas: List[ProblemArea] = Field(default_factory=list)


class AlignmentResult(BaseModel):
    """Output of align_sentences."""
    document_key: str
    alignments: List[AlignmentResponse] = Field(default_factory=list)
    problem_areas: List[ProblemArea] = Field(default_factory=list)
    quality: QualityIndicators = Field(default_factory=QualityIndicators)
    from_cache: bool = False


class AlignmentStatistics(BaseModel):
    """Stored alignment totals for one language pair."""
    source_language: str
    target_language: str
    total_alignments: int = 0
    aligned_alignments: int = 0
    validated_alignments: int = 0
    rejected_alignments: int = 0
    needs_review_alignments: int = 0
    average_confidence: float = 0.0
    alignment_accuracy: float = 0.0
    mean_problem_severity: float = 0.0
    health_score: float = 0.0
    processing_time_ms: Optional[int] = None


class AlignmentSpan(BaseModel):
    """Manual alignment request."""
    source_start: int = Field(..., ge=0)
    source_end: int = Field(..., ge=0)
    target_start: int = Field(..., ge=0)
    target_end: int = Field(..., ge=0)
    source_chunk_id: Optional[str] = None
    target_chunk_id: Optional[str] = None


class RescoreResult(BaseModel):
    rescored: int = 0
    skipped_locked: int = 0


class AutoFixResult(BaseModel):
    """Outcome of auto_fix."""
    applied: bool
    issue_type: AlignmentIssue
    message: str
    manual_operation: Optional[str] = None
    alignment: Optional[AlignmentResponse] = None
    removed_ids: List[str] = Field(default_factory=list)


class CorrectionRecord(BaseModel):
    """A logged correction."""
    id: str
    fingerprint: str
    reason: Optional[str] = None
    corrected_confidence: float
    original: Dict = Field(default_factory=dict)
    corrected: Dict = Field(default_factory=dict)

    class Config:
        from_attributes = True
