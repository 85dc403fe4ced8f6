"""
Sentence Alignment Module
Cross-language sentence pairing with user validation and correction learning.

Usage:
    from tmcore.alignment import SentenceAlignmentService

    result = await service.align_sentences(en_text, de_text, "en", "de")
    await service.validate_alignment(result.alignments[0].id)
"""

from .service import SentenceAlignmentService, document_key
from .boundaries import BoundaryDetector, LanguageProfile, SentenceBoundary, profile_for
from .scoring import AlignmentScorer
from .repository import AlignmentRepository
from .models import SentenceAlignment, AlignmentCorrection, AlignedDocument

__all__ = [
    "SentenceAlignmentService",
    "document_key",
    "BoundaryDetector",
    "LanguageProfile",
    "SentenceBoundary",
    "profile_for",
    "AlignmentScorer",
    "AlignmentRepository",
    "SentenceAlignment",
    "AlignmentCorrection",
    "AlignedDocument",
]
