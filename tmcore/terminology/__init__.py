"""
Terminology Module
Project terms, do-not-translate enforcement and consistency checks.

Usage:
    from tmcore.terminology import TerminologyService

    highlights = await service.highlight("The API uses JSON.", project_id, "en")
    report = await service.check_consistency({"en": en_text, "de": de_text}, project_id)
"""

from .service import TerminologyService
from .highlighter import TermHighlighter
from .consistency import ConsistencyChecker, term_variants
from .repository import TermRepository
from .models import Term

__all__ = [
    "TerminologyService",
    "TermHighlighter",
    "ConsistencyChecker",
    "term_variants",
    "TermRepository",
    "Term",
]
