"""
Translation Memory Module
Store and reuse previously translated units.

Key components:
- TMService: unit CRUD, search, editor suggestions
- UnitRepository: Database operations
- TMMatcher: Exact / fuzzy / n-gram matching
"""

from .service import TMService, calculate_auto_confidence
from .matcher import TMMatcher
from .repository import UnitRepository
from .models import TranslationUnit

__all__ = [
    "TMService",
    "calculate_auto_confidence",
    "TMMatcher",
    "UnitRepository",
    "TranslationUnit",
]
