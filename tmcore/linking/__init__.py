"""
Chunk Linking Module
Selection sessions and phrase groups built from linked chunks.
"""

from .service import ChunkLinkingService
from .repository import ChunkRepository
from .models import ChunkMetadata, PhraseGroup

__all__ = [
    "ChunkLinkingService",
    "ChunkRepository",
    "ChunkMetadata",
    "PhraseGroup",
]
