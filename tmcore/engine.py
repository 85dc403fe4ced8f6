"""
Engine facade: one storage backend, one cache and every service wired
together.

Usage:
    from tmcore.engine import get_engine

    engine = get_engine()
    matches = await engine.tm.search("Hello world", LanguagePair(source="en", target="de"))
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from tmcore.alignment import AlignmentRepository, SentenceAlignmentService
from tmcore.archive import ColumnarArchive
from tmcore.cache import ProjectCache
from tmcore.config.logging_config import get_logger
from tmcore.config.settings import settings
from tmcore.database import StorageBackend, get_db_backend
from tmcore.linking import ChunkLinkingService, ChunkRepository
from tmcore.terminology import TermRepository, TerminologyService
from tmcore.tm import TMService, UnitRepository

logger = get_logger(__name__)


class TMEngine:
    """Owns the backend, cache and archive shared by all services."""

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        archive_dir: Optional[Path] = None,
        cache: Optional[ProjectCache] = None,
    ):
        self.backend = backend or get_db_backend()
        self.cache = cache or ProjectCache()
        self.archive = ColumnarArchive(
            archive_dir or settings.archive_dir,
            compression=settings.archive_compression,
        )

        self.units = UnitRepository(self.backend)
        self.terms = TermRepository(self.backend)
        self.chunks = ChunkRepository(self.backend)
        self.alignments = AlignmentRepository(self.backend)

        self.tm = TMService(self.units, self.cache, self.archive)
        self.terminology = TerminologyService(self.terms, self.cache, self.archive)
        self.linking = ChunkLinkingService(self.chunks, self.archive)
        self.alignment = SentenceAlignmentService(self.alignments, self.cache)

    async def refresh_archive(self, project_id: str) -> None:
        """Regenerate every archive file of a project from the store."""
        await self.tm.refresh_archive(project_id)
        await self.terminology.refresh_archive(project_id)
        await self.linking.refresh_archive(project_id)

    async def close(self) -> None:
        await self.tm.flush_archive()
        await self.terminology.mirror.flush()
        await self.cache.clear()
        self.backend.close()
        logger.info("Engine closed")


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_engine: Optional[TMEngine] = None


def get_engine() -> TMEngine:
    """Get or create the global engine."""
    global _engine
    if _engine is None:
        settings.ensure_directories()
        _engine = TMEngine()
    return _engine


async def close_engine() -> None:
    """Shut down the global engine."""
    global _engine
    if _engine is not None:
        await _engine.close()
        _engine = None
