"""Shared fixtures: a throwaway SQLite store per test, plus wired services."""

import pytest

from tmcore.alignment import AlignmentRepository, SentenceAlignmentService
from tmcore.archive import ColumnarArchive
from tmcore.cache import ProjectCache
from tmcore.database import SQLiteBackend
from tmcore.engine import TMEngine
from tmcore.linking import ChunkLinkingService, ChunkRepository
from tmcore.terminology import TermRepository, TerminologyService
from tmcore.tm import TMService, UnitRepository
from tmcore.tm.schemas import LanguagePair


@pytest.fixture
def backend(tmp_path):
    """Temporary SQLiteBackend, disposed after the test."""
    db = SQLiteBackend(tmp_path / "test.db", pool_size=2, max_overflow=2, pool_timeout=1.0)
    yield db
    db.close()


@pytest.fixture
def cache():
    return ProjectCache()


@pytest.fixture
def archive(tmp_path):
    return ColumnarArchive(tmp_path / "archive")


@pytest.fixture
def en_de():
    return LanguagePair(source="en", target="de")


@pytest.fixture
def tm_service(backend, cache):
    return TMService(UnitRepository(backend), cache)


@pytest.fixture
def term_service(backend, cache):
    return TerminologyService(TermRepository(backend), cache)


@pytest.fixture
def linking_service(backend):
    return ChunkLinkingService(ChunkRepository(backend))


@pytest.fixture
def alignment_service(backend, cache):
    return SentenceAlignmentService(AlignmentRepository(backend), cache)


@pytest.fixture
def engine(backend, cache, tmp_path):
    return TMEngine(backend=backend, archive_dir=tmp_path / "archive", cache=cache)
