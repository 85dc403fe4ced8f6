"""Integration tests: translation unit storage through TMService and SQLite."""
import threading

import pytest

from tmcore.database.base import compute_hash
from tmcore.exceptions import NotFoundError, OperationCancelledError, ValidationError
from tmcore.tm import TranslationUnit, UnitRepository
from tmcore.tm.schemas import UnitCreate, UnitUpdate


def unit_data(source="Hello world", target="Hallo Welt", project_id="p1", **extra):
    data = {
        "project_id": project_id,
        "source_language": "en",
        "source_text": source,
        "target_language": "de",
        "target_text": target,
    }
    data.update(extra)
    return data


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestUnitCrud:

    @pytest.mark.asyncio
    async def test_add_and_get(self, tm_service):
        unit = await tm_service.add_unit(unit_data(confidence_score=0.9))

        fetched = await tm_service.get_unit(unit.id)
        assert fetched.source_text == "Hello world"
        assert fetched.target_text == "Hallo Welt"
        assert fetched.confidence_score == 0.9
        assert fetched.created_at is not None

    @pytest.mark.asyncio
    async def test_default_confidence(self, tm_service):
        unit = await tm_service.add_unit(unit_data())
        assert unit.confidence_score == 0.8

    @pytest.mark.asyncio
    async def test_language_codes_normalized(self, tm_service):
        unit = await tm_service.add_unit(unit_data(source_language=" EN ", target_language="De"))
        assert unit.source_language == "en"
        assert unit.target_language == "de"

    @pytest.mark.asyncio
    async def test_update(self, tm_service):
        unit = await tm_service.add_unit(unit_data())
        updated = await tm_service.update_unit(unit.id, UnitUpdate(target_text="Hallo, Welt", quality_score=0.7))

        assert updated.target_text == "Hallo, Welt"
        assert updated.quality_score == 0.7
        assert updated.source_text == "Hello world"

    @pytest.mark.asyncio
    async def test_update_missing(self, tm_service):
        with pytest.raises(NotFoundError):
            await tm_service.update_unit("missing", {"target_text": "x"})

    @pytest.mark.asyncio
    async def test_delete(self, tm_service):
        unit = await tm_service.add_unit(unit_data())
        assert await tm_service.delete_unit(unit.id) is True
        assert await tm_service.delete_unit(unit.id) is False
        with pytest.raises(NotFoundError):
            await tm_service.get_unit(unit.id)

    @pytest.mark.asyncio
    async def test_get_units_by_chapter(self, tm_service):
        await tm_service.add_unit(unit_data("One", "Eins", chapter_id="c1"))
        await tm_service.add_unit(unit_data("Two", "Zwei", chapter_id="c2"))
        await tm_service.add_unit(unit_data("Three", "Drei", project_id="p2", chapter_id="c1"))

        assert len(await tm_service.get_units("p1")) == 2
        chapter = await tm_service.get_units("p1", chapter_id="c1")
        assert [u.source_text for u in chapter] == ["One"]


class TestUnitValidation:

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, tm_service):
        with pytest.raises(ValidationError) as exc_info:
            await tm_service.add_unit(unit_data(source="   "))
        assert exc_info.value.field == "source_text"

    @pytest.mark.asyncio
    async def test_score_out_of_range(self, tm_service):
        with pytest.raises(ValidationError) as exc_info:
            await tm_service.add_unit(unit_data(confidence_score=1.5))
        assert exc_info.value.field == "confidence_score"

    @pytest.mark.asyncio
    async def test_oversized_text(self, tm_service):
        with pytest.raises(ValidationError):
            await tm_service.add_unit(unit_data(target="x" * 20001))


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class TestBatchInsert:

    @pytest.mark.asyncio
    async def test_batch_inserts_all(self, tm_service):
        count = await tm_service.add_units([unit_data(f"Sentence {i}", f"Satz {i}") for i in range(5)])
        assert count == 5
        assert len(await tm_service.get_units("p1")) == 5

    @pytest.mark.asyncio
    async def test_invalid_item_stores_nothing(self, tm_service):
        items = [unit_data("Good", "Gut"), unit_data("Bad", "Schlecht", confidence_score=3.0)]
        with pytest.raises(ValidationError):
            await tm_service.add_units(items)
        assert await tm_service.get_units("p1") == []

    def test_constraint_violation_rolls_back_batch(self, backend):
        repo = UnitRepository(backend)
        good = UnitCreate(**unit_data("Good", "Gut"))
        # unvalidated, so the database check constraint is what rejects it
        bad = UnitCreate.model_construct(**unit_data("Bad", "Schlecht", confidence_score=5.0))

        with pytest.raises(ValidationError):
            repo.insert_batch([good, bad])
        assert repo.count("p1") == 0

    @pytest.mark.asyncio
    async def test_cancelled_batch_stores_nothing(self, tm_service):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            await tm_service.add_units([unit_data("One", "Eins")], cancel_event=cancel)
        assert await tm_service.get_units("p1") == []

    def test_session_cancel_rolls_back(self, backend):
        repo = UnitRepository(backend)
        cancel = threading.Event()

        with pytest.raises(OperationCancelledError):
            with backend.session(cancel) as session:
                session.add(TranslationUnit(**UnitCreate(**unit_data()).model_dump()))
                session.flush()
                cancel.set()

        assert repo.count() == 0


# ---------------------------------------------------------------------------
# Lookup columns and text search
# ---------------------------------------------------------------------------

class TestLookups:

    def test_hash_and_normalized_source(self, backend):
        repo = UnitRepository(backend)
        unit = repo.insert(UnitCreate(**unit_data("  Hello   WORLD ", "Hallo Welt")))

        assert unit.source_normalized == "hello world"
        assert unit.source_hash == compute_hash("hello world", "en", "de")

    def test_exact_lookup_ignores_case_and_spacing(self, backend):
        repo = UnitRepository(backend)
        repo.insert(UnitCreate(**unit_data("Hello world", "Hallo Welt")))
        assert len(repo.find_exact("hello   WORLD", "en", "de")) == 1
        assert repo.find_exact("hello world", "en", "fr") == []

    def test_exists_pair(self, backend):
        repo = UnitRepository(backend)
        repo.insert(UnitCreate(**unit_data("Hello world", "Hallo Welt")))
        assert repo.exists_pair("p1", "Hello world", "Hallo Welt", "en", "de")
        assert not repo.exists_pair("p1", "Hello world", "Servus Welt", "en", "de")

    @pytest.mark.asyncio
    async def test_search_units_relevance(self, tm_service):
        await tm_service.add_unit(unit_data("Say hello world", "Sag hallo Welt"))
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        await tm_service.add_unit(unit_data("Hello world and more", "Hallo Welt und mehr"))

        results = await tm_service.search_units("p1", "hello world")
        assert [u.source_text for u in results] == [
            "Hello world", "Hello world and more", "Say hello world",
        ]

    @pytest.mark.asyncio
    async def test_search_units_escapes_wildcards(self, tm_service):
        await tm_service.add_unit(unit_data("100% done", "100 % erledigt"))
        await tm_service.add_unit(unit_data("1000 done", "1000 erledigt"))

        results = await tm_service.search_units("p1", "100%")
        assert [u.source_text for u in results] == ["100% done"]

    @pytest.mark.asyncio
    async def test_exact_search_normalizes_both_sides(self, tm_service):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        await tm_service.add_unit(unit_data("Hello world again", "Hallo Welt nochmal"))

        by_source = await tm_service.search_units("p1", "  HELLO   world ", exact=True)
        by_target = await tm_service.search_units("p1", "hallo  WELT", exact=True)

        assert [u.source_text for u in by_source] == ["Hello world"]
        assert [u.source_text for u in by_target] == ["Hello world"]
