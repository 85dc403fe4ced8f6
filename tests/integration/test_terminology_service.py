"""Integration tests: TerminologyService over SQLite."""
import threading

import pytest

from tmcore.exceptions import NotFoundError, OperationCancelledError, ValidationError
from tmcore.terminology.schemas import HighlightType, TermCreate

CSV_CONTENT = (
    "term,definition,do_not_translate\n"
    "API,Application programming interface,true\n"
    "widget,UI element,false\n"
    ",missing term,false\n"
    "JSON,Data format,maybe\n"
)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestTermCrud:

    @pytest.mark.asyncio
    async def test_add_and_get(self, term_service):
        term = await term_service.add_term({"project_id": "p1", "term": "  API ", "do_not_translate": True})

        assert term.term == "API"
        fetched = await term_service.get_term(term.id)
        assert fetched.do_not_translate is True

    @pytest.mark.asyncio
    async def test_duplicate_is_case_insensitive(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "API"})
        with pytest.raises(ValidationError):
            await term_service.add_term({"project_id": "p1", "term": "api"})
        # other projects are independent
        await term_service.add_term({"project_id": "p2", "term": "api"})

    @pytest.mark.asyncio
    async def test_empty_term_rejected(self, term_service):
        with pytest.raises(ValidationError) as exc_info:
            await term_service.add_term({"project_id": "p1", "term": "  "})
        assert exc_info.value.field == "term"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, term_service):
        term = await term_service.add_term({"project_id": "p1", "term": "widget"})

        updated = await term_service.update_term(term.id, {"definition": "UI element"})
        assert updated.definition == "UI element"

        assert await term_service.delete_term(term.id) is True
        assert await term_service.delete_term(term.id) is False
        with pytest.raises(NotFoundError):
            await term_service.get_term(term.id)
        with pytest.raises(NotFoundError):
            await term_service.update_term(term.id, {"definition": "x"})

    @pytest.mark.asyncio
    async def test_batch_is_atomic(self, term_service):
        items = [
            TermCreate(project_id="p1", term="API"),
            TermCreate(project_id="p1", term="widget"),
            TermCreate(project_id="p1", term="api"),
        ]
        with pytest.raises(ValidationError):
            await term_service.add_terms(items)
        assert await term_service.get_terms("p1") == []

    @pytest.mark.asyncio
    async def test_cancelled_batch(self, term_service):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            await term_service.add_terms([TermCreate(project_id="p1", term="API")], cancel_event=cancel)
        assert await term_service.get_terms("p1") == []

    @pytest.mark.asyncio
    async def test_search_terms(self, term_service):
        await term_service.add_terms([
            TermCreate(project_id="p1", term="database"),
            TermCreate(project_id="p1", term="data"),
            TermCreate(project_id="p1", term="metadata"),
        ])
        results = await term_service.search_terms("p1", "data")
        assert [t.term for t in results][0] == "data"
        assert {t.term for t in results} == {"data", "database", "metadata"}

        exact = await term_service.search_terms("p1", "DATA", exact=True)
        assert [t.term for t in exact] == ["data"]


# ---------------------------------------------------------------------------
# Cache coherence
# ---------------------------------------------------------------------------

class TestTermCache:

    @pytest.mark.asyncio
    async def test_terms_cached_until_write(self, term_service, cache):
        await term_service.add_term({"project_id": "p1", "term": "API"})
        first = await term_service.get_terms("p1")
        second = await term_service.get_terms("p1")
        assert first is second

        await term_service.add_term({"project_id": "p1", "term": "widget"})
        third = await term_service.get_terms("p1")
        assert {t.term for t in third} == {"API", "widget"}

    @pytest.mark.asyncio
    async def test_highlight_sees_updated_term(self, term_service):
        term = await term_service.add_term({"project_id": "p1", "term": "API", "do_not_translate": True})
        text = "The API and the SDK."
        assert len(await term_service.highlight(text, "p1", "en")) == 1

        await term_service.update_term(term.id, {"term": "SDK"})
        highlights = await term_service.highlight(text, "p1", "en")

        assert [(h.start, h.end) for h in highlights] == [(16, 19)]
        assert highlights[0].term == "SDK"

    @pytest.mark.asyncio
    async def test_delete_drops_highlight(self, term_service):
        term = await term_service.add_term({"project_id": "p1", "term": "API"})
        await term_service.highlight("The API", "p1", "en")
        await term_service.delete_term(term.id)
        assert await term_service.highlight("The API", "p1", "en") == []


# ---------------------------------------------------------------------------
# Highlighting and consistency through the service
# ---------------------------------------------------------------------------

class TestTermAnalysis:

    @pytest.mark.asyncio
    async def test_highlight(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "API", "do_not_translate": True})
        highlights = await term_service.highlight("The API uses JSON.", "p1", "en")

        assert len(highlights) == 1
        assert (highlights[0].start, highlights[0].end) == (4, 7)
        assert highlights[0].highlight_type == HighlightType.DO_NOT_TRANSLATE
        assert highlights[0].confidence == 1.0

    @pytest.mark.asyncio
    async def test_incremental_highlight(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "API", "do_not_translate": True})
        text = "filler " * 30 + "new API text"
        start = text.index("API")

        highlights = await term_service.update_highlighting_for_text_change(text, start, start + 3, "p1", "en")
        assert [(h.start, h.end) for h in highlights] == [(start, start + 3)]

    @pytest.mark.asyncio
    async def test_check_consistency(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "API", "do_not_translate": True})
        result = await term_service.check_consistency(
            {"en": "Call the API.", "de": "Rufen Sie die Api auf."}, "p1"
        )
        assert [i.language for i in result.inconsistencies] == ["de"]
        assert result.inconsistencies[0].found_terms == ["Api"]

    @pytest.mark.asyncio
    async def test_suggest(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "widget"})
        suggestions = await term_service.suggest("A widgit broke", "p1", "en")
        assert [s.suggested_term for s in suggestions] == ["widget"]


# ---------------------------------------------------------------------------
# CSV import/export
# ---------------------------------------------------------------------------

class TestCsvImport:

    @pytest.mark.asyncio
    async def test_import_reports_per_row(self, term_service):
        result = await term_service.import_terms_csv("p1", CSV_CONTENT)

        assert result.total_rows == 4
        assert result.imported == 2
        assert result.skipped == 2
        assert [w.field for w in result.warnings] == ["term"]
        assert [e.field for e in result.errors] == ["do_not_translate"]
        terms = {t.term: t for t in await term_service.get_terms("p1")}
        assert set(terms) == {"API", "widget"}
        assert terms["API"].do_not_translate is True

    @pytest.mark.asyncio
    async def test_import_is_idempotent(self, term_service):
        await term_service.import_terms_csv("p1", CSV_CONTENT)
        before = sorted(t.term for t in await term_service.get_terms("p1"))

        second = await term_service.import_terms_csv("p1", CSV_CONTENT)

        assert second.imported == 0
        assert [c.term for c in second.conflicts] == ["API", "widget"]
        assert sorted(t.term for t in await term_service.get_terms("p1")) == before

    @pytest.mark.asyncio
    async def test_conflict_reports_definitions(self, term_service):
        await term_service.add_term({"project_id": "p1", "term": "API", "definition": "Old"})
        result = await term_service.import_terms_csv("p1", "term,definition\napi,New\n")

        conflict = result.conflicts[0]
        assert conflict.existing_definition == "Old"
        assert conflict.new_definition == "New"
        assert conflict.definition_differs

    @pytest.mark.asyncio
    async def test_repeat_within_file_is_conflict(self, term_service):
        result = await term_service.import_terms_csv("p1", "term\nAPI\nAPI\n")
        assert result.imported == 1
        assert len(result.conflicts) == 1

    @pytest.mark.asyncio
    async def test_cancelled_import(self, term_service):
        cancel = threading.Event()
        cancel.set()
        result = await term_service.import_terms_csv("p1", "term\nA1\nB2\n", cancel_event=cancel)
        assert result.cancelled
        assert result.imported == 0
        assert result.skipped == 2

    @pytest.mark.asyncio
    async def test_missing_column(self, term_service):
        with pytest.raises(ValidationError):
            await term_service.import_terms_csv("p1", "name\nAPI\n")

    @pytest.mark.asyncio
    async def test_export_round_trip(self, term_service):
        await term_service.import_terms_csv("p1", CSV_CONTENT)
        exported = await term_service.export_terms_csv("p1")

        result = await term_service.import_terms_csv("p2", exported)
        assert result.imported == 2
        assert result.errors == []
        p2_terms = {t.term: t.do_not_translate for t in await term_service.get_terms("p2")}
        assert p2_terms == {"API": True, "widget": False}
