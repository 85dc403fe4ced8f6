"""Integration tests: search, editor suggestions and confidence indicators."""
import asyncio

import pytest

from tmcore.tm import calculate_auto_confidence
from tmcore.tm.schemas import (
    ConfidenceIndicator,
    IndicatorType,
    LanguagePair,
    MatchType,
    SearchFilters,
    SuggestionOptions,
)


def unit_data(source, target, project_id="p1", source_language="en", target_language="de", **extra):
    data = {
        "project_id": project_id,
        "source_language": source_language,
        "source_text": source,
        "target_language": target_language,
        "target_text": target,
    }
    data.update(extra)
    return data


NO_DELAY = SuggestionOptions(delay_ms=0, confidence_threshold=0.7, max_results=5)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestSearch:

    @pytest.mark.asyncio
    async def test_exact_match_first(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world again", "Hallo Welt nochmal", confidence_score=1.0))
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", confidence_score=0.5))

        matches = await tm_service.search("hello  WORLD", en_de)

        assert matches[0].match_type == MatchType.EXACT
        assert matches[0].target_text == "Hallo Welt"
        assert matches[0].similarity_score == 1.0
        assert len(matches) == 2

    @pytest.mark.asyncio
    async def test_empty_query(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        assert await tm_service.search("   ", en_de) == []

    @pytest.mark.asyncio
    async def test_results_respect_floor(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("The weather is nice today in Berlin", "Das Wetter ist heute schön"))
        await tm_service.add_unit(unit_data("The weather is bad", "Das Wetter ist schlecht"))
        await tm_service.add_unit(unit_data("Completely unrelated content here", "Etwas anderes"))

        matches = await tm_service.search("The weather is nice", en_de, similarity_floor=0.5)
        assert matches
        assert all(m.similarity_score >= 0.5 for m in matches)
        assert "Etwas anderes" not in [m.target_text for m in matches]

    @pytest.mark.asyncio
    async def test_language_pair_isolation(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Bonjour le monde", target_language="fr"))
        assert await tm_service.search("Hello world", en_de) == []

    @pytest.mark.asyncio
    async def test_project_scope(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", project_id="p1"))
        await tm_service.add_unit(unit_data("Hello world", "Servus Welt", project_id="p2"))

        scoped = await tm_service.search("Hello world", en_de, project_id="p2")
        assert [m.target_text for m in scoped] == ["Servus Welt"]
        assert len(await tm_service.search("Hello world", en_de)) == 2

    @pytest.mark.asyncio
    async def test_filters(self, tm_service, en_de):
        for i, confidence in enumerate([0.2, 0.6, 0.9]):
            await tm_service.add_unit(unit_data(f"Hello world {i}", f"Hallo Welt {i}", confidence_score=confidence))

        confident = await tm_service.search("Hello world", en_de, filters=SearchFilters(min_confidence=0.5))
        assert {m.confidence_score for m in confident} == {0.6, 0.9}

        limited = await tm_service.search("Hello world", en_de, filters=SearchFilters(max_results=1))
        assert len(limited) == 1
        assert limited[0].confidence_score == 0.9

    @pytest.mark.asyncio
    async def test_ranking_is_ordered(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("The quick brown fox jumps", "Der schnelle Fuchs springt", confidence_score=0.3))
        await tm_service.add_unit(unit_data("The quick brown fox runs", "Der schnelle Fuchs rennt", confidence_score=0.95))

        matches = await tm_service.search("The quick brown fox walks", en_de)
        rankings = [m.ranking_score for m in matches if m.match_type != MatchType.EXACT]
        assert rankings == sorted(rankings, reverse=True)

    @pytest.mark.asyncio
    async def test_duplicate_pairs_merged(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", project_id="p2"))

        matches = await tm_service.search("Hello world", en_de)
        assert len(matches) == 1


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class TestSuggestions:

    @pytest.mark.asyncio
    async def test_suggest_returns_confident_matches(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", confidence_score=0.9))
        await tm_service.add_unit(unit_data("Hello world friends", "Hallo Welt Freunde", confidence_score=0.1))

        result = await tm_service.suggest("editor-1", "Hello world", en_de, options=NO_DELAY)

        assert not result.superseded
        assert [s.target_text for s in result.suggestions] == ["Hallo Welt"]

    @pytest.mark.asyncio
    async def test_newer_request_supersedes(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        options = SuggestionOptions(delay_ms=50)

        first, second = await asyncio.gather(
            tm_service.suggest("editor-1", "Hello", en_de, options=options),
            tm_service.suggest("editor-1", "Hello world", en_de, options=options),
        )

        assert first.superseded and first.suggestions == []
        assert not second.superseded
        assert second.suggestions[0].target_text == "Hallo Welt"

    @pytest.mark.asyncio
    async def test_sessions_debounce_independently(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))
        options = SuggestionOptions(delay_ms=20)

        a, b = await asyncio.gather(
            tm_service.suggest("editor-a", "Hello world", en_de, options=options),
            tm_service.suggest("editor-b", "Hello world", en_de, options=options),
        )
        assert not a.superseded and not b.superseded

    @pytest.mark.asyncio
    async def test_finished_sessions_are_forgotten(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))

        for n in range(5):
            await tm_service.suggest(f"editor-{n}", "Hello world", en_de, options=NO_DELAY)

        assert tm_service._generations == {}

    @pytest.mark.asyncio
    async def test_slow_request_superseded_after_newer_one_finished(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))

        slow = asyncio.create_task(
            tm_service.suggest("editor-1", "Hello", en_de, options=SuggestionOptions(delay_ms=80))
        )
        await asyncio.sleep(0)
        fast = await tm_service.suggest("editor-1", "Hello world", en_de, options=NO_DELAY)
        again = await tm_service.suggest("editor-1", "Hello world", en_de, options=NO_DELAY)

        assert not fast.superseded and not again.superseded
        assert (await slow).superseded
        assert tm_service._generations == {}

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt"))

        first = await tm_service.suggest("editor-1", "Hello world", en_de, options=NO_DELAY)
        second = await tm_service.suggest("editor-1", "hello world", en_de, options=NO_DELAY)

        assert not first.from_cache
        assert second.from_cache
        assert second.suggestions == first.suggestions

    @pytest.mark.asyncio
    async def test_write_invalidates_cached_suggestions(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", confidence_score=0.75))
        await tm_service.suggest("editor-1", "Hello world", en_de, project_id="p1", options=NO_DELAY)

        await tm_service.add_unit(unit_data("Hello world", "Hallo, Welt!", confidence_score=0.95))
        result = await tm_service.suggest("editor-1", "Hello world", en_de, project_id="p1", options=NO_DELAY)

        assert not result.from_cache
        assert "Hallo, Welt!" in [s.target_text for s in result.suggestions]

    @pytest.mark.asyncio
    async def test_max_results(self, tm_service, en_de):
        for i in range(4):
            await tm_service.add_unit(unit_data("Hello world", f"Hallo Welt {i}", confidence_score=0.9))
        options = SuggestionOptions(delay_ms=0, confidence_threshold=0.7, max_results=2)

        result = await tm_service.suggest("editor-1", "Hello world", en_de, options=options)
        assert len(result.suggestions) == 2


class TestEditorUnits:

    @pytest.mark.asyncio
    async def test_apply_suggestion(self, tm_service, en_de):
        await tm_service.add_unit(unit_data("Hello world", "Hallo Welt", confidence_score=0.9))
        result = await tm_service.suggest("editor-1", "Hello world", en_de, options=NO_DELAY)

        unit = await tm_service.apply_suggestion("p2", "Hello world", result.suggestions[0], en_de, position=3)

        assert unit.project_id == "p2"
        assert unit.target_text == "Hallo Welt"
        indicators = await tm_service.get_confidence_indicators("p2", "Hello world")
        assert indicators[0].position == 3
        assert indicators[0].indicator_type == IndicatorType.SUGGESTED

    @pytest.mark.asyncio
    async def test_auto_create_once(self, tm_service, en_de):
        created = await tm_service.auto_create_unit("p1", "Good morning", "Guten Morgen", en_de)
        again = await tm_service.auto_create_unit("p1", "Good morning", "Guten Morgen", en_de)

        assert created is not None
        assert again is None
        assert 0.1 <= created.confidence_score <= 0.9
        indicators = await tm_service.get_confidence_indicators("p1", "Good morning")
        assert indicators[0].indicator_type == IndicatorType.NEW

    @pytest.mark.asyncio
    async def test_auto_create_skips_blank_text(self, tm_service, en_de):
        assert await tm_service.auto_create_unit("p1", "Hi", "  ", en_de) is None


class TestConfidenceIndicators:

    @pytest.mark.asyncio
    async def test_update_replaces_same_position(self, tm_service):
        first = ConfidenceIndicator(position=5, length=3, confidence=0.4, indicator_type=IndicatorType.LOW)
        second = ConfidenceIndicator(position=5, length=3, confidence=0.9, indicator_type=IndicatorType.HIGH)
        other = ConfidenceIndicator(position=1, length=2, confidence=0.6, indicator_type=IndicatorType.MEDIUM)

        await tm_service.update_confidence_indicator("p1", "Some text", first)
        await tm_service.update_confidence_indicator("p1", "Some text", other)
        indicators = await tm_service.update_confidence_indicator("p1", "Some text", second)

        assert [(i.position, i.confidence) for i in indicators] == [(1, 0.6), (5, 0.9)]

    def test_classify_confidence(self, tm_service):
        assert tm_service.classify_confidence(0.85) == IndicatorType.HIGH
        assert tm_service.classify_confidence(0.6) == IndicatorType.MEDIUM
        assert tm_service.classify_confidence(0.2) == IndicatorType.LOW

    def test_auto_confidence_bounds(self):
        assert calculate_auto_confidence("", "x") == 0.1
        assert 0.1 <= calculate_auto_confidence("Hello", "Hallo") <= 0.9
        long_text = "word " * 40
        assert calculate_auto_confidence(long_text, long_text) < calculate_auto_confidence("Hello there", "Hallo dort")
