"""Tests for tmcore/tm/matcher.py: similarity functions and ranking."""
from datetime import datetime, timedelta

import pytest

from tmcore.database.base import normalize_text
from tmcore.tm.matcher import (
    TMMatcher,
    char_ngrams,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    ngram_similarity,
    tokenize,
)
from tmcore.tm.models import TranslationUnit
from tmcore.tm.schemas import MatchType


def make_unit(source, target, confidence=0.8, updated=None, unit_id=None):
    unit = TranslationUnit(
        id=unit_id or f"u-{source[:8]}-{target[:8]}",
        project_id="p1",
        source_language="en",
        source_text=source,
        target_language="de",
        target_text=target,
        confidence_score=confidence,
    )
    unit.source_normalized = normalize_text(source)
    unit.updated_at = updated or datetime(2024, 1, 1)
    return unit


# ---------------------------------------------------------------------------
# Similarity functions
# ---------------------------------------------------------------------------

class TestSimilarity:

    def test_levenshtein_distance(self):
        assert levenshtein_distance("hello", "world") == 4
        assert levenshtein_distance("", "abc") == 3

    def test_levenshtein_similarity(self):
        assert levenshtein_similarity("hello", "hallo") == pytest.approx(0.8)
        assert levenshtein_similarity("", "") == 1.0

    def test_jaccard(self):
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity(set(), set()) == 1.0

    def test_tokenize_normalizes(self):
        assert tokenize("Hello,  WORLD!") == {"hello", "world"}

    def test_char_ngrams_short_text(self):
        assert char_ngrams("ab", 3) == {"ab"}
        assert char_ngrams("", 3) == set()

    def test_ngram_similarity_identical(self):
        assert ngram_similarity("translation", "Translation") == 1.0


# ---------------------------------------------------------------------------
# TMMatcher
# ---------------------------------------------------------------------------

class TestTMMatcher:

    def test_exact_matches_rank_first(self):
        matcher = TMMatcher()
        exact = make_unit("Hello world", "Hallo Welt", confidence=0.5)
        fuzzy = make_unit("Hello world again", "Hallo Welt wieder", confidence=1.0)

        matches = matcher.match("Hello world", [exact], [exact, fuzzy], 0.3)

        assert matches[0].match_type == MatchType.EXACT
        assert matches[0].similarity_score == 1.0
        assert matches[1].unit_id == fuzzy.id

    def test_duplicates_merged_by_text_pair(self):
        matcher = TMMatcher()
        older = make_unit("Hello world", "Hallo Welt", unit_id="old")
        newer = make_unit(
            "Hello world", "Hallo Welt", unit_id="new",
            updated=datetime(2024, 1, 1) + timedelta(days=1),
        )

        matches = matcher.match("Hello world", [older, newer], [older, newer], 0.3)

        assert len(matches) == 1
        assert matches[0].unit_id == "new"

    def test_floor_filters_candidates(self):
        matcher = TMMatcher()
        unrelated = make_unit("Completely different sentence about the weather", "Ganz anders")
        assert matcher.match("Hello world", [], [unrelated], 0.3) == []

    def test_ranking_by_confidence_and_similarity(self):
        matcher = TMMatcher()
        weak = make_unit("The quick brown fox", "Der schnelle braune Fuchs", confidence=0.2)
        strong = make_unit("The quick brown dog", "Der schnelle braune Hund", confidence=0.9)

        matches = matcher.match("The quick brown cat", [], [weak, strong], 0.3)

        assert [m.unit_id for m in matches] == [strong.id, weak.id]
        for m in matches:
            assert 0.3 <= m.similarity_score <= 1.0

    def test_max_results(self):
        matcher = TMMatcher(max_results=2)
        units = [make_unit(f"Hello world {i}", f"Hallo Welt {i}") for i in range(5)]
        assert len(matcher.match("Hello world", [], units, 0.3)) == 2
        assert len(matcher.match("Hello world", [], units, 0.3, max_results=0)) == 5

    def test_ngram_needs_significant_word(self):
        matcher = TMMatcher()
        unit = make_unit("an ox", "ein Ochse")
        assert matcher.find_ngram("an ox", [unit], 0.1) == []

    def test_stats(self):
        matcher = TMMatcher()
        matcher.match("Hello", [], [], 0.3)
        assert matcher.get_stats()["queries"] == 1
