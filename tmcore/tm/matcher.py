"""
Translation Memory Matcher
Exact, fuzzy and n-gram matching of a query against stored units.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from rapidfuzz.distance import Levenshtein

from tmcore.database.base import normalize_text
from .models import TranslationUnit
from .schemas import MatchType, TranslationMatch

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+", re.UNICODE)

# Earlier strategies win ties when the same pair is found twice
_STRATEGY_PRIORITY = {MatchType.EXACT: 0, MatchType.FUZZY: 1, MatchType.NGRAM: 2}


# ==================== SIMILARITY FUNCTIONS ====================

def tokenize(text: str) -> Set[str]:
    """Word set of normalized text."""
    return set(_WORD.findall(normalize_text(text)))


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B| over two token collections."""
    set_a, set_b = set(a), set(b)
    if not set_a and not set_b:
        return 1.0
    union = set_a | set_b
    return len(set_a & set_b) / len(union)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings."""
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max_len, in [0, 1]."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def char_ngrams(text: str, n: int = 3) -> Set[str]:
    """Sliding-window character n-grams of normalized text."""
    text = normalize_text(text)
    if len(text) < n:
        return {text} if text else set()
    return {text[i:i + n] for i in range(len(text) - n + 1)}


def ngram_similarity(a: str, b: str, n: int = 3) -> float:
    """Jaccard overlap of character n-grams."""
    grams_a, grams_b = char_ngrams(a, n), char_ngrams(b, n)
    if not grams_a or not grams_b:
        return 0.0
    return jaccard_similarity(grams_a, grams_b)


# ==================== MATCHER ====================

@dataclass
class MatchResult:
    """Internal candidate before conversion to a TranslationMatch."""
    unit: TranslationUnit
    similarity: float
    match_type: MatchType

    @property
    def pair_key(self) -> Tuple[str, str]:
        return (self.unit.source_text, self.unit.target_text)


@dataclass
class TMMatcher:
    """
    Multi-strategy matcher.

    Strategies escalate from exact to fuzzy to n-gram. Results are merged by
    source+target text keeping the best score, then ranked by the mean of
    confidence and similarity with exact matches first.
    """
    similarity_floor: float = 0.3
    short_text_length: int = 32
    ngram_size: int = 3
    ngram_min_word_length: int = 4
    max_results: int = 20
    _stats: Dict[str, int] = field(default_factory=lambda: {"queries": 0, "matches": 0})

    def find_exact(self, units: Iterable[TranslationUnit]) -> List[MatchResult]:
        return [MatchResult(unit, 1.0, MatchType.EXACT) for unit in units]

    def find_fuzzy(
        self,
        query: str,
        candidates: Iterable[TranslationUnit],
        floor: float,
    ) -> List[MatchResult]:
        """Token-set Jaccard; short strings also get Levenshtein similarity."""
        query_norm = normalize_text(query)
        query_tokens = set(_WORD.findall(query_norm))
        query_is_short = len(query_norm) <= self.short_text_length

        results = []
        for unit in candidates:
            candidate_tokens = set(_WORD.findall(unit.source_normalized))
            score = jaccard_similarity(query_tokens, candidate_tokens)
            if query_is_short and len(unit.source_normalized) <= self.short_text_length:
                score = max(score, levenshtein_similarity(query_norm, unit.source_normalized))
            if score >= floor:
                results.append(MatchResult(unit, min(score, 1.0), MatchType.FUZZY))
        return results

    def find_ngram(
        self,
        query: str,
        candidates: Iterable[TranslationUnit],
        floor: float,
    ) -> List[MatchResult]:
        """Character n-gram overlap for reordered or partially paraphrased text."""
        significant = {
            w for w in tokenize(query) if len(w) >= self.ngram_min_word_length
        }
        if not significant:
            return []

        query_grams = char_ngrams(query, self.ngram_size)
        results = []
        for unit in candidates:
            candidate_words = set(_WORD.findall(unit.source_normalized))
            if not significant & candidate_words:
                continue
            score = jaccard_similarity(query_grams, char_ngrams(unit.source_normalized, self.ngram_size))
            if score >= floor:
                results.append(MatchResult(unit, score, MatchType.NGRAM))
        return results

    def match(
        self,
        query: str,
        exact_units: List[TranslationUnit],
        candidates: List[TranslationUnit],
        similarity_floor: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> List[TranslationMatch]:
        """Run every strategy, merge, rank and truncate (max_results=0: no limit)."""
        floor = self.similarity_floor if similarity_floor is None else similarity_floor
        limit = self.max_results if max_results is None else max_results

        merged: Dict[Tuple[str, str], MatchResult] = {}
        for result in (
            self.find_exact(exact_units)
            + self.find_fuzzy(query, candidates, floor)
            + self.find_ngram(query, candidates, floor)
        ):
            current = merged.get(result.pair_key)
            if current is None or self._better(result, current):
                merged[result.pair_key] = result

        ranked = sorted(merged.values(), key=self._rank_key)
        if limit > 0:
            ranked = ranked[:limit]

        self._stats["queries"] += 1
        self._stats["matches"] += len(ranked)
        logger.debug(f"Matched {len(ranked)} candidates for query '{query[:40]}'")

        return [self._to_match(r) for r in ranked]

    @staticmethod
    def _better(new: MatchResult, current: MatchResult) -> bool:
        if new.similarity != current.similarity:
            return new.similarity > current.similarity
        if _STRATEGY_PRIORITY[new.match_type] != _STRATEGY_PRIORITY[current.match_type]:
            return _STRATEGY_PRIORITY[new.match_type] < _STRATEGY_PRIORITY[current.match_type]
        return (new.unit.updated_at or datetime.min) > (current.unit.updated_at or datetime.min)

    @staticmethod
    def _rank_key(result: MatchResult):
        ranking = (result.unit.confidence_score + result.similarity) / 2
        updated = result.unit.updated_at.timestamp() if result.unit.updated_at else 0.0
        return (
            0 if result.match_type == MatchType.EXACT else 1,
            -ranking,
            -updated,
        )

    @staticmethod
    def _to_match(result: MatchResult) -> TranslationMatch:
        unit = result.unit
        return TranslationMatch(
            unit_id=unit.id,
            project_id=unit.project_id,
            source_text=unit.source_text,
            target_text=unit.target_text,
            source_language=unit.source_language,
            target_language=unit.target_language,
            confidence_score=unit.confidence_score,
            similarity_score=round(result.similarity, 6),
            match_type=result.match_type,
            updated_at=unit.updated_at,
        )

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
