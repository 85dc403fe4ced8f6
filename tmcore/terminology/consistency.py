"""
Terminology Consistency Checker
Cross-language do-not-translate drift and similarity-based term suggestions.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from tmcore.cache import ProjectCache, compile_term_pattern
from tmcore.config.settings import settings
from tmcore.tm.matcher import levenshtein_similarity
from .schemas import (
    ConsistencyCheckResult,
    LanguageInconsistency,
    TermResponse,
    TerminologySuggestion,
)

logger = logging.getLogger(__name__)

SIGNIFICANT_WORD = re.compile(r"\b[A-Za-z]{3,}\b")

STOPWORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
    "how", "man", "new", "now", "old", "see", "two", "way", "who", "boy",
    "did", "its", "let", "put", "say", "she", "too", "use",
})


def term_variants(term: str) -> List[str]:
    """Case and plural variants of a term, canonical first, no duplicates."""
    candidates = [
        term,
        term.lower(),
        term.upper(),
        term.title(),
        f"{term}s",
        f"{term}es",
    ]
    seen = set()
    variants = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            variants.append(candidate)
    return variants


class ConsistencyChecker:
    """Finds non-canonical uses of do-not-translate terms and near-miss terms."""

    def __init__(self, cache: ProjectCache):
        self.cache = cache

    async def find_variant_occurrences(
        self,
        term: TermResponse,
        text: str,
    ) -> Dict[str, List[int]]:
        """Start offsets of every non-canonical variant of a term in text."""
        found: Dict[str, List[int]] = {}
        for variant in term_variants(term.term)[1:]:
            pattern = await self.cache.get_pattern(term.id, variant, True, compile_term_pattern)
            positions = [m.start() for m in pattern.finditer(text)]
            if positions:
                found[variant] = positions
        return found

    async def check_consistency(
        self,
        texts_by_language: Dict[str, str],
        terms: Sequence[TermResponse],
        project_id: str,
    ) -> ConsistencyCheckResult:
        """
        Scan every language for variants of each do-not-translate term.

        Any non-canonical variant (case change, simple plural) is reported
        with its positions and the canonical form as the suggestion.
        """
        dnt_terms = [t for t in terms if t.do_not_translate]
        result = ConsistencyCheckResult(
            project_id=project_id,
            checked_terms=len(dnt_terms),
            languages=sorted(texts_by_language),
        )

        for term in dnt_terms:
            for language in sorted(texts_by_language):
                found = await self.find_variant_occurrences(term, texts_by_language[language] or "")
                if not found:
                    continue
                positions = sorted({p for offsets in found.values() for p in offsets})
                result.inconsistencies.append(LanguageInconsistency(
                    language=language,
                    term_id=term.id,
                    expected_term=term.term,
                    found_terms=list(found),
                    positions=positions,
                    suggestion=term.term,
                ))

        logger.info(
            f"Consistency check for project {project_id}: "
            f"{len(result.inconsistencies)} inconsistencies in {len(result.languages)} languages"
        )
        return result

    def suggest(
        self,
        text: str,
        terms: Sequence[TermResponse],
        min_similarity: Optional[float] = None,
        max_similarity: Optional[float] = None,
    ) -> List[TerminologySuggestion]:
        """
        Words that are similar to, but not the same as, a known term.

        Only words of 3+ letters outside the stopword list are scored. The
        best term per word is kept when its similarity is inside the open
        (min, max) band.
        """
        low = settings.term_suggestion_min if min_similarity is None else min_similarity
        high = settings.term_suggestion_max if max_similarity is None else max_similarity
        if not terms:
            return []

        folded_terms = [(t, t.term.casefold()) for t in terms]
        suggestions: List[TerminologySuggestion] = []

        for match in SIGNIFICANT_WORD.finditer(text):
            word = match.group(0)
            folded = word.casefold()
            if folded in STOPWORDS:
                continue

            best: Optional[TermResponse] = None
            best_score = 0.0
            for term, folded_term in folded_terms:
                score = levenshtein_similarity(folded, folded_term)
                if low < score < high and score > best_score:
                    best, best_score = term, score

            if best is not None:
                suggestions.append(TerminologySuggestion(
                    text=word,
                    start=match.start(),
                    end=match.end(),
                    suggested_term=best.term,
                    term_id=best.id,
                    confidence=round(best_score, 4),
                    reason=f"Similar to existing term '{best.term}' ({best_score * 100:.0f}% match)",
                ))

        suggestions.sort(key=lambda s: (-s.confidence, s.start))
        return suggestions
