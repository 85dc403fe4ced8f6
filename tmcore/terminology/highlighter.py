"""
Term Highlighter
Finds project terms in text with word-boundary anchored, cached patterns.
"""

import logging
from typing import List, Optional, Sequence, Set, Tuple

from tmcore.cache import ProjectCache, compile_term_pattern
from tmcore.config.settings import settings
from tmcore.exceptions import ValidationError
from .consistency import ConsistencyChecker, term_variants
from .schemas import HighlightType, TermHighlight, TermResponse

logger = logging.getLogger(__name__)

# Confidence of a case/plural variant of a do-not-translate term
VARIANT_CONFIDENCE = 0.8


def _overlaps(start: int, end: int, taken: Set[Tuple[int, int]]) -> bool:
    return any(not (end <= s or e <= start) for s, e in taken)


class TermHighlighter:
    """
    Highlight engine.

    Canonical hits are typed do-not-translate or validated with full
    confidence. Non-canonical variants of do-not-translate terms are typed
    inconsistent. Near-miss words are typed suggested when requested.
    Longest terms claim text first; highlights never overlap.
    """

    def __init__(self, cache: ProjectCache, checker: ConsistencyChecker):
        self.cache = cache
        self.checker = checker

    async def highlight(
        self,
        text: str,
        terms: Sequence[TermResponse],
        include_suggestions: bool = False,
    ) -> List[TermHighlight]:
        """Ordered highlights for text."""
        if not text or not terms:
            return []

        highlights: List[TermHighlight] = []
        taken: Set[Tuple[int, int]] = set()
        ordered = sorted(terms, key=lambda t: len(t.term), reverse=True)

        for term in ordered:
            pattern = await self.cache.get_pattern(
                term.id, term.term, settings.highlight_case_sensitive, compile_term_pattern
            )
            highlight_type = (
                HighlightType.DO_NOT_TRANSLATE if term.do_not_translate else HighlightType.VALIDATED
            )
            for match in pattern.finditer(text):
                start, end = match.start(), match.end()
                if _overlaps(start, end, taken):
                    continue
                taken.add((start, end))
                highlights.append(TermHighlight(
                    term_id=term.id,
                    term=term.term,
                    start=start,
                    end=end,
                    highlight_type=highlight_type,
                    definition=term.definition,
                    confidence=1.0,
                ))

        for term in ordered:
            if not term.do_not_translate:
                continue
            for variant in term_variants(term.term)[1:]:
                pattern = await self.cache.get_pattern(term.id, variant, True, compile_term_pattern)
                for match in pattern.finditer(text):
                    start, end = match.start(), match.end()
                    if _overlaps(start, end, taken):
                        continue
                    taken.add((start, end))
                    highlights.append(TermHighlight(
                        term_id=term.id,
                        term=term.term,
                        start=start,
                        end=end,
                        highlight_type=HighlightType.INCONSISTENT,
                        definition=term.definition,
                        confidence=VARIANT_CONFIDENCE,
                    ))

        if include_suggestions:
            for suggestion in self.checker.suggest(text, terms):
                if _overlaps(suggestion.start, suggestion.end, taken):
                    continue
                taken.add((suggestion.start, suggestion.end))
                highlights.append(TermHighlight(
                    term_id=suggestion.term_id,
                    term=suggestion.suggested_term,
                    start=suggestion.start,
                    end=suggestion.end,
                    highlight_type=HighlightType.SUGGESTED,
                    definition=suggestion.reason,
                    confidence=suggestion.confidence,
                ))

        highlights.sort(key=lambda h: (h.start, h.end))
        return highlights

    async def highlight_change(
        self,
        text: str,
        change_start: int,
        change_end: int,
        terms: Sequence[TermResponse],
        padding: Optional[int] = None,
        include_suggestions: bool = False,
    ) -> List[TermHighlight]:
        """
        Re-highlight only the region around an edit.

        The window is the change padded on both sides plus the longest term
        length, so a term overlapping the padded range is always whole. It is
        then widened to the nearest whitespace (at most another padding) so no
        word is cut.
        Offsets are relative to the full text.
        """
        if not 0 <= change_start <= change_end <= len(text):
            raise ValidationError(
                "change_range",
                f"[{change_start}, {change_end}) outside text of length {len(text)}",
            )
        padding = settings.highlight_window_padding if padding is None else padding

        reach = padding + max((len(t.term) for t in terms), default=0)
        start = max(0, change_start - reach)
        end = min(len(text), change_end + reach)
        floor, ceiling = max(0, start - padding), min(len(text), end + padding)
        while start > floor and not text[start - 1].isspace():
            start -= 1
        while end < ceiling and not text[end].isspace():
            end += 1

        window = await self.highlight(text[start:end], terms, include_suggestions)
        for item in window:
            item.start += start
            item.end += start
        logger.debug(f"Incremental highlight over [{start}, {end}): {len(window)} hits")
        return window
