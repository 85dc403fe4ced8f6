"""
Per-project caches shared by the match, terminology and alignment engines.

Every map has its own reader/writer lock, so a write to one map never blocks
readers of another. Entries are non-owning copies of stored data: they are
populated on miss, invalidated on write and may be cleared at any time.

Usage:
    cache = ProjectCache()
    terms = await cache.get_terms(project_id, loader)
    await cache.invalidate_project(project_id)
"""

from __future__ import annotations

import logging
import re
from typing import (
    Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, Pattern, Tuple, TypeVar,
)

from .rwlock import AsyncRWLock

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


# ---------------------------------------------------------------------------
# Locked map
# ---------------------------------------------------------------------------

class CacheMap(Generic[K, V]):
    """Dict guarded by an AsyncRWLock with hit/miss counters."""

    def __init__(self, name: str):
        self.name = name
        self._data: Dict[K, V] = {}
        self._lock = AsyncRWLock()
        # bumped on every removal; a load that straddles one is not stored
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: K) -> Optional[V]:
        async with self._lock.read():
            value = self._data.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def set(self, key: K, value: V) -> None:
        async with self._lock.write():
            self._data[key] = value

    async def get_or_load(self, key: K, loader: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value, loading and storing it on a miss."""
        value = await self.get(key)
        if value is not None:
            return value

        generation = self._generation
        loaded = await loader()
        async with self._lock.write():
            if generation != self._generation:
                logger.debug(f"Skipped caching stale {self.name} entry for {key!r}")
                return loaded
            # another task may have filled the slot while we were loading
            return self._data.setdefault(key, loaded)

    async def pop(self, key: K) -> Optional[V]:
        async with self._lock.write():
            self._generation += 1
            return self._data.pop(key, None)

    async def discard_where(self, predicate: Callable[[K], bool]) -> int:
        """Remove every entry whose key matches; returns count removed."""
        async with self._lock.write():
            doomed = [k for k in self._data if predicate(k)]
            self._generation += 1
            for k in doomed:
                del self._data[k]
        return len(doomed)

    async def clear(self) -> None:
        async with self._lock.write():
            self._generation += 1
            self._data.clear()

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._data), "hits": self.hits, "misses": self.misses}


# ---------------------------------------------------------------------------
# Project cache
# ---------------------------------------------------------------------------

PatternKey = Tuple[str, str, bool]  # (term_id, term_text, case_sensitive)


class ProjectCache:
    """
    Term lists, compiled term patterns, suggestion lists, confidence
    indicators and alignment results.
    """

    def __init__(self):
        self.terms: CacheMap[str, List[Any]] = CacheMap("terms")
        self.patterns: CacheMap[PatternKey, Pattern[str]] = CacheMap("patterns")
        self.suggestions: CacheMap[Tuple[str, str, str], List[Any]] = CacheMap("suggestions")
        self.indicators: CacheMap[Tuple[str, str], List[Any]] = CacheMap("indicators")
        self.alignments: CacheMap[str, Any] = CacheMap("alignments")

    # ==================== TERMS ====================

    async def get_terms(
        self,
        project_id: str,
        loader: Callable[[], Awaitable[List[Any]]],
    ) -> List[Any]:
        return await self.terms.get_or_load(project_id, loader)

    async def invalidate_project(self, project_id: str) -> None:
        """Drop every cached list derived from a project's stored data."""
        await self.terms.pop(project_id)
        dropped = await self.suggestions.discard_where(lambda key: key[0] == project_id)
        logger.debug(f"Invalidated cache for project {project_id} ({dropped} suggestion lists)")

    # ==================== PATTERNS ====================

    async def get_pattern(
        self,
        term_id: str,
        term_text: str,
        case_sensitive: bool,
        factory: Callable[[str, bool], Pattern[str]],
    ) -> Pattern[str]:
        key = (term_id, term_text, case_sensitive)
        pattern = await self.patterns.get(key)
        if pattern is None:
            pattern = factory(term_text, case_sensitive)
            await self.patterns.set(key, pattern)
        return pattern

    async def drop_term_patterns(self, term_id: str) -> int:
        return await self.patterns.discard_where(lambda key: key[0] == term_id)

    # ==================== SUGGESTIONS ====================

    async def get_suggestions(self, project_id: str, pair_key: str, text: str) -> Optional[List[Any]]:
        return await self.suggestions.get((project_id, pair_key, text))

    async def put_suggestions(self, project_id: str, pair_key: str, text: str, items: List[Any]) -> None:
        await self.suggestions.set((project_id, pair_key, text), items)

    # ==================== CONFIDENCE INDICATORS ====================

    async def get_indicators(self, project_id: str, text_key: str) -> List[Any]:
        return list(await self.indicators.get((project_id, text_key)) or [])

    async def put_indicators(self, project_id: str, text_key: str, items: List[Any]) -> None:
        await self.indicators.set((project_id, text_key), items)

    async def clear_indicators(self, project_id: str) -> int:
        return await self.indicators.discard_where(lambda key: key[0] == project_id)

    # ==================== ALIGNMENTS ====================

    async def get_alignment(self, key: str) -> Optional[Any]:
        return await self.alignments.get(key)

    async def put_alignment(self, key: str, result: Any) -> None:
        await self.alignments.set(key, result)

    async def clear_alignments(self) -> None:
        await self.alignments.clear()

    # ==================== MAINTENANCE ====================

    async def clear(self) -> None:
        """Drop everything; durable data is untouched."""
        for cache_map in self._maps():
            await cache_map.clear()
        logger.info("Cleared all caches")

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {cache_map.name: cache_map.stats() for cache_map in self._maps()}

    def _maps(self) -> List[CacheMap]:
        return [self.terms, self.patterns, self.suggestions, self.indicators, self.alignments]


def compile_term_pattern(term: str, case_sensitive: bool = True) -> Pattern[str]:
    """Word-boundary anchored pattern that also works for terms like 'C++'."""
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", flags)
