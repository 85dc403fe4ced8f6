"""Tests for tmcore/cache/project_cache.py."""
import asyncio

import pytest

from tmcore.cache import CacheMap, ProjectCache, compile_term_pattern


# ---------------------------------------------------------------------------
# CacheMap
# ---------------------------------------------------------------------------

class TestCacheMap:

    @pytest.mark.asyncio
    async def test_get_counts_hits_and_misses(self):
        m = CacheMap("test")
        assert await m.get("a") is None
        await m.set("a", 1)
        assert await m.get("a") == 1
        assert m.stats() == {"entries": 1, "hits": 1, "misses": 1}

    @pytest.mark.asyncio
    async def test_get_or_load_calls_loader_once(self):
        m = CacheMap("test")
        calls = []

        async def loader():
            calls.append(1)
            return ["x"]

        assert await m.get_or_load("k", loader) == ["x"]
        assert await m.get_or_load("k", loader) == ["x"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_discard_where(self):
        m = CacheMap("test")
        await m.set(("p1", "a"), 1)
        await m.set(("p1", "b"), 2)
        await m.set(("p2", "a"), 3)
        removed = await m.discard_where(lambda key: key[0] == "p1")
        assert removed == 2
        assert len(m) == 1

    @pytest.mark.asyncio
    async def test_load_straddling_clear_is_not_stored(self):
        m = CacheMap("test")
        started = asyncio.Event()
        release = asyncio.Event()

        async def loader():
            started.set()
            await release.wait()
            return ["old"]

        task = asyncio.create_task(m.get_or_load("k", loader))
        await started.wait()
        await m.clear()
        release.set()

        assert await task == ["old"]
        assert await m.get("k") is None


# ---------------------------------------------------------------------------
# ProjectCache
# ---------------------------------------------------------------------------

class TestProjectCache:

    @pytest.mark.asyncio
    async def test_invalidate_project_drops_terms_and_suggestions(self):
        cache = ProjectCache()

        async def loader():
            return ["term"]

        await cache.get_terms("p1", loader)
        await cache.put_suggestions("p1", "en:de", "hello", ["s"])
        await cache.put_suggestions("p2", "en:de", "hello", ["s"])

        await cache.invalidate_project("p1")

        assert await cache.terms.get("p1") is None
        assert await cache.get_suggestions("p1", "en:de", "hello") is None
        assert await cache.get_suggestions("p2", "en:de", "hello") == ["s"]

    @pytest.mark.asyncio
    async def test_invalidation_during_term_load_is_not_overwritten(self):
        cache = ProjectCache()
        started = asyncio.Event()
        release = asyncio.Event()

        async def loader():
            started.set()
            await release.wait()
            return ["stale-term"]

        task = asyncio.create_task(cache.get_terms("p1", loader))
        await started.wait()
        await cache.invalidate_project("p1")
        release.set()
        await task

        assert await cache.terms.get("p1") is None

        async def fresh():
            return ["fresh-term"]

        assert await cache.get_terms("p1", fresh) == ["fresh-term"]

    @pytest.mark.asyncio
    async def test_pattern_compiled_once_per_term(self):
        cache = ProjectCache()
        built = []

        def factory(term, case_sensitive):
            built.append(term)
            return compile_term_pattern(term, case_sensitive)

        first = await cache.get_pattern("t1", "API", True, factory)
        second = await cache.get_pattern("t1", "API", True, factory)
        assert first is second
        assert built == ["API"]

        assert await cache.drop_term_patterns("t1") == 1

    @pytest.mark.asyncio
    async def test_indicators_default_to_empty(self):
        cache = ProjectCache()
        assert await cache.get_indicators("p1", "text") == []
        await cache.put_indicators("p1", "text", ["i"])
        assert await cache.get_indicators("p1", "text") == ["i"]
        assert await cache.clear_indicators("p1") == 1

    @pytest.mark.asyncio
    async def test_clear_empties_every_map(self):
        cache = ProjectCache()
        await cache.put_alignment("doc", "result")
        await cache.put_suggestions("p1", "en:de", "x", [])
        await cache.clear()
        assert all(entry["entries"] == 0 for entry in cache.stats().values())


class TestCompileTermPattern:

    def test_word_boundaries(self):
        pattern = compile_term_pattern("API")
        assert pattern.search("The API uses JSON.")
        assert not pattern.search("RAPIDS")

    def test_symbol_terms(self):
        pattern = compile_term_pattern("C++")
        match = pattern.search("Written in C++ today")
        assert match and match.group(0) == "C++"

    def test_case_insensitive(self):
        assert compile_term_pattern("api", case_sensitive=False).search("the API")
        assert not compile_term_pattern("api").search("the API")
