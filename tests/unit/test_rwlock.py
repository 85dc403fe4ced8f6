"""Tests for tmcore/cache/rwlock.py: async reader/writer lock."""
import asyncio

import pytest

from tmcore.cache.rwlock import AsyncRWLock


class TestAsyncRWLock:

    @pytest.mark.asyncio
    async def test_readers_share_the_lock(self):
        lock = AsyncRWLock()
        await lock.acquire_read()
        await lock.acquire_read()
        assert lock.readers == 2
        await lock.release_read()
        await lock.release_read()
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        lock = AsyncRWLock()
        events = []

        async def writer():
            async with lock.write():
                events.append("write")

        await lock.acquire_read()
        task = asyncio.create_task(writer())
        await asyncio.sleep(0.01)
        assert events == []

        events.append("read-done")
        await lock.release_read()
        await task
        assert events == ["read-done", "write"]

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self):
        lock = AsyncRWLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("writer")

        async def reader():
            async with lock.read():
                order.append("late-reader")

        await lock.acquire_read()
        w = asyncio.create_task(writer())
        await asyncio.sleep(0.01)
        r = asyncio.create_task(reader())
        await asyncio.sleep(0.01)
        assert order == []

        await lock.release_read()
        await asyncio.gather(w, r)
        assert order == ["writer", "late-reader"]

    @pytest.mark.asyncio
    async def test_write_is_exclusive(self):
        lock = AsyncRWLock()
        async with lock.write():
            assert lock.writing
        assert not lock.writing

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        lock = AsyncRWLock()
        with pytest.raises(RuntimeError):
            async with lock.write():
                raise RuntimeError("boom")
        assert not lock.writing

        async with lock.read():
            assert lock.readers == 1
