#!/usr/bin/env python3
"""
Unit tests for the asyncio record store
"""

import asyncio
import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from flatcache.async_store import AsyncCache
from flatcache.config import CacheConfig
from flatcache.errors import PersistenceError, StorageError
from flatcache.storage import MemoryStorage
from flatcache.store import Cache


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "tmp" / ".cache"


@pytest.fixture
def clock(monkeypatch):
    state = {"now": 1_700_000_000.0}
    monkeypatch.setattr("time.time", lambda: state["now"])

    def advance(seconds):
        state["now"] += seconds

    return advance


def run(coro):
    return asyncio.run(coro)


class TestAsyncCache:

    def test_set_and_get(self, cache_path):
        async def scenario():
            a = AsyncCache(cache_path)
            assert await a.get("name") is None
            await a.set("name", "Adil")
            b = AsyncCache(cache_path)
            return await b.get("name")

        assert run(scenario()) == "Adil"

    def test_shares_file_format_with_sync_cache(self, cache_path):
        run(AsyncCache(cache_path).set({"id": 1}, "v"))
        assert Cache(cache_path).get({"id": 1}) == "v"

    def test_expiry(self, cache_path, clock):
        cache = AsyncCache(cache_path)
        run(cache.set("name", "Adil", ttl=60))
        clock(61)
        assert run(cache.get("name", "gone")) == "gone"

    def test_zero_ttl(self, cache_path):
        async def scenario():
            cache = AsyncCache(cache_path)
            await cache.set("name", "x", ttl=0)
            return await cache.exists("name")

        assert run(scenario()) is None

    def test_remove_and_clean(self, cache_path):
        async def scenario():
            cache = AsyncCache(cache_path)
            await cache.set("a", 1)
            await cache.set("b", 2)
            await cache.remove("a")
            await cache.remove("missing")
            keys = await cache.keys()
            await cache.clean()
            return keys

        assert run(scenario()) == ["b"]
        assert json.loads(cache_path.read_text(encoding="utf-8")) == {}

    def test_remember_with_async_producer(self, cache_path, clock):
        calls = {"n": 0}

        async def producer(_handle):
            calls["n"] += 1
            await asyncio.sleep(0)
            return f"value-{calls['n']}"

        async def scenario():
            cache = AsyncCache(cache_path)
            first = await cache.remember(["k"], 10, producer)
            second = await cache.remember(["k"], 10, producer)
            clock(11)
            third = await cache.remember(["k"], 10, producer)
            return first, second, third

        assert run(scenario()) == ("value-1", "value-1", "value-2")

    def test_remember_with_sync_producer(self, cache_path):
        cache = AsyncCache(cache_path)
        assert run(cache.remember_forever("k", lambda c: 0)) == 0
        assert run(cache.remember_forever("k", lambda c: 1)) == 0

    def test_producer_receives_handle(self, cache_path):
        async def producer(handle):
            return handle.path

        cache = AsyncCache(cache_path)
        assert run(cache.remember("k", None, producer)) == cache.path


    def test_concurrent_remember_calls_producer_once(self, cache_path):
        calls = {"n": 0}

        async def producer(_handle):
            calls["n"] += 1
            await asyncio.sleep(0.01)
            return "computed"

        async def scenario():
            cache = AsyncCache(cache_path)
            return await asyncio.gather(*(cache.remember("k", 60, producer) for _ in range(5)))

        assert run(scenario()) == ["computed"] * 5
        assert calls["n"] == 1

    def test_key_locks_released_after_remember(self, cache_path):
        async def producer(_handle):
            await asyncio.sleep(0.01)
            return "computed"

        async def failing(_handle):
            raise RuntimeError("boom")

        async def scenario():
            cache = AsyncCache(cache_path)
            await asyncio.gather(*(cache.remember(["k", i % 3], 60, producer) for i in range(9)))
            with pytest.raises(RuntimeError):
                await cache.remember("other", 60, failing)
            return cache

        assert run(scenario())._key_locks == {}


    def test_corrupt_file(self, cache_path):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_bytes(b"\x00garbage")

        async def scenario():
            cache = AsyncCache(cache_path)
            assert await cache.get("name") is None
            await cache.set("name", "Adil")

        run(scenario())
        assert run(AsyncCache(cache_path).get("name")) == "Adil"

    def test_write_failure_raises(self):
        class FailingStorage(MemoryStorage):
            def write(self, path, data):
                raise StorageError("read-only", path=path)

        cache = AsyncCache("/mem/cache.json", storage=FailingStorage())
        with pytest.raises(PersistenceError):
            run(cache.set("name", "Adil"))

    def test_failed_set_leaves_handle_usable(self):
        storage = MemoryStorage()
        cache = AsyncCache("/mem/cache.json", storage=storage)

        async def scenario():
            with pytest.raises(PersistenceError):
                await cache.set("bad", {1, 2})
            await cache.set("good", 1)
            return await cache.get("bad", "d")

        assert run(scenario()) == "d"
        assert json.loads(storage.files[cache.path]) == {"good": [1]}


    def test_deferred_context_manager(self):
        storage = MemoryStorage()

        async def scenario():
            async with AsyncCache("/mem/cache.json", CacheConfig(write_mode="deferred"), storage=storage) as cache:
                await cache.set("a", 1)
                await cache.set("b", 2)
                assert storage.writes == 0
            return cache.path

        path = run(scenario())
        assert storage.writes == 1
        assert json.loads(storage.files[path]) == {"a": [1], "b": [2]}
