"""
Asyncio flavour of the record store.

Same record semantics as Cache; file I/O runs in a worker thread via
asyncio.to_thread so the event loop never blocks on the disk.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .errors import PersistenceError, StorageError, StorageNotFound
from .keys import make_key
from .store import UNSET, BaseCache, FlushResult, Loaded, RecordMap, UNLOADED
from .ttl import TTLInput

logger = logging.getLogger(__name__)

Producer = Callable[["AsyncCache"], Union[Any, Awaitable[Any]]]


class AsyncCache(BaseCache):
    """
    Awaitable cache handle bound to one file.

    remember() serializes producers per key inside this handle, so a burst
    of concurrent misses for one key runs the producer once. Other handles
    and other processes are not coordinated.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._load_lock: Optional[asyncio.Lock] = None
        self._write_lock: Optional[asyncio.Lock] = None
        # normalized key -> [lock, callers holding or waiting]
        self._key_locks: Dict[str, list] = {}

    def _lock(self, attr: str) -> asyncio.Lock:
        lock = getattr(self, attr)
        if lock is None:
            lock = asyncio.Lock()
            setattr(self, attr, lock)
        return lock

    async def _load(self) -> RecordMap:
        if isinstance(self._state, Loaded):
            return self._state.records
        async with self._lock("_load_lock"):
            # another coroutine may have finished loading while we waited
            if isinstance(self._state, Loaded):
                return self._state.records
            try:
                raw = await asyncio.to_thread(self.storage.read, self.path)
            except (StorageError, OSError) as e:
                self._read_failed(e)
                raw = None
            return self._adopt(raw)

    async def _write(self, data: bytes) -> None:
        try:
            try:
                await asyncio.to_thread(self.storage.write, self.path, data)
            except (StorageNotFound, FileNotFoundError):
                await asyncio.to_thread(self.storage.make_dirs, self.path)
                await asyncio.to_thread(self.storage.write, self.path, data)
        except (StorageError, OSError) as e:
            logger.error(f"Cache write failed for {self.path}: {e}")
            raise PersistenceError(f"Cannot write cache file {self.path}: {e}", path=self.path) from e

    async def flush(self) -> FlushResult:
        """Write the in-memory map if it has unsaved changes."""
        async with self._lock("_write_lock"):
            if not self._dirty:
                return FlushResult(ok=True)
            # clear before awaiting so mutations made during the write re-dirty the handle
            self._dirty = False
            try:
                await self._write(self._encode(await self._load()))
            except PersistenceError as e:
                self._dirty = True
                return FlushResult(ok=False, error=e)
            self.stats["writes"] += 1
            return FlushResult(ok=True, written=True)

    async def _touch(self) -> None:
        self._dirty = True
        if not self.deferred:
            (await self.flush()).raise_for_error()

    async def exists(self, key: Any) -> Optional[str]:
        return self._check(await self._load(), key)

    async def get(self, key: Any, default: Any = None) -> Any:
        found, value = self._lookup(await self._load(), key)
        return value if found else default

    async def set(self, key: Any, value: Any, ttl: TTLInput = UNSET) -> bool:
        records = await self._load()
        key, previous = self._put(records, key, value, ttl)
        try:
            await self._touch()
        except PersistenceError:
            self._restore(records, key, previous)
            raise
        return True

    async def remove(self, key: Any) -> bool:
        records = await self._load()
        records.pop(make_key(key), None)
        await self._touch()
        return True

    async def clean(self) -> bool:
        self._state = Loaded({})
        logger.info(f"Cleaned cache {self.path}")
        await self._touch()
        return True

    async def remember(self, key: Any, ttl: TTLInput, producer: Producer) -> Any:
        """
        Return the cached value, or await `producer(cache)` and store its result.

        `producer` may be a plain function or a coroutine function. It must
        not call remember() for the same key on this handle: the per-key
        lock is not reentrant.
        """
        normalized = make_key(key)
        entry = self._key_locks.get(normalized)
        if entry is None:
            entry = self._key_locks[normalized] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                found, value = self._lookup(await self._load(), normalized)
                if found:
                    return value
                value = producer(self)
                if inspect.isawaitable(value):
                    value = await value
                await self.set(normalized, value, ttl=ttl)
                return value
        finally:
            # last caller for this key drops the lock
            entry[1] -= 1
            if entry[1] == 0:
                del self._key_locks[normalized]

    async def remember_forever(self, key: Any, producer: Producer) -> Any:
        return await self.remember(key, None, producer)

    async def purge_expired(self) -> int:
        records = await self._load()
        expired = self._expired_keys(records)
        for key in expired:
            del records[key]
        if expired:
            self.stats["evictions"] += len(expired)
            logger.info(f"Purged {len(expired)} expired records from {self.path}")
            await self._touch()
        return len(expired)

    async def keys(self) -> List[str]:
        return self._valid_keys(await self._load())

    async def reload(self) -> None:
        if self._dirty:
            (await self.flush()).raise_for_error()
        self._state = UNLOADED

    async def close(self) -> None:
        (await self.flush()).raise_for_error()

    async def __aenter__(self) -> "AsyncCache":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        result = await self.flush()
        if exc_type is None:
            result.raise_for_error()
        elif not result.ok:
            logger.error(f"Pending cache write lost for {self.path}: {result.error}")
