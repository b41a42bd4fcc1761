#!/usr/bin/env python3
"""
Flat-file Record Store

Implements:
- get(key, default) → value | default
- set(key, value, ttl) → True, raises PersistenceError on write failure
- remove(key) / clean() → True
- exists(key) → normalized key | None
- remember(key, ttl, producer) / remember_forever(key, producer)
- flush() → FlushResult, reload(), purge_expired(), get_stats()

The whole record map lives in one file: {key: [value] | [value, expiry_ms]}.
It is read once per handle, mutated in memory, and rewritten in full on
every mutation (or on flush() in deferred mode).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from .config import CacheConfig
from .errors import FormatError, PersistenceError, StorageError, StorageNotFound
from .keys import make_key
from .schema import validate_record_map
from .serializers import get_serializer
from .storage import FileStorage
from .ttl import TTLInput, compute_expiry, is_valid, now_ms

logger = logging.getLogger(__name__)

RecordMap = Dict[str, list]


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class _Unloaded:
    def __repr__(self) -> str:
        return "Unloaded"


UNLOADED = _Unloaded()


@dataclass
class Loaded:
    records: RecordMap


LoadState = Union[_Unloaded, Loaded]


@dataclass
class FlushResult:
    """Outcome of writing the record map. Never raises by itself."""
    ok: bool
    written: bool = False
    error: Optional[PersistenceError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class BaseCache:
    """
    State and record logic shared by the sync and async handles.

    Subclasses own the I/O: loading the map and writing it back.
    """

    def __init__(self, path: Union[str, Path], config: Optional[CacheConfig] = None,
                 storage: Any = None, serializer: Any = None):
        self.config = config or CacheConfig()
        self.path = str(Path(path).expanduser().resolve())
        self.storage = storage if storage is not None else FileStorage()
        self.serializer = get_serializer(serializer if serializer is not None else self.config.serializer)

        self._state: LoadState = UNLOADED
        self._dirty = False
        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "evictions": 0,
            "load_failures": 0,
            "start_time": time.time(),
        }

        logger.debug(
            f"{type(self).__name__} bound to {self.path} "
            f"(serializer={getattr(self.serializer, 'name', type(self.serializer).__name__)}, "
            f"write_mode={self.config.write_mode})"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path!r}, state={self._state!r})"

    @property
    def loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def deferred(self) -> bool:
        return self.config.write_mode == "deferred"

    # ── Decoding / encoding ──────────────────────────────────────────

    def _decode(self, raw: bytes) -> RecordMap:
        """Decode stored bytes; anything unreadable becomes an empty map."""
        try:
            return validate_record_map(self.serializer.decode(raw))
        except FormatError as e:
            self.stats["load_failures"] += 1
            logger.warning(f"Discarding unreadable cache file {self.path}: {e}")
            return {}

    def _encode(self, records: RecordMap) -> bytes:
        try:
            data = self.serializer.encode(records)
        except FormatError as e:
            raise PersistenceError(f"Cannot encode cache for {self.path}: {e}", path=self.path) from e
        return data.encode("utf-8") if isinstance(data, str) else data

    def _adopt(self, raw: Optional[bytes]) -> RecordMap:
        records = {} if raw is None else self._decode(raw)
        self._state = Loaded(records)
        logger.debug(f"Loaded {len(records)} records from {self.path}")
        return records

    def _read_failed(self, error: Exception) -> None:
        if isinstance(error, (StorageNotFound, FileNotFoundError)):
            logger.debug(f"No cache file at {self.path}, starting empty")
        else:
            self.stats["load_failures"] += 1
            logger.warning(f"Cannot read cache file {self.path}, starting empty: {error}")

    # ── Record logic ─────────────────────────────────────────────────

    def _check(self, records: RecordMap, key: Any) -> Optional[str]:
        """Normalize `key` and return it if a valid record exists."""
        key = make_key(key)
        record = records.get(key)
        if record is None:
            return None
        expiry = record[1] if len(record) > 1 else None
        if is_valid(expiry, now_ms()):
            return key
        if expiry != 0:
            # past timestamp: prune in memory, the next flush drops it from disk
            del records[key]
            self.stats["evictions"] += 1
            logger.debug(f"Evicted expired key {key}")
        return None

    def _lookup(self, records: RecordMap, key: Any) -> Tuple[bool, Any]:
        normalized = self._check(records, key)
        if normalized is None:
            self.stats["misses"] += 1
            return False, None
        self.stats["hits"] += 1
        return True, records[normalized][0]

    def _put(self, records: RecordMap, key: Any, value: Any, ttl: TTLInput) -> Tuple[str, Any]:
        """Store a record; returns (key, previous record or UNSET)."""
        key = make_key(key)
        expiry = compute_expiry(self.config.default_ttl if ttl is UNSET else ttl)
        record = [value] if expiry is None else [value, expiry]
        # reject values the serializer can't write before they reach the map
        self._encode({key: record})
        previous = records.get(key, UNSET)
        records[key] = record
        logger.debug(f"Set {key} (expiry={expiry})")
        return key, previous

    def _restore(self, records: RecordMap, key: str, previous: Any) -> None:
        if previous is UNSET:
            records.pop(key, None)
        else:
            records[key] = previous

    def _expired_keys(self, records: RecordMap) -> List[str]:
        now = now_ms()
        return [k for k, rec in records.items() if not is_valid(rec[1] if len(rec) > 1 else None, now)]

    def _valid_keys(self, records: RecordMap) -> List[str]:
        now = now_ms()
        return [k for k, rec in records.items() if is_valid(rec[1] if len(rec) > 1 else None, now)]

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        records = self._state.records if isinstance(self._state, Loaded) else {}

        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "total_requests": total_requests,
            "entries": len(records),
            "expired_entries": len(self._expired_keys(records)),
            "writes": self.stats["writes"],
            "evictions": self.stats["evictions"],
            "load_failures": self.stats["load_failures"],
            "uptime_seconds": int(time.time() - self.stats["start_time"]),
        }


class Cache(BaseCache):
    """
    Synchronous cache handle bound to one file.

    Usage:
        cache = Cache("~/.cache/myapp/results.json", CacheConfig(default_ttl=3600))
        value = cache.remember(["report", {"year": 2024}], 600, build_report)

    The in-memory copy is loaded on first access and then trusted for the
    handle's lifetime; call reload() to pick up writes from other handles.
    Concurrent writers to the same file are not locked: last write wins.
    """

    def _load(self) -> RecordMap:
        if isinstance(self._state, Loaded):
            return self._state.records
        try:
            raw = self.storage.read(self.path)
        except (StorageError, OSError) as e:
            self._read_failed(e)
            raw = None
        return self._adopt(raw)

    def _write(self, data: bytes) -> None:
        try:
            try:
                self.storage.write(self.path, data)
            except (StorageNotFound, FileNotFoundError):
                self.storage.make_dirs(self.path)
                self.storage.write(self.path, data)
        except (StorageError, OSError) as e:
            logger.error(f"Cache write failed for {self.path}: {e}")
            raise PersistenceError(f"Cannot write cache file {self.path}: {e}", path=self.path) from e

    def flush(self) -> FlushResult:
        """Write the in-memory map if it has unsaved changes."""
        if not self._dirty:
            return FlushResult(ok=True)
        try:
            self._write(self._encode(self._load()))
        except PersistenceError as e:
            return FlushResult(ok=False, error=e)
        self._dirty = False
        self.stats["writes"] += 1
        return FlushResult(ok=True, written=True)

    def _touch(self) -> None:
        self._dirty = True
        if not self.deferred:
            self.flush().raise_for_error()

    # ── Public API ───────────────────────────────────────────────────

    def exists(self, key: Any) -> Optional[str]:
        return self._check(self._load(), key)

    def get(self, key: Any, default: Any = None) -> Any:
        found, value = self._lookup(self._load(), key)
        return value if found else default

    def set(self, key: Any, value: Any, ttl: TTLInput = UNSET) -> bool:
        """
        Store `value` under `key`.

        Args:
            key: String or JSON-like structure
            value: Anything the configured serializer can encode
            ttl: Seconds to live; None never expires, 0 expires at once.
                 Omitted → config.default_ttl

        Raises:
            InvalidTTL: negative or non-numeric ttl
            PersistenceError: file could not be written (immediate mode)
        """
        records = self._load()
        key, previous = self._put(records, key, value, ttl)
        try:
            self._touch()
        except PersistenceError:
            self._restore(records, key, previous)
            raise
        return True

    def remove(self, key: Any) -> bool:
        records = self._load()
        key = make_key(key)
        if key in records:
            del records[key]
            logger.debug(f"Removed {key}")
        self._touch()
        return True

    def clean(self) -> bool:
        self._state = Loaded({})
        logger.info(f"Cleaned cache {self.path}")
        self._touch()
        return True

    def remember(self, key: Any, ttl: TTLInput, producer: Callable[["Cache"], Any]) -> Any:
        """
        Return the cached value for `key`, computing and storing it on a miss.

        A stored falsy value (0, "", None) is still a hit; only a missing or
        expired record calls `producer(cache)`, which may use this handle.
        """
        found, value = self._lookup(self._load(), key)
        if found:
            return value
        value = producer(self)
        self.set(key, value, ttl=ttl)
        return value

    def remember_forever(self, key: Any, producer: Callable[["Cache"], Any]) -> Any:
        return self.remember(key, None, producer)

    def purge_expired(self) -> int:
        """Drop every expired record. Returns how many were removed."""
        records = self._load()
        expired = self._expired_keys(records)
        for key in expired:
            del records[key]
        if expired:
            self.stats["evictions"] += len(expired)
            logger.info(f"Purged {len(expired)} expired records from {self.path}")
            self._touch()
        return len(expired)

    def keys(self) -> List[str]:
        return self._valid_keys(self._load())

    def reload(self) -> None:
        """Forget the in-memory map; pending deferred writes are flushed first."""
        if self._dirty:
            self.flush().raise_for_error()
        self._state = UNLOADED

    def close(self) -> None:
        self.flush().raise_for_error()

    def __contains__(self, key: Any) -> bool:
        return self.exists(key) is not None

    def __len__(self) -> int:
        return len(self.keys())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __enter__(self) -> "Cache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        result = self.flush()
        if exc_type is None:
            result.raise_for_error()
        elif not result.ok:
            logger.error(f"Pending cache write lost for {self.path}: {result.error}")


def open_cache(name: Optional[str] = None, config: Optional[CacheConfig] = None,
               storage: Any = None) -> Cache:
    """Open the cache file `config.directory / name`."""
    config = config or CacheConfig()
    path = config.resolve_path(name)
    logger.info(f"Opening cache {path}")
    return Cache(path, config=config, storage=storage)
