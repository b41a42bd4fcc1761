"""
flatcache: file-persisted key-value cache with TTL expiry

One flat file per cache, loaded lazily, rewritten on every mutation.
"""

from .async_store import AsyncCache
from .config import CacheConfig, load_config
from .errors import (
    CacheError, ConfigError, FormatError, InvalidTTL,
    PersistenceError, StorageError, StorageNotFound,
)
from .keys import make_key
from .memoize import memoize
from .serializers import JSONSerializer, PickleSerializer, YAMLSerializer, get_serializer
from .storage import FileStorage, MemoryStorage
from .store import Cache, FlushResult, open_cache
from .ttl import compute_expiry, is_valid

__all__ = [
    'Cache', 'AsyncCache', 'FlushResult', 'open_cache', 'memoize',
    'CacheConfig', 'load_config',
    'CacheError', 'ConfigError', 'FormatError', 'InvalidTTL',
    'PersistenceError', 'StorageError', 'StorageNotFound',
    'make_key', 'compute_expiry', 'is_valid',
    'JSONSerializer', 'YAMLSerializer', 'PickleSerializer', 'get_serializer',
    'FileStorage', 'MemoryStorage',
]
