"""Exception types raised by the cache."""

from __future__ import annotations

from typing import Optional


class CacheError(Exception):
    """Base class for every cache failure."""


class InvalidTTL(CacheError, ValueError):
    """TTL is negative, non-numeric or otherwise unusable."""


class ConfigError(CacheError):
    """Configuration value is invalid."""


class FormatError(CacheError):
    """Serializer could not encode or decode a record map."""


class StorageError(CacheError):
    """Storage backend failed to read or write."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class StorageNotFound(StorageError):
    """File (on read) or parent directory (on write) does not exist."""


class PersistenceError(CacheError):
    """Record map could not be written, even after creating the directory."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path
