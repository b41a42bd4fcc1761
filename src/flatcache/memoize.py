"""Decorator that memoizes function results in a Cache."""

from __future__ import annotations

import functools
from typing import Any, Callable, Optional

from .store import Cache
from .ttl import TTLInput


def call_key(prefix: str, args: tuple, kwargs: dict) -> list:
    return [prefix, list(args), sorted(kwargs.items())]


def memoize(cache: Cache, ttl: TTLInput = None, key_prefix: Optional[str] = None) -> Callable:
    """
    Cache a function's return value across runs.

        @memoize(cache, ttl=3600)
        def fetch_prices(symbol, days=30): ...

    Arguments must be JSON-like (or have a stable repr) since they become
    part of the structured cache key. ttl=None keeps results forever.
    """

    def decorator(func: Callable) -> Callable:
        prefix = key_prefix or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = call_key(prefix, args, kwargs)
            return cache.remember(key, ttl, lambda _cache: func(*args, **kwargs))

        wrapper.cache = cache
        wrapper.forget = lambda *args, **kwargs: cache.remove(call_key(prefix, args, kwargs))
        return wrapper

    return decorator
