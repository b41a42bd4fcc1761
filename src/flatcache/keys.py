#!/usr/bin/env python3
"""
Cache Key Normalization

Implements:
- make_key(key) → canonical string identifier
- canonical_dumps(value) → stable JSON text for structured keys

Strings are used verbatim so keys stay human-readable in the cache file.
Everything else is hashed, so ["user", {"id": 1}] and ("user", {"id": 1})
land on the same record.
"""

import hashlib
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 40  # SHA-1 hex


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _canonical(value: Any) -> Any:
    """Reduce `value` to plain JSON types with a deterministic layout."""
    if value is None or isinstance(value, (str, int, float)):
        return value
    if isinstance(value, dict):
        if all(isinstance(k, str) for k in value):
            return {k: _canonical(v) for k, v in value.items()}
        # mixed or non-string keys: sorted [key, value] pairs, tagged so they
        # don't collide with a plain list of pairs
        pairs = [[_canonical(k), _canonical(v)] for k, v in value.items()]
        return {"__items__": sorted(pairs, key=lambda pair: _dumps(pair[0]))}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical(item) for item in value), key=_dumps)
    if isinstance(value, bytes):
        return value.hex()
    return repr(value)


def canonical_dumps(value: Any) -> str:
    """
    Serialize a structured key deterministically.

    Object keys are sorted and separators are compact, so two structurally
    equal inputs produce byte-identical text regardless of insertion order.
    Dicts with non-string keys and sets are ordered by the canonical text of
    their members.
    """
    return _dumps(_canonical(value))


def make_key(key: Any) -> str:
    """
    Map a lookup key to the string used in the record map.

    Args:
        key: A string (returned unchanged) or any JSON-like structure

    Returns:
        The string itself, or the 40-char SHA-1 hex digest of its
        canonical JSON form
    """
    if isinstance(key, str):
        return key

    digest = hashlib.sha1(canonical_dumps(key).encode("utf-8")).hexdigest()
    logger.debug(f"Generated key: {digest} (from {type(key).__name__})")
    return digest
