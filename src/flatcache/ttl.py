"""TTL policy: absolute expiry timestamps and validity checks."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Optional, Union

from .errors import InvalidTTL

# Expiry states stored next to a value:
#   None      -> no TTL, never expires
#   0         -> expired on arrival
#   int > 0   -> epoch milliseconds after which the record is gone
Expiry = Optional[int]
TTLInput = Union[None, int, float, timedelta]


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_seconds(ttl: TTLInput) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    # bool is an int subclass; True seconds is almost certainly a bug
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise InvalidTTL(f"TTL must be a number of seconds, got {ttl!r}")
    if ttl != ttl:  # NaN
        raise InvalidTTL("TTL must not be NaN")
    return ttl


def compute_expiry(ttl: TTLInput) -> Expiry:
    """
    Turn a relative TTL in seconds into an expiry state.

    None means "never expires", 0 means "already expired", and a positive
    value becomes now + ttl in epoch milliseconds.
    """
    if ttl is None:
        return None

    seconds = _to_seconds(ttl)
    if seconds < 0:
        raise InvalidTTL(f"TTL must not be negative, got {ttl!r}")
    if seconds == 0:
        return 0
    return now_ms() + int(seconds * 1000)


def is_valid(expiry: Expiry, now: Optional[int] = None) -> bool:
    """A record is valid until `now` passes its expiry timestamp."""
    if expiry is None:
        return True
    if expiry == 0:
        return False
    if now is None:
        now = now_ms()
    return expiry >= now
