#!/usr/bin/env python3
"""
Unit tests for the TTL policy
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from flatcache.errors import InvalidTTL
from flatcache.ttl import compute_expiry, is_valid, now_ms

NOW = 1_700_000_000.0


@pytest.fixture(autouse=True)
def frozen(monkeypatch):
    monkeypatch.setattr("time.time", lambda: NOW)


class TestComputeExpiry:

    def test_none_never_expires(self):
        assert compute_expiry(None) is None

    def test_zero_is_expired(self):
        assert compute_expiry(0) == 0

    def test_positive_seconds(self):
        assert compute_expiry(60) == int(NOW * 1000) + 60_000

    def test_fractional_seconds(self):
        assert compute_expiry(1.5) == int(NOW * 1000) + 1500

    def test_timedelta(self):
        assert compute_expiry(timedelta(minutes=2)) == int(NOW * 1000) + 120_000

    @pytest.mark.parametrize("bad", [-1, -0.5, "60", True, float("nan"), [60]])
    def test_invalid(self, bad):
        with pytest.raises(InvalidTTL):
            compute_expiry(bad)

    def test_invalid_ttl_is_value_error(self):
        with pytest.raises(ValueError):
            compute_expiry(-5)


class TestIsValid:

    def test_absent_always_valid(self):
        assert is_valid(None, 10 ** 15)

    def test_zero_never_valid(self):
        assert not is_valid(0, 0)

    def test_future_timestamp(self):
        assert is_valid(2000, 1999)
        assert is_valid(2000, 2000)
        assert not is_valid(2000, 2001)

    def test_defaults_to_current_time(self):
        assert is_valid(now_ms())
        assert not is_valid(now_ms() - 1)
