"""
Tests for the payload and validation caches.
"""

import pytest

from autosave import PayloadCache, ValidationCache, stable_signature


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def token():
    return {"value": 0}


@pytest.fixture
def cache(token, clock):
    return PayloadCache(lambda: token["value"], max_size=3, ttl_ms=1000, clock=clock)


class TestStableSignature:
    """Test order-independent signatures."""

    def test_key_order_ignored(self):
        assert stable_signature({"a": 1, "b": {"c": 2, "d": 3}}) == stable_signature({"b": {"d": 3, "c": 2}, "a": 1})

    def test_list_order_matters(self):
        assert stable_signature([1, 2]) != stable_signature([2, 1])


class TestPayloadCache:
    """Test token, TTL and size rules."""

    def test_hit_counts(self, cache):
        cache.put("k", "v")
        assert cache.get("k") == "v"
        assert cache.has("k")
        assert cache.stats() == {'size': 1, 'total_hits': 1, 'average_hits': 1}

    def test_token_change_clears(self, cache, token):
        """Entries never outlive the token they were stored under."""
        cache.put("k", "v")
        token["value"] = 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_ttl_expiry(self, cache, clock):
        cache.put("k", "v")
        clock.now = 1000
        assert cache.get("k") == "v"
        clock.now = 1001
        assert cache.get("k") is None
        assert cache.keys() == []

    def test_oldest_evicted_over_size(self, cache, clock):
        for i in range(4):
            clock.now = i
            cache.put(f"k{i}", i)
        assert sorted(cache.keys()) == ["k1", "k2", "k3"]

    def test_expired_evicted_before_oldest(self, token, clock):
        cache = PayloadCache(lambda: token["value"], max_size=2, ttl_ms=1000, clock=clock)
        cache.put("old", 1)
        clock.now = 900
        cache.put("mid", 2)
        clock.now = 1500
        cache.put("new", 3)
        assert sorted(cache.keys()) == ["mid", "new"]

    def test_delete_and_invalidate(self, cache):
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.invalidate()
        assert len(cache) == 0


class TestValidationCache:
    """Test verdict caching."""

    def test_bounded_insertion_order(self):
        cache = ValidationCache(max_size=2)
        cache.put("a", True)
        cache.put("b", False)
        cache.put("c", True)
        assert cache.get("a") is None
        assert cache.get("b") is False
        assert len(cache) == 2

    def test_clear(self):
        cache = ValidationCache()
        cache.put("a", True)
        cache.clear()
        assert cache.get("a") is None
