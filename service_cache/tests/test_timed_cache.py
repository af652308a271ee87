"""
Unit tests for TimedCache.
"""

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_cache.app.caching.timed_cache import TimedCache


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms / 1000.0


class TestTimedCache:
    """Test cases for TimedCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        """Create TimedCache instance."""
        return TimedCache(max_size=100, default_ttl_ms=1000, clock=clock)

    def test_set_then_get_returns_value(self, cache):
        cache.set("student:1", {"name": "Asha"}, ttl_ms=5000)

        assert cache.get("student:1") == {"name": "Asha"}
        assert cache.stats["hits"] == 1
        assert cache.stats["sets"] == 1

    def test_get_unknown_key_is_miss(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"
        assert cache.stats["misses"] == 2
        assert cache.stats["total_requests"] == 2

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl_ms=1000)

        clock.advance(500)
        assert cache.get("k") == "v"

        clock.advance(500)
        assert cache.get("k") is None
        assert cache.stats["misses"] == 1
        assert cache.stats["expirations"] == 1
        assert len(cache) == 0

    def test_default_ttl_used_when_none_given(self, cache, clock):
        cache.set("k", "v")

        clock.advance(1001)
        assert cache.get("k") is None

    def test_non_positive_ttl_is_immediately_expired(self, cache):
        cache.set("zero", 1, ttl_ms=0)
        cache.set("negative", 2, ttl_ms=-10)

        assert cache.get("zero") is None
        assert cache.get("negative") is None
        assert cache.stats["misses"] == 2

    def test_set_overwrites_and_resets_created_at(self, cache, clock):
        cache.set("k", "old", ttl_ms=1000)
        clock.advance(800)
        cache.set("k", "new", ttl_ms=1000)
        clock.advance(800)

        assert cache.get("k") == "new"

    def test_cached_none_is_distinguishable_with_default(self, cache):
        sentinel = object()
        cache.set("nothing", None)

        assert cache.get("nothing", sentinel) is None
        assert cache.stats["hits"] == 1

    def test_delete(self, cache):
        cache.set("k", "v")

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.stats["deletes"] == 1

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()

        assert len(cache) == 0
        assert cache.get_keys() == []

    def test_has_respects_expiry(self, cache, clock):
        cache.set("k", "v", ttl_ms=100)
        assert cache.has("k") is True

        clock.advance(100)
        assert cache.has("k") is False
        assert "k" not in cache.get_keys()
        # has() is not a lookup
        assert cache.stats["total_requests"] == 0

    def test_hit_rate(self, cache):
        assert cache.hit_rate == 0.0

        cache.set("k", "v")
        cache.get("k")
        cache.get("k")
        cache.get("k")
        cache.get("other")

        assert cache.hit_rate == pytest.approx(75.0)

    def test_size_limit_evicts_oldest_created(self, clock):
        cache = TimedCache(max_size=3, default_ttl_ms=60000, clock=clock)
        for key in ("a", "b", "c"):
            cache.set(key, key)
            clock.advance(10)

        cache.set("d", "d")

        assert cache.get_keys() == ["b", "c", "d"]
        assert cache.stats["evictions"] == 1

    def test_eviction_ignores_access_recency(self, clock):
        cache = TimedCache(max_size=2, default_ttl_ms=60000, clock=clock)
        cache.set("a", 1)
        clock.advance(10)
        cache.set("b", 2)
        clock.advance(10)

        # reading "a" does not protect it
        assert cache.get("a") == 1
        cache.set("c", 3)

        assert cache.has("a") is False
        assert cache.has("b") is True

    def test_eviction_after_reset_uses_new_created_at(self, clock):
        cache = TimedCache(max_size=2, default_ttl_ms=60000, clock=clock)
        cache.set("a", 1)
        clock.advance(10)
        cache.set("b", 2)
        clock.advance(10)
        cache.set("a", 10)
        clock.advance(10)

        cache.set("c", 3)

        assert sorted(cache.get_keys()) == ["a", "c"]

    def test_eviction_ties_broken_by_insertion_order(self, clock):
        cache = TimedCache(max_size=2, default_ttl_ms=1000, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        keys = cache.get_keys()
        assert len(keys) == 2
        assert "a" not in keys

        clock.advance(1100)
        assert cache.get("b") is None
        assert cache.stats["misses"] == 1

    def test_eviction_notifies_listener(self, clock):
        on_evict = MagicMock()
        cache = TimedCache(max_size=1, default_ttl_ms=1000, clock=clock, on_evict=on_evict)

        cache.set("first", 1)
        cache.set("second", 2)

        on_evict.assert_called_once_with("first")

    def test_expiry_does_not_count_as_eviction(self, cache, clock):
        cache.set("k", "v", ttl_ms=10)
        clock.advance(20)

        cache.get("k")

        assert cache.stats["evictions"] == 0
        assert cache.stats["expirations"] == 1

    def test_get_keys_with_glob_pattern(self, cache):
        cache.set("students:all:all", 1)
        cache.set("students:BCA:2023", 2)
        cache.set("stats:students", 3)
        cache.set("courses:{}", 4)

        assert cache.get_keys("students:*") == ["students:all:all", "students:BCA:2023"]
        assert cache.get_keys("stats:students*") == ["stats:students"]
        assert cache.get_keys("*:{}") == ["courses:{}"]

    def test_delete_pattern(self, cache):
        cache.set("attendance:1", 1)
        cache.set("attendance:2", 2)
        cache.set("stats:attendance", 3)

        assert cache.delete_pattern("attendance:*") == 2
        assert cache.get_keys() == ["stats:attendance"]

    def test_delete_pattern_without_matches_returns_zero(self, cache):
        cache.set("k", "v")

        assert cache.delete_pattern("nothing:*") == 0
        assert cache.get_keys() == ["k"]

    def test_purge_expired(self, cache, clock):
        cache.set("short", 1, ttl_ms=100)
        cache.set("long", 2, ttl_ms=10000)
        clock.advance(500)

        assert cache.purge_expired() == 1
        assert cache.get_keys() == ["long"]
        assert cache.stats["expirations"] == 1

    def test_get_stats(self, cache, clock):
        cache.set("fresh", {"id": 1}, ttl_ms=10000)
        cache.set("stale", [1, 2, 3], ttl_ms=10)
        clock.advance(50)
        cache.get("fresh")

        stats = cache.get_stats()

        assert stats["total_keys"] == 2
        assert stats["expired_count"] == 1
        assert stats["total_size"] > 0
        assert stats["hit_rate"] == 100.0
        assert stats["max_size"] == 100

    def test_get_stats_handles_unserializable_values(self, cache):
        circular = []
        circular.append(circular)
        cache.set("loop", circular)

        assert cache.get_stats()["total_size"] == len("loop")

    def test_reset_stats_keeps_entries(self, cache):
        cache.set("k", "v")
        cache.get("k")

        cache.reset_stats()

        assert cache.stats["hits"] == 0
        assert cache.stats["sets"] == 0
        assert cache.get("k") == "v"

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            TimedCache(max_size=0)

    @pytest.mark.asyncio
    async def test_get_or_set(self, cache):
        calls = []

        async def factory():
            calls.append(1)
            return "computed"

        assert await cache.get_or_set("k", factory) == "computed"
        assert await cache.get_or_set("k", factory) == "computed"
        assert len(calls) == 1
