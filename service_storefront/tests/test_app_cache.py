"""
Unit tests for the application cache.
"""

import asyncio
import time

import pytest

from service_storefront.app.caching import AppCache, CacheEntry
from storefront_shared.metrics import StorefrontMetrics


class TestCacheEntry:
    """Test cases for CacheEntry."""

    def test_expiry_is_strictly_after_ttl(self):
        entry = CacheEntry(value="v", created_at=100.0, ttl_seconds=10)

        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.01)


class TestAppCache:
    """Test cases for AppCache."""

    @pytest.fixture
    def cache(self, clock):
        """Create AppCache instance with a controllable clock."""
        return AppCache(max_size=3, default_ttl_seconds=60, clock=clock)

    def test_set_then_get(self, cache):
        cache.set("k", {"name": "Widget"})

        assert cache.get("k") == {"name": "Widget"}
        assert cache.get_stats().hits == 1

    def test_get_missing_returns_default(self, cache):
        assert cache.get("absent") is None
        assert cache.get("absent", default="fallback") == "fallback"
        assert cache.get_stats().misses == 2

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl_seconds=5)

        clock.advance(5)
        assert cache.get("k") == "v"

        clock.advance(0.5)
        assert cache.get("k") is None
        assert cache.get_stats().size == 0

    def test_ttl_with_real_clock(self):
        cache = AppCache(max_size=10, default_ttl_seconds=60)
        cache.set("k", "v", ttl_seconds=0.1)

        time.sleep(0.15)

        assert cache.get("k") is None

    def test_none_ttl_uses_default(self, cache, clock):
        cache.set("k", "v", ttl_seconds=None)

        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(2)
        assert cache.get("k") is None

    def test_lru_eviction(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        # touch "a" so "b" becomes least recently used
        assert cache.get("a") == 1
        cache.set("d", 4)

        assert cache.has("a")
        assert not cache.has("b")
        assert cache.has("c")
        assert cache.has("d")
        stats = cache.get_stats()
        assert stats.evictions == 1
        assert stats.size == 3

    def test_size_never_exceeds_max(self, cache):
        for i in range(20):
            cache.set(f"k{i}", i)

        stats = cache.get_stats()
        assert stats.size == 3
        assert stats.evictions == 17

    def test_overwrite_replaces_value_without_eviction(self, cache):
        cache.set("a", 1)
        cache.set("a", 2)

        assert cache.get("a") == 2
        assert cache.get_stats().evictions == 0
        assert cache.get_stats().sets == 2

    def test_has_does_not_touch_counters_or_recency(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.has("a")
        assert not cache.has("zzz")
        cache.set("d", 4)

        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0
        assert not cache.has("a")

    def test_delete(self, cache):
        cache.set("a", 1)

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.get("a") is None
        assert cache.get_stats().deletes == 1

    def test_clear_keeps_cumulative_counters(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")

        cache.clear()

        stats = cache.get_stats()
        assert stats.size == 0
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.sets == 1

    def test_caches_none_values(self, cache):
        cache.set("k", None)

        assert cache.has("k")
        assert cache.get("k", default="fallback") is None

    def test_hit_ratio(self, cache):
        assert cache.get_hit_ratio() == 0.0

        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        assert cache.get_hit_ratio() == 0.75

    def test_rejects_non_positive_max_size(self):
        with pytest.raises(ValueError):
            AppCache(max_size=0)

    def test_records_metrics(self, clock):
        metrics = StorefrontMetrics("test")
        cache = AppCache(max_size=1, default_ttl_seconds=60, clock=clock, metrics=metrics)

        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        cache.set("b", 2)

        assert metrics.get_sample("cache_events_total", {"event": "set"}) == 2.0
        assert metrics.get_sample("cache_events_total", {"event": "hit"}) == 1.0
        assert metrics.get_sample("cache_events_total", {"event": "miss"}) == 1.0
        assert metrics.get_sample("cache_events_total", {"event": "evict"}) == 1.0


class TestGetOrSet:
    """Test cases for AppCache.get_or_set."""

    @pytest.fixture
    def cache(self, clock):
        return AppCache(max_size=10, default_ttl_seconds=60, clock=clock)

    @pytest.mark.asyncio
    async def test_factory_runs_once_per_live_entry(self, cache):
        calls = []

        async def factory():
            calls.append(1)
            return {"name": "Widget"}

        first = await cache.get_or_set("k", factory)
        second = await cache.get_or_set("k", factory)

        assert first == second == {"name": "Widget"}
        assert len(calls) == 1
        stats = cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_factory_runs_again_after_expiry(self, cache, clock):
        calls = []

        async def factory():
            calls.append(1)
            return len(calls)

        assert await cache.get_or_set("k", factory, ttl_seconds=1) == 1
        clock.advance(2)
        assert await cache.get_or_set("k", factory, ttl_seconds=1) == 2

    @pytest.mark.asyncio
    async def test_failed_factory_is_not_cached(self, cache):
        async def failing():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError, match="upstream down"):
            await cache.get_or_set("k", failing)

        assert not cache.has("k")
        assert cache.get_stats().sets == 0

        async def working():
            return "ok"

        assert await cache.get_or_set("k", working) == "ok"

    @pytest.mark.asyncio
    async def test_concurrent_misses_are_not_coalesced(self, cache):
        calls = []

        async def slow_factory():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "value"

        results = await asyncio.gather(
            cache.get_or_set("k", slow_factory),
            cache.get_or_set("k", slow_factory),
        )

        assert results == ["value", "value"]
        assert len(calls) == 2
        assert cache.get("k") == "value"
