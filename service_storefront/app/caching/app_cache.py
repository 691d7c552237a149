"""
In-memory LRU cache with per-entry TTL for the storefront service.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, TYPE_CHECKING

from storefront_shared.logging import CacheLogger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from storefront_shared.metrics import StorefrontMetrics

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIZE = 1000

_MISSING = object()


@dataclass
class CacheEntry:
    """Cached value with its own TTL."""
    value: Any
    created_at: float
    ttl_seconds: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_seconds


@dataclass
class CacheStats:
    """Snapshot of cache counters."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = DEFAULT_MAX_SIZE


class AppCache:
    """Bounded key/value store with LRU eviction and lazy TTL expiry.

    Counters are cumulative: clear() empties the store but keeps hits,
    misses, sets, deletes and evictions. has() neither counts as a hit or
    miss nor refreshes recency.

    get_or_set() does not coalesce concurrent misses: two callers missing the
    same key at once both run their factory and the last set wins.
    """

    def __init__(self,
                 max_size: int = DEFAULT_MAX_SIZE,
                 default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 *,
                 clock: Callable[[], float] = time.monotonic,
                 metrics: Optional["StorefrontMetrics"] = None):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self.metrics = metrics
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats(max_size=max_size)

    def _record(self, event: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_event(event)

    def _lookup(self, key: str) -> Any:
        """Return the live value for key or _MISSING, updating counters."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                entry = None

            if entry is None:
                self._stats.misses += 1
                return _MISSING

            entry.hit_count += 1
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    def get(self, key: str, trace_id: Optional[str] = None, default: Any = None) -> Any:
        """Get a live value, or default when absent or expired."""
        value = self._lookup(key)
        if value is _MISSING:
            self._record("miss")
            CacheLogger.miss(key, "get", trace_id)
            return default

        self._record("hit")
        CacheLogger.hit(key, "get", trace_id)
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None,
            trace_id: Optional[str] = None) -> None:
        """Store value, replacing any existing entry."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        evicted = 0

        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, created_at=self._clock(), ttl_seconds=ttl)
            self._stats.sets += 1

            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
                evicted += 1

        self._record("set")
        for _ in range(evicted):
            self._record("evict")
        CacheLogger.set(key, ttl, trace_id)

    def has(self, key: str) -> bool:
        """Check for a live entry without touching counters or recency."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats.deletes += 1

        self._record("delete")
        return True

    def clear(self) -> None:
        """Remove every entry; cumulative counters are preserved."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                sets=self._stats.sets,
                deletes=self._stats.deletes,
                evictions=self._stats.evictions,
                size=len(self._entries),
                max_size=self.max_size,
            )

    def get_hit_ratio(self) -> float:
        with self._lock:
            total = self._stats.hits + self._stats.misses
            return self._stats.hits / total if total > 0 else 0.0

    async def get_or_set(self,
                         key: str,
                         factory: Callable[[], Awaitable[T]],
                         ttl_seconds: Optional[float] = None,
                         trace_id: Optional[str] = None) -> T:
        """Return the cached value or compute, store and return it.

        A failing factory is not cached; its exception propagates unchanged.
        """
        cached = self._lookup(key)
        if cached is not _MISSING:
            self._record("hit")
            CacheLogger.hit(key, "get_or_set", trace_id)
            return cached

        self._record("miss")
        CacheLogger.miss(key, "get_or_set", trace_id)

        try:
            value = await factory()
        except Exception as exc:
            CacheLogger.error(key, "get_or_set", exc, trace_id)
            raise

        self.set(key, value, ttl_seconds, trace_id)
        return value
