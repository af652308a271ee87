"""
In-memory TTL cache for the query cache service.
"""

import fnmatch
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.errors import CacheWriteError
from shared.logging import get_logger


DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_MS = 5 * 60 * 1000

_MISSING = object()


@dataclass
class CacheEntry:
    """A cached value with its creation and expiry instants (clock seconds)."""
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class TimedCache:
    """Key/value store with per-entry TTL and creation-time eviction.

    Entries are evicted oldest ``created_at`` first once ``max_size`` is
    exceeded. Reads do not refresh an entry's position, so this is not an
    LRU cache.

    ``clock`` returns seconds and defaults to ``time.monotonic``; TTLs are
    given in milliseconds.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Optional[Callable[[str], None]] = None,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl_ms = default_ttl_ms
        self.clock = clock
        self.on_evict = on_evict
        self.logger = get_logger("cache.timed_cache")

        self._entries: Dict[str, CacheEntry] = {}
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "evictions": 0,
            "expirations": 0,
            "total_requests": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        """Percentage of lookups served from the cache."""
        total = self.stats["hits"] + self.stats["misses"]
        return (self.stats["hits"] / total) * 100 if total > 0 else 0.0

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or ``default`` when absent or expired."""
        self.stats["total_requests"] += 1
        entry = self._entries.get(key)

        if entry is None:
            self.stats["misses"] += 1
            self.logger.debug("Cache miss", key=key, hit_rate=round(self.hit_rate, 2))
            return default

        if entry.is_expired(self.clock()):
            del self._entries[key]
            self.stats["misses"] += 1
            self.stats["expirations"] += 1
            self.logger.debug("Cache entry expired", key=key, hit_rate=round(self.hit_rate, 2))
            return default

        self.stats["hits"] += 1
        self.logger.debug("Cache hit", key=key, hit_rate=round(self.hit_rate, 2))
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store a value, overwriting any existing entry."""
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        now = self.clock()

        try:
            self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl / 1000.0)
        except MemoryError as exc:
            raise CacheWriteError(key) from exc

        self.stats["sets"] += 1
        self._enforce_size_limit()
        self.logger.debug("Cached value", key=key, ttl_ms=ttl)

    def delete(self, key: str) -> bool:
        """Delete a key. Returns whether it was present."""
        if self._entries.pop(key, None) is None:
            return False
        self.stats["deletes"] += 1
        self.logger.debug("Cache deleted", key=key)
        return True

    def clear(self) -> None:
        """Drop every entry. Counters are kept."""
        self._entries.clear()
        self.logger.debug("Cache cleared")

    def has(self, key: str) -> bool:
        """Whether a non-expired entry exists. Does not count as a lookup."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self.clock()):
            del self._entries[key]
            self.stats["expirations"] += 1
            return False
        return True

    def get_keys(self, pattern: Optional[str] = None) -> List[str]:
        """Stored keys in insertion order, optionally filtered by a glob."""
        keys = list(self._entries)
        if pattern is None:
            return keys
        return [key for key in keys if fnmatch.fnmatchcase(key, pattern)]

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``."""
        deleted = 0
        for key in self.get_keys(pattern):
            if self._entries.pop(key, None) is not None:
                deleted += 1

        self.stats["deletes"] += deleted
        self.logger.debug("Deleted keys matching pattern", pattern=pattern, keys_count=deleted)
        return deleted

    def purge_expired(self) -> int:
        """Remove all already-expired entries."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            self.stats["expirations"] += len(expired)
            self.logger.debug("Cleaned up expired cache entries", removed=len(expired))
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_ms: Optional[int] = None,
    ) -> Any:
        """Return the cached value or await ``factory`` and cache its result."""
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        value = await factory()
        self.set(key, value, ttl_ms)
        return value

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self.clock()
        total_size = 0
        expired_count = 0

        for key, entry in self._entries.items():
            total_size += self._estimate_size(key, entry)
            if entry.is_expired(now):
                expired_count += 1

        return {
            "total_keys": len(self._entries),
            "total_size": total_size,
            "expired_count": expired_count,
            "hit_rate": round(self.hit_rate, 2),
            "max_size": self.max_size,
            **self.stats,
        }

    def reset_stats(self) -> None:
        self.stats = self._empty_stats()

    @staticmethod
    def _estimate_size(key: str, entry: CacheEntry) -> int:
        """Rough size of an entry in bytes, based on its JSON form."""
        try:
            payload = json.dumps(entry.value, default=str)
        except (TypeError, ValueError):
            return len(key.encode("utf-8"))
        return len(key.encode("utf-8")) + len(payload.encode("utf-8"))

    def _enforce_size_limit(self):
        """Evict oldest-created entries until the size limit holds."""
        overflow = len(self._entries) - self.max_size
        if overflow <= 0:
            return

        # sorted() is stable, so equal created_at values keep insertion order
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)[:overflow]
        for key, _ in oldest:
            del self._entries[key]
            self.stats["evictions"] += 1
            if self.on_evict is not None:
                self.on_evict(key)

        self.logger.debug("Evicted entries to enforce cache size limit", evicted=overflow)
