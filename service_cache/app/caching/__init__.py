"""
Caching package.

Provides the volatile in-process TTL cache and its background expiry
sweeper. Entries are evicted by creation time, not by access recency.
"""

from .timed_cache import CacheEntry, TimedCache
from .sweeper import CacheSweeper

__all__ = ["CacheEntry", "TimedCache", "CacheSweeper"]
