"""
Query optimizer: cache-aside reads, batch execution and invalidation.
"""

import asyncio
import glob
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from shared.errors import ValidationError
from shared.logging import get_logger

from ..caching.timed_cache import TimedCache
from ..monitoring.recorder import MetricsRecorder
from .keys import (
    StudentFilterInput,
    StudentQueryFilters,
    attendance_key,
    coerce_student_filters,
    course_list_key,
    stats_key,
    student_key,
    student_list_key,
)


BASE_TTL_MS = 5 * 60 * 1000
SEARCH_TTL_MS = 2 * 60 * 1000
FILTERED_TTL_MS = 10 * 60 * 1000
STATISTICS_TTL_MS = 10 * 60 * 1000
DEFAULT_MAX_CONCURRENCY = 5

STATISTICS_TYPES = ("students", "courses", "attendance")

INVALIDATION_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "student": ("students:*", "stats:students*"),
    "course": ("courses:*", "stats:courses*", "students:*"),
    "attendance": ("attendance:*", "stats:attendance*"),
}

Producer = Callable[[], Awaitable[Any]]

_MISSING = object()


@dataclass
class QueryOptions:
    """Per-call caching options. ``cache_ttl_ms=None`` uses the cache default."""
    cache_ttl_ms: Optional[int] = None
    enable_cache: bool = True
    enable_metrics: bool = True


@dataclass
class BatchQuery:
    """One entry of a batch: a cache key and the read that produces its value."""
    key: str
    producer: Producer
    options: Optional[QueryOptions] = None


def derive_student_ttl_ms(filters: StudentQueryFilters) -> int:
    """Search results are volatile; single-dimension filters are stable."""
    if filters.search:
        return SEARCH_TTL_MS
    if filters.course or filters.admission_year:
        return FILTERED_TTL_MS
    return BASE_TTL_MS


class QueryOptimizer:
    """Wraps asynchronous reads with the timed cache and metrics recorder.

    The check-then-populate sequence is not atomic across the producer's
    await: concurrent misses on one key each run the producer and the last
    write wins.
    """

    def __init__(
        self,
        cache: TimedCache,
        recorder: MetricsRecorder,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.cache = cache
        self.recorder = recorder
        self.max_concurrency = max_concurrency
        self.logger = get_logger("cache.optimizer")

    async def execute_optimized_query(
        self,
        key: str,
        producer: Producer,
        options: Optional[QueryOptions] = None,
    ) -> Any:
        """Serve ``key`` from the cache, or run ``producer`` and cache its result."""
        options = options or QueryOptions()
        start_time = time.perf_counter()

        if options.enable_cache:
            cached = self.cache.get(key, _MISSING)
            if cached is not _MISSING:
                duration_ms = _elapsed_ms(start_time)
                if options.enable_metrics:
                    self.recorder.record_cache_hit()
                    self.recorder.record_query(duration_ms)
                self.logger.debug("Query served from cache", key=key, duration_ms=duration_ms)
                return cached

            if options.enable_metrics:
                self.recorder.record_cache_miss()

        try:
            result = await producer()
        except Exception:
            duration_ms = _elapsed_ms(start_time)
            if options.enable_metrics:
                self.recorder.record_query(duration_ms)
            self.logger.error("Query failed", key=key, duration_ms=duration_ms, exc_info=True)
            raise

        duration_ms = _elapsed_ms(start_time)

        if options.enable_cache:
            self._store(key, result, options.cache_ttl_ms)

        if options.enable_metrics:
            self.recorder.record_query(duration_ms)

        self.logger.debug("Query executed", key=key, duration_ms=duration_ms)
        return result

    def _store(self, key: str, value: Any, ttl_ms: Optional[int]):
        """Cache a producer result. A failed write never fails the read."""
        try:
            self.cache.set(key, value, ttl_ms)
        except Exception as e:
            self.logger.warning("Cache write failed", key=key, error=str(e))

    async def find_students(self, filters: StudentFilterInput, producer: Producer) -> Any:
        """Student listing with a TTL derived from how volatile the filters are."""
        f = coerce_student_filters(filters)
        return await self.execute_optimized_query(
            student_list_key(f),
            producer,
            QueryOptions(
                cache_ttl_ms=derive_student_ttl_ms(f),
                enable_cache=not f.real_time,
            ),
        )

    async def get_student(self, student_id: Any, producer: Producer) -> Any:
        return await self.execute_optimized_query(
            student_key(student_id),
            producer,
            QueryOptions(cache_ttl_ms=BASE_TTL_MS),
        )

    async def find_courses(self, filters: Optional[Mapping[str, Any]], producer: Producer) -> Any:
        return await self.execute_optimized_query(
            course_list_key(filters),
            producer,
            QueryOptions(cache_ttl_ms=BASE_TTL_MS),
        )

    async def get_attendance(
        self,
        student_id: Any,
        producer: Producer,
        date_from: Optional[Union[date, datetime]] = None,
        date_to: Optional[Union[date, datetime]] = None,
    ) -> Any:
        return await self.execute_optimized_query(
            attendance_key(student_id, date_from, date_to),
            producer,
            QueryOptions(cache_ttl_ms=BASE_TTL_MS),
        )

    async def get_statistics(self, stat_type: str, producer: Producer, period: Optional[str] = None) -> Any:
        """Aggregated statistics, cached aggressively."""
        if stat_type not in STATISTICS_TYPES:
            raise ValidationError(
                f"Unknown statistics type: {stat_type}",
                {"stat_type": stat_type, "allowed": list(STATISTICS_TYPES)},
            )

        return await self.execute_optimized_query(
            stats_key(stat_type, period),
            producer,
            QueryOptions(cache_ttl_ms=STATISTICS_TTL_MS),
        )

    async def execute_batch_queries(
        self,
        queries: Sequence[BatchQuery],
        enable_parallel: bool = True,
        max_concurrency: Optional[int] = None,
    ) -> List[Any]:
        """Run several queries; results keep the input order.

        In parallel mode queries run in fixed chunks of ``max_concurrency``;
        a chunk finishes completely before the next one starts.
        """
        limit = self.max_concurrency if max_concurrency is None else max_concurrency
        if limit < 1:
            raise ValidationError("max_concurrency must be at least 1", {"max_concurrency": limit})

        results: List[Any] = []

        if not enable_parallel:
            for query in queries:
                results.append(
                    await self.execute_optimized_query(query.key, query.producer, query.options)
                )
            return results

        for offset in range(0, len(queries), limit):
            chunk = queries[offset:offset + limit]
            chunk_results = await asyncio.gather(
                *(self.execute_optimized_query(q.key, q.producer, q.options) for q in chunk)
            )
            results.extend(chunk_results)

        return results

    def invalidate_related_cache(self, entity_type: str, entity_id: Optional[Any] = None) -> int:
        """Delete cached reads affected by a write to ``entity_type``."""
        patterns = self.get_invalidation_patterns(entity_type, entity_id)
        deleted = sum(self.cache.delete_pattern(pattern) for pattern in patterns)

        self.logger.debug(
            "Invalidated related cache",
            entity_type=entity_type,
            entity_id=entity_id,
            patterns=patterns,
            deleted=deleted,
        )
        return deleted

    @staticmethod
    def get_invalidation_patterns(entity_type: str, entity_id: Optional[Any] = None) -> List[str]:
        patterns = list(INVALIDATION_PATTERNS.get(entity_type, ()))
        if patterns and entity_id is not None:
            patterns.append(f"{entity_type}:{glob.escape(str(entity_id))}*")
        return patterns


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 3)
