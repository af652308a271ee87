"""
Performance metrics recorder for the query cache service.

Tracks request and query latency over a bounded rolling window, keeps
lifetime counters, and derives a 0-100 health score with alerts and
recommendations from them.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, TYPE_CHECKING

import psutil

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_SAMPLE_CAPACITY = 1000
DEFAULT_SLOW_THRESHOLD_MS = 1000.0
DEFAULT_REPORT_INTERVAL_SECONDS = 60.0
DEFAULT_MEMORY_ALERT_THRESHOLD_MB = 500.0

# Alert (critical) and recommendation (warning) thresholds
RESPONSE_TIME_ALERT_MS = 2000.0
RESPONSE_TIME_WARNING_MS = 1000.0
HIT_RATE_ALERT_PERCENT = 50.0
HIT_RATE_WARNING_PERCENT = 80.0
SLOW_QUERIES_ALERT_COUNT = 10
SLOW_QUERIES_WARNING_COUNT = 5

BYTES_PER_MB = 1024 * 1024


@dataclass
class Counters:
    """Lifetime counters. Only ``reset()`` zeroes them."""
    requests_total: int = 0
    requests_successful: int = 0
    requests_failed: int = 0
    slow_requests: int = 0
    queries: int = 0
    slow_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_evictions: int = 0


class MetricsRecorder:
    """Records request, query and cache metrics."""

    def __init__(
        self,
        sample_capacity: int = DEFAULT_SAMPLE_CAPACITY,
        slow_request_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
        slow_query_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
        *,
        enabled: bool = True,
        exporter: Optional["MetricsCollector"] = None,
        report_interval_seconds: float = DEFAULT_REPORT_INTERVAL_SECONDS,
        memory_alert_threshold_mb: float = DEFAULT_MEMORY_ALERT_THRESHOLD_MB,
    ):
        self.sample_capacity = sample_capacity
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.enabled = enabled
        self.exporter = exporter
        self.report_interval_seconds = report_interval_seconds
        self.memory_alert_threshold_mb = memory_alert_threshold_mb
        self.logger = get_logger("cache.metrics")

        self.counters = Counters()
        self.cache_hit_rate = 0.0
        self._request_timings: Deque[float] = deque(maxlen=sample_capacity)
        self._query_timings: Deque[float] = deque(maxlen=sample_capacity)
        self._started_at = time.monotonic()
        self._process = psutil.Process()

        self.report_task: Optional[asyncio.Task] = None
        self.running = False

    async def start(self):
        """Start periodic summary logging."""
        if not self.enabled or self.running:
            return
        self.running = True
        self.report_task = asyncio.create_task(self._report_loop())
        self.logger.info("Performance monitoring started", interval_seconds=self.report_interval_seconds)

    async def stop(self):
        """Stop periodic summary logging."""
        self.running = False
        if self.report_task:
            self.report_task.cancel()
            try:
                await self.report_task
            except asyncio.CancelledError:
                pass
            self.report_task = None

    def record_request(self, duration_ms: float, success: bool) -> None:
        """Record an HTTP request's latency and outcome."""
        if not self.enabled:
            return

        self.counters.requests_total += 1
        if success:
            self.counters.requests_successful += 1
        else:
            self.counters.requests_failed += 1

        if duration_ms > self.slow_request_threshold_ms:
            self.counters.slow_requests += 1

        self._request_timings.append(duration_ms)

    def record_query(self, duration_ms: float) -> None:
        """Record a query's latency."""
        if not self.enabled:
            return

        self.counters.queries += 1
        if duration_ms > self.slow_query_threshold_ms:
            self.counters.slow_queries += 1

        self._query_timings.append(duration_ms)
        if self.exporter:
            self.exporter.observe_histogram("query_duration_seconds", duration_ms / 1000.0)

    def record_cache_hit(self) -> None:
        if not self.enabled:
            return
        self.counters.cache_hits += 1
        self._update_cache_hit_rate()
        if self.exporter:
            self.exporter.increment_counter("cache_hits_total")

    def record_cache_miss(self) -> None:
        if not self.enabled:
            return
        self.counters.cache_misses += 1
        self._update_cache_hit_rate()
        if self.exporter:
            self.exporter.increment_counter("cache_misses_total")

    def record_cache_eviction(self) -> None:
        if not self.enabled:
            return
        self.counters.cache_evictions += 1
        if self.exporter:
            self.exporter.increment_counter("cache_evictions_total")

    @property
    def average_response_time(self) -> float:
        return _mean(self._request_timings)

    @property
    def average_query_time(self) -> float:
        return _mean(self._query_timings)

    @property
    def error_rate(self) -> float:
        total = self.counters.requests_total
        return (self.counters.requests_failed / total) * 100 if total > 0 else 0.0

    @property
    def slow_query_rate(self) -> float:
        queries = self.counters.queries
        return (self.counters.slow_queries / queries) * 100 if queries > 0 else 0.0

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of every recorded metric plus process resource usage."""
        counters = self.counters
        return {
            "requests": {
                "total": counters.requests_total,
                "successful": counters.requests_successful,
                "failed": counters.requests_failed,
                "average_response_time": self.average_response_time,
                "slow_requests": counters.slow_requests,
            },
            "database": {
                "queries": counters.queries,
                "slow_queries": counters.slow_queries,
                "average_query_time": self.average_query_time,
            },
            "cache": {
                "hits": counters.cache_hits,
                "misses": counters.cache_misses,
                "hit_rate": self.cache_hit_rate,
                "evictions": counters.cache_evictions,
            },
            "memory": self._memory_usage(),
            "system": {
                "uptime": time.monotonic() - self._started_at,
                "cpu_usage": psutil.cpu_percent(interval=None),
                "load_average": list(psutil.getloadavg()),
            },
        }

    def get_summary(self) -> Dict[str, Any]:
        """Health score, alerts and recommendations derived from current metrics."""
        metrics = self.get_metrics()
        health = self.calculate_health_score()
        if self.exporter:
            self.exporter.set_gauge("health_score", health)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "health": health,
            "alerts": self._generate_alerts(metrics),
            "recommendations": self._generate_recommendations(),
            "summary": {
                "total_requests": self.counters.requests_total,
                "average_response_time": round(self.average_response_time),
                "error_rate": self.error_rate,
                "cache_hit_rate": self.cache_hit_rate,
                "slow_queries_count": self.counters.slow_queries,
                "memory_usage_mb": round(metrics["memory"]["rss"] / BYTES_PER_MB),
            },
        }

    def calculate_health_score(self) -> float:
        """Overall health in [0, 100]."""
        score = 100.0

        score -= self.error_rate * 2

        average_response = self.average_response_time
        if average_response > 1000:
            score -= 20
        elif average_response > 500:
            score -= 10

        # No cache traffic yet means nothing to penalise
        if self._has_cache_events():
            if self.cache_hit_rate < HIT_RATE_ALERT_PERCENT:
                score -= 15
            elif self.cache_hit_rate < HIT_RATE_WARNING_PERCENT:
                score -= 5

        score -= self.slow_query_rate

        return max(0.0, min(100.0, score))

    def reset(self) -> None:
        """Zero all counters and empty the sample windows."""
        self.counters = Counters()
        self.cache_hit_rate = 0.0
        self._request_timings.clear()
        self._query_timings.clear()
        self.logger.info("Performance metrics reset")

    def _has_cache_events(self) -> bool:
        return self.counters.cache_hits + self.counters.cache_misses > 0

    def _update_cache_hit_rate(self):
        total = self.counters.cache_hits + self.counters.cache_misses
        self.cache_hit_rate = (self.counters.cache_hits / total) * 100 if total > 0 else 0.0

    def _memory_usage(self) -> Dict[str, int]:
        info = self._process.memory_info()
        return {"rss": info.rss, "vms": info.vms}

    def _generate_alerts(self, metrics: Dict[str, Any]) -> List[str]:
        alerts: List[str] = []

        if self.average_response_time > RESPONSE_TIME_ALERT_MS:
            alerts.append("High average response time detected")

        if self._has_cache_events() and self.cache_hit_rate < HIT_RATE_ALERT_PERCENT:
            alerts.append("Low cache hit rate detected")

        if self.counters.slow_queries > SLOW_QUERIES_ALERT_COUNT:
            alerts.append("Multiple slow database queries detected")

        if metrics["memory"]["rss"] / BYTES_PER_MB > self.memory_alert_threshold_mb:
            alerts.append("High memory usage detected")

        return alerts

    def _generate_recommendations(self) -> List[str]:
        recommendations: List[str] = []

        if self._has_cache_events() and self.cache_hit_rate < HIT_RATE_WARNING_PERCENT:
            recommendations.append("Consider increasing cache TTL or improving cache strategy")

        if self.counters.slow_queries > SLOW_QUERIES_WARNING_COUNT:
            recommendations.append("Review and optimize slow database queries")

        if self.average_response_time > RESPONSE_TIME_WARNING_MS:
            recommendations.append("Consider implementing response caching or optimizing business logic")

        return recommendations

    async def _report_loop(self):
        while self.running:
            await asyncio.sleep(self.report_interval_seconds)
            try:
                self._log_summary()
            except Exception as e:
                self.logger.error("Error reporting performance metrics", error=str(e))

    def _log_summary(self):
        summary = self.get_summary()
        self.logger.info(
            "Performance summary",
            health=summary["health"],
            average_response_time=summary["summary"]["average_response_time"],
            cache_hit_rate=round(summary["summary"]["cache_hit_rate"], 1),
            memory_usage_mb=summary["summary"]["memory_usage_mb"],
        )
        if summary["alerts"]:
            self.logger.warning("Performance alerts", alerts=summary["alerts"])


def _mean(samples: Deque[float]) -> float:
    return sum(samples) / len(samples) if samples else 0.0
