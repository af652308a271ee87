"""
Owned wiring of the cache, recorder, sweeper and optimizer.
"""

from typing import Optional, TYPE_CHECKING

from shared.config import BaseConfig
from shared.logging import get_logger

from .caching.timed_cache import TimedCache
from .caching.sweeper import CacheSweeper
from .monitoring.recorder import MetricsRecorder
from .optimizer.query_optimizer import QueryOptimizer

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheContext:
    """One set of cache components whose lifetime follows the application.

    Call sites receive the components from here instead of a global
    instance; tests build a fresh context per test.
    """

    def __init__(self, config: Optional[BaseConfig] = None, exporter: Optional["MetricsCollector"] = None):
        self.config = config or BaseConfig()
        self.logger = get_logger("cache.context")

        self.recorder = MetricsRecorder(
            sample_capacity=self.config.metrics_sample_capacity,
            slow_request_threshold_ms=self.config.slow_request_threshold_ms,
            slow_query_threshold_ms=self.config.slow_query_threshold_ms,
            enabled=self.config.enable_metrics,
            exporter=exporter,
            report_interval_seconds=self.config.metrics_interval_ms / 1000.0,
            memory_alert_threshold_mb=self.config.memory_alert_threshold_mb,
        )
        self.cache = TimedCache(
            max_size=self.config.cache_max_size,
            default_ttl_ms=self.config.cache_default_ttl_ms,
            on_evict=self._on_evict,
        )
        self.sweeper = CacheSweeper(
            self.cache,
            interval_seconds=self.config.cache_sweep_interval_ms / 1000.0,
        )
        self.optimizer = QueryOptimizer(
            self.cache,
            self.recorder,
            max_concurrency=self.config.batch_max_concurrency,
        )

    def _on_evict(self, key: str):
        self.recorder.record_cache_eviction()

    async def start(self):
        await self.sweeper.start()
        await self.recorder.start()
        self.logger.info(
            "Cache initialized",
            max_size=self.cache.max_size,
            default_ttl_ms=self.cache.default_ttl_ms,
        )

    async def stop(self):
        await self.recorder.stop()
        await self.sweeper.stop()
        self.logger.info("Cache context stopped")

    async def __aenter__(self) -> "CacheContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
