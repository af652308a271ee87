"""
Background expiry sweep for the timed cache.
"""

import asyncio
from typing import Optional

from shared.logging import get_logger
from .timed_cache import TimedCache


DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


class CacheSweeper:
    """Periodically removes expired entries nobody reads again."""

    def __init__(self, cache: TimedCache, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.logger = get_logger("cache.sweeper")

        self.sweep_task: Optional[asyncio.Task] = None
        self.running = False
        self.sweeps = 0

    async def start(self):
        """Start the sweep loop."""
        if self.running:
            return
        self.running = True
        self.sweep_task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the sweep loop."""
        self.running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None

        self.logger.info("Cache sweeper stopped")

    def sweep_once(self) -> int:
        """Run a single sweep and return the number of removed entries."""
        removed = self.cache.purge_expired()
        self.sweeps += 1
        if removed:
            self.logger.debug("Swept expired cache entries", removed=removed)
        return removed

    async def _sweep_loop(self):
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception as e:
                self.logger.error("Error sweeping cache", error=str(e))
