"""
Query cache service.
"""

from typing import Any, Dict, Optional

from fastapi import Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .context import CacheContext


SERVICE_NAME = "cache"
SERVICE_PORT = 8013


class CacheService(BaseService):
    """Exposes cache and performance status for dashboards and operators."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        self.context = CacheContext(self.config, exporter=self.metrics)

        self._setup_performance_routes()

    async def on_startup(self):
        await self.context.start()

    async def on_shutdown(self):
        await self.context.stop()

    def on_request_complete(self, request: Request, status_code: int, duration_ms: float):
        self.context.recorder.record_request(duration_ms, status_code < 400)

        if duration_ms > self.config.slow_request_threshold_ms:
            self.logger.warning(
                "Slow request detected",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=duration_ms,
            )

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {
            "cache": "ok",
            "sweeper": "running" if self.context.sweeper.running else "stopped",
        }

    def _setup_performance_routes(self):
        """Set up performance routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Query cache layer - Cache Service",
                "version": "1.0.0",
                "capabilities": ["caching", "metrics", "invalidation"]
            }

        @self.app.get("/performance/metrics")
        async def get_performance_metrics():
            """Current performance metrics."""
            return {
                "success": True,
                "message": "Performance metrics retrieved successfully",
                "data": self.context.recorder.get_metrics(),
            }

        @self.app.get("/performance/summary")
        async def get_performance_summary():
            """Health score, alerts and recommendations."""
            return {
                "success": True,
                "message": "Performance summary retrieved successfully",
                "data": self.context.recorder.get_summary(),
            }

        @self.app.post("/performance/metrics/reset")
        async def reset_performance_metrics():
            """Reset performance counters, latency windows and cache statistics."""
            self.context.recorder.reset()
            self.context.cache.reset_stats()
            return {"success": True, "message": "Performance metrics reset successfully"}

        @self.app.get("/performance/cache/stats")
        async def get_cache_stats():
            """Cache statistics."""
            return {
                "success": True,
                "message": "Cache statistics retrieved successfully",
                "data": self.context.cache.get_stats(),
            }

        @self.app.post("/performance/cache/clear")
        async def clear_cache():
            """Clear all cached data."""
            self.context.cache.clear()
            self.logger.info("Cache cleared via API")
            return {"success": True, "message": "Cache cleared successfully"}

        @self.app.delete("/performance/cache/{entity_type}")
        async def invalidate_entity_cache(
            entity_type: str,
            entity_id: Optional[str] = Query(None, description="Restrict to one entity id")
        ):
            """Invalidate cached reads related to an entity."""
            deleted = self.context.optimizer.invalidate_related_cache(entity_type, entity_id)
            return {
                "success": True,
                "message": "Cache invalidated successfully",
                "data": {"entity_type": entity_type, "entity_id": entity_id, "deleted": deleted},
            }


def create_app():
    """Create cache service application."""
    service = CacheService()
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
