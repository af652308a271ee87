"""
API tests for the cache service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_cache.app.main import CacheService, SERVICE_NAME, SERVICE_PORT
from shared.config import get_config


class TestCacheService:
    """Test cases for the cache service endpoints."""

    @pytest.fixture
    def service(self):
        return CacheService(get_config(SERVICE_NAME, SERVICE_PORT, cache_max_size=10))

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "cache"

    def test_health_reports_running_sweeper(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"cache": "ok", "sweeper": "running"}

    def test_request_headers(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Response-Time"].endswith("ms")

    def test_requests_are_recorded(self, client):
        client.get("/")
        client.get("/does-not-exist")

        data = client.get("/performance/metrics").json()["data"]

        assert data["requests"]["total"] == 2
        assert data["requests"]["successful"] == 1
        assert data["requests"]["failed"] == 1
        assert set(data) == {"requests", "database", "cache", "memory", "system"}

    def test_summary_of_fresh_service(self, client):
        response = client.get("/performance/summary")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["health"] == 100
        assert data["summary"]["total_requests"] == 0
        assert isinstance(data["alerts"], list)

    def test_reset_metrics(self, client, service):
        client.get("/")
        client.get("/does-not-exist")
        service.context.cache.set("student:1", {"id": 1})
        service.context.cache.get("student:1")

        response = client.post("/performance/metrics/reset")

        assert response.json()["success"] is True
        # only the reset call itself is recorded afterwards
        counters = service.context.recorder.counters
        assert counters.requests_total == 1
        assert counters.requests_successful == 1
        assert counters.requests_failed == 0

        stats = client.get("/performance/cache/stats").json()["data"]
        assert stats["hits"] == 0
        assert stats["sets"] == 0
        assert stats["hit_rate"] == 0
        assert stats["total_keys"] == 1

    def test_unhandled_error_is_recorded_as_failure(self, service):
        @service.app.get("/boom")
        async def boom():
            raise RuntimeError("producer exploded")

        with TestClient(service.app, raise_server_exceptions=False) as client:
            response = client.get("/boom")

        assert response.status_code == 500
        counters = service.context.recorder.counters
        assert counters.requests_total == 1
        assert counters.requests_failed == 1
        assert service.context.recorder.error_rate == 100
        assert service.metrics.registry.get_sample_value(
            "http_requests_total",
            {"method": "GET", "endpoint": "/boom", "status_code": "500"},
        ) == 1.0

    def test_cache_stats_and_clear(self, client, service):
        service.context.cache.set("student:1", {"id": 1})

        stats = client.get("/performance/cache/stats").json()["data"]
        assert stats["total_keys"] == 1
        assert stats["max_size"] == 10

        response = client.post("/performance/cache/clear")
        assert response.json()["success"] is True
        assert len(service.context.cache) == 0

    def test_invalidate_entity(self, client, service):
        cache = service.context.cache
        cache.set("students:all", 1)
        cache.set("student:7", 2)
        cache.set("courses:{}", 3)

        response = client.delete("/performance/cache/student", params={"entity_id": "7"})

        assert response.status_code == 200
        assert response.json()["data"]["deleted"] == 2
        assert cache.get_keys() == ["courses:{}"]

    def test_invalidate_unknown_entity(self, client):
        response = client.delete("/performance/cache/grade")

        assert response.status_code == 200
        assert response.json()["data"]["deleted"] == 0

    def test_prometheus_metrics(self, client, service):
        service.context.recorder.record_cache_hit()

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "cache_hits_total 1.0" in response.text
