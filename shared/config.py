"""
Shared configuration management for the query cache service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info")

    # Cache
    cache_max_size: int = Field(default=1000, gt=0)
    cache_default_ttl_ms: int = Field(default=5 * 60 * 1000, gt=0)
    cache_sweep_interval_ms: int = Field(default=60 * 1000, gt=0)

    # Metrics
    enable_metrics: bool = Field(default=True)
    metrics_sample_capacity: int = Field(default=1000, gt=0)
    metrics_interval_ms: int = Field(default=60 * 1000, gt=0)
    slow_request_threshold_ms: float = Field(default=1000.0, gt=0)
    slow_query_threshold_ms: float = Field(default=1000.0, gt=0)
    memory_alert_threshold_mb: float = Field(default=500.0, gt=0)

    # Query optimizer
    batch_max_concurrency: int = Field(default=5, gt=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
