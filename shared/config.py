"""
Shared configuration management for the Storefront backend.
"""

from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Remote cache; None keeps the service on the in-process backend
    redis_url: Optional[str] = Field(default=None)

    # Response cache
    cache_prefix: str = Field(default="graba2z")
    cache_default_ttl: int = Field(default=3600)
    cache_max_memory_items: int = Field(default=10000)
    cache_cleanup_interval: int = Field(default=60)
    cache_scan_batch_size: int = Field(default=100)

    # Redis reconnection policy
    cache_reconnect_attempts: int = Field(default=10)
    cache_reconnect_step_ms: int = Field(default=100)
    cache_reconnect_cap_ms: int = Field(default=3000)

    # Security: API key -> principal ({"user_id": ..., "roles": [...]})
    api_keys: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


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
