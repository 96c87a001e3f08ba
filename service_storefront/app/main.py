"""
Storefront service: composition root for the response cache.

Builds the cache backends, the cache service, the entity registry and the
HTTP caching middleware, and exposes the cache management API.
"""

from typing import Any, Dict, List, Optional

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import InvalidEntityTypeError, ValidationError
from shared.retry import RetryConfig
from service_storefront.app.caching import (
    CacheService,
    CacheVersionStore,
    EntityCacheRegistry,
    ResponseCacheMiddleware,
)
from service_storefront.app.caching.backends import MemoryBackend, RedisBackend
from service_storefront.app.caching.registry import entity_ttls
from service_storefront.app.domain.auth_middleware import AuthMiddleware

SERVICE_NAME = "storefront"
SERVICE_PORT = 5000


class InvalidateMultipleRequest(BaseModel):
    """Body of POST /cache/invalidate-multiple."""

    model_config = ConfigDict(populate_by_name=True)

    entity_types: List[str] = Field(default_factory=list, alias="entityTypes")


def build_cache_service(config: ServiceConfig, metrics=None) -> CacheService:
    """Assemble the cache service from configuration."""
    memory = MemoryBackend(max_items=config.cache_max_memory_items)

    remote = None
    if config.redis_url:
        remote = RedisBackend(
            config.redis_url,
            scan_batch_size=config.cache_scan_batch_size,
            reconnect_config=RetryConfig.linear(
                max_attempts=config.cache_reconnect_attempts,
                step=config.cache_reconnect_step_ms / 1000,
                cap=config.cache_reconnect_cap_ms / 1000,
            ),
        )

    return CacheService(
        prefix=config.cache_prefix,
        default_ttl=config.cache_default_ttl,
        memory_backend=memory,
        remote_backend=remote,
        ttl_policy=entity_ttls(),
        metrics=metrics,
    )


class StorefrontService(BaseService):
    """Storefront service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, cache: Optional[CacheService] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)
        self.cache = cache if cache is not None else build_cache_service(self.config, self.metrics)
        self.registry = EntityCacheRegistry(self.cache)
        self.response_cache = ResponseCacheMiddleware(self.cache, self.registry)
        self.version_store = CacheVersionStore()
        self.auth = AuthMiddleware(self.config.api_keys)

        @self.app.on_event("startup")
        async def _startup():
            await self.cache.initialize(self.config.cache_cleanup_interval)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.cache.close()

        @self.app.middleware("http")
        async def resolve_principal(request: Request, call_next):
            self.auth.resolve(request)
            return await call_next(request)

        self._setup_cache_routes()

        # Expose service instance via app state for route modules and tests
        self.app.state.storefront_service = self
        self.app.state.response_cache = self.response_cache

    async def _check_dependencies(self) -> Dict[str, str]:
        health = await self.cache.health_check()
        return {"cache": "ok" if health["status"] == "healthy" else "degraded"}

    def _validate_entity_types(self, entity_types: List[str]) -> None:
        for entity_type in entity_types:
            if not self.registry.is_registered(entity_type):
                raise InvalidEntityTypeError(entity_type, self.registry.entity_types())

    def _setup_cache_routes(self):
        """Set up cache management routes."""
        require_admin = self.auth.require_admin

        @self.app.get("/cache/health")
        async def cache_health():
            """Cache backend connectivity."""
            return await self.cache.health_check()

        @self.app.get("/cache/version")
        async def cache_version():
            """Client cache version (public)."""
            return self.version_store.current()

        @self.app.get("/cache/stats")
        async def cache_stats(user_info: Dict[str, Any] = Depends(require_admin)):
            """Hit/miss/set/delete counters and active backend."""
            return {
                "success": True,
                "stats": await self.cache.get_stats(),
                "health": await self.cache.health_check(),
            }

        @self.app.get("/cache/history")
        async def cache_history(user_info: Dict[str, Any] = Depends(require_admin)):
            return self.version_store.history()

        @self.app.post("/cache/reset")
        async def reset_client_cache(user_info: Dict[str, Any] = Depends(require_admin)):
            """Bump the client cache version so every client refetches."""
            state = self.version_store.bump(reset_by=user_info.get("user_id"))
            return {
                "success": True,
                "message": "Cache reset successfully. All clients will fetch fresh content on their next visit.",
                "version": state.version,
                "reset_at": state.reset_at.isoformat(),
            }

        @self.app.post("/cache/flush")
        async def flush_cache(user_info: Dict[str, Any] = Depends(require_admin)):
            """Clear the whole server-side cache namespace."""
            flushed = await self.cache.flush_all()
            state = self.version_store.bump(reset_by=user_info.get("user_id"), reason="Full cache flush")
            return {
                "success": True,
                "message": "All server-side cache has been flushed.",
                "flushed_keys": flushed,
                "client_cache_version": state.version,
            }

        @self.app.post("/cache/invalidate-multiple")
        async def invalidate_multiple(
            body: InvalidateMultipleRequest,
            user_info: Dict[str, Any] = Depends(require_admin),
        ):
            """Invalidate several entity types."""
            if not body.entity_types:
                raise ValidationError("Provide a non-empty list of entity types to invalidate")
            self._validate_entity_types(body.entity_types)

            results = await self.registry.invalidate_many(body.entity_types)
            return {
                "success": True,
                "message": f"Cache invalidated for {len(body.entity_types)} entity types.",
                "results": results,
                "total_invalidated": sum(results.values()),
            }

        @self.app.post("/cache/invalidate/{entity_type}")
        async def invalidate_entity(entity_type: str, user_info: Dict[str, Any] = Depends(require_admin)):
            """Invalidate one entity type (and its cluster)."""
            self._validate_entity_types([entity_type])
            count = await self.registry.invalidate(entity_type)
            return {
                "success": True,
                "message": f"Cache for '{entity_type}' has been invalidated.",
                "invalidated_keys": count,
            }

        @self.app.post("/cache/warm")
        async def warm_cache(user_info: Dict[str, Any] = Depends(require_admin)):
            # Entries are populated on first access by the read path
            return {
                "success": True,
                "message": "Cache warming acknowledged. Data will be cached as it is accessed.",
            }

        @self.app.get("/cache/entity-types")
        async def list_entity_types(user_info: Dict[str, Any] = Depends(require_admin)):
            return {"success": True, "entity_types": self.registry.describe()}


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = StorefrontService(config)
    return service.app


if __name__ == "__main__":
    service = StorefrontService(get_config(SERVICE_NAME, SERVICE_PORT))
    service.run()
