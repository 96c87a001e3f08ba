"""
Storefront response caching package.

Read-through caching for expensive read endpoints and write invalidation
after mutations, over Redis with an in-process fallback. The cache is
advisory: its failures cost latency, never correctness.
"""

from .cache_service import CacheService, CacheStatistics, CachedResult
from .middleware import ResponseCacheMiddleware, build_cache_key
from .registry import ENTITY_CACHE_CONFIGS, EntityCacheConfig, EntityCacheRegistry
from .version_store import CacheVersionStore

__all__ = [
    "CacheService",
    "CacheStatistics",
    "CachedResult",
    "CacheVersionStore",
    "ENTITY_CACHE_CONFIGS",
    "EntityCacheConfig",
    "EntityCacheRegistry",
    "ResponseCacheMiddleware",
    "build_cache_key",
]
