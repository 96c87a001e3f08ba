"""
Entity cache registry.

Maps each cached entity type to its TTL and to the cluster of entity types
that must be invalidated together. Clusters exist because some content is
denormalized across collections: an offer change affects offer pages, offer
products, offer brands and offer categories, which are cached under their own
entity types.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .cache_service import CacheService


DEFAULT_TTL = 3600

SHORT_TTL = 1800      # volatile catalog data
STANDARD_TTL = 3600
STABLE_TTL = 7200     # taxonomy
STATIC_TTL = 86400    # reference data


@dataclass(frozen=True)
class EntityCacheConfig:
    """TTL and invalidation cluster for one entity type."""

    entity_type: str
    ttl_seconds: int
    invalidates: Tuple[str, ...] = ()

    @property
    def cluster(self) -> Tuple[str, ...]:
        return self.invalidates or (self.entity_type,)

    async def invalidate(self, cache: "CacheService") -> int:
        """Drop every key of this entity's cluster; returns keys removed."""
        if len(self.cluster) == 1:
            return await cache.invalidate_entity(self.cluster[0])
        return await cache.invalidate_multiple(self.cluster)


def _entity(entity_type: str, ttl_seconds: int, *cluster: str) -> Tuple[str, EntityCacheConfig]:
    return entity_type, EntityCacheConfig(entity_type, ttl_seconds, tuple(cluster))


ENTITY_CACHE_CONFIGS: Mapping[str, EntityCacheConfig] = MappingProxyType(dict([
    _entity("products", SHORT_TTL),
    _entity("categories", STABLE_TTL),
    _entity("subCategories", STABLE_TTL),
    _entity("brands", STABLE_TTL),
    _entity("banners", STANDARD_TTL),
    _entity("bannerCards", STANDARD_TTL),
    _entity("settings", STATIC_TTL),
    _entity("homeSections", STANDARD_TTL),
    _entity(
        "offers", SHORT_TTL,
        "offers", "offerPages", "offerProducts", "offerBrands", "offerCategories",
    ),
    _entity(
        "gamingZone", STANDARD_TTL,
        "gamingZone", "gamingZonePages", "gamingZoneCategories", "gamingZoneBrands",
    ),
    _entity(
        "blogs", STANDARD_TTL,
        "blogs", "blogCategories", "blogTopics", "blogBrands",
    ),
    _entity("colors", STATIC_TTL),
    _entity("sizes", STATIC_TTL),
    _entity("units", STATIC_TTL),
    _entity("volumes", STATIC_TTL),
    _entity("warranties", STATIC_TTL),
    _entity("taxes", STATIC_TTL),
    _entity("deliveryCharges", STANDARD_TTL),
    _entity("coupons", SHORT_TTL),
    _entity("reviews", SHORT_TTL),
    _entity("customSliderItems", STANDARD_TTL),
    _entity("buyerProtection", STATIC_TTL),
]))


def entity_ttls() -> Dict[str, int]:
    """TTL policy table consumed by the cache service."""
    return {name: config.ttl_seconds for name, config in ENTITY_CACHE_CONFIGS.items()}


class EntityCacheRegistry:
    """Binds the static entity table to a cache service instance."""

    def __init__(
        self,
        cache: "CacheService",
        configs: Optional[Mapping[str, EntityCacheConfig]] = None,
    ):
        self.cache = cache
        self.configs = configs if configs is not None else ENTITY_CACHE_CONFIGS
        self.logger = get_logger("storefront.cache.registry")

    def entity_types(self) -> List[str]:
        return list(self.configs)

    def is_registered(self, entity_type: str) -> bool:
        return entity_type in self.configs

    def get(self, entity_type: str) -> Optional[EntityCacheConfig]:
        return self.configs.get(entity_type)

    def get_ttl(self, entity_type: str) -> int:
        config = self.configs.get(entity_type)
        if config is None:
            return self.cache.default_ttl
        return config.ttl_seconds

    async def invalidate(self, entity_type: str) -> int:
        """Invalidate an entity type, expanding registered clusters.

        Unregistered names still invalidate their own key prefix.
        """
        config = self.configs.get(entity_type)
        if config is None:
            return await self.cache.invalidate_entity(entity_type)
        return await config.invalidate(self.cache)

    async def invalidate_many(self, entity_types: Iterable[str]) -> Dict[str, int]:
        results: Dict[str, int] = {}
        for entity_type in entity_types:
            results[entity_type] = await self.invalidate(entity_type)
        return results

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "ttl_seconds": config.ttl_seconds,
                "invalidates": list(config.cluster),
                "description": f"Cache for {name}",
            }
            for name, config in self.configs.items()
        ]
