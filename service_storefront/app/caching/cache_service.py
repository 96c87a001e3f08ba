"""
Response cache service.

Single entry point for cache reads, writes and invalidation. Hides which
backend is active, owns key namespacing, the TTL policy and the statistics.
The cache is best-effort: every public method degrades to a miss, ``False``
or ``0`` instead of raising into request handling.
"""

import asyncio
import inspect
from contextlib import nullcontext
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, Optional

from shared.errors import CacheSerializationError
from shared.logging import get_logger
from .backends import CacheBackend, MemoryBackend, RedisBackend
from .backends.memory import format_hit_rate
from .registry import DEFAULT_TTL, entity_ttls

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_PREFIX = "graba2z"


@dataclass
class CacheStatistics:
    """Process-lifetime counters. ``hits + misses == total_requests``."""

    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> str:
        return format_hit_rate(self.hits, self.hits + self.misses)

    def as_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "hit_rate": self.hit_rate}


@dataclass
class CachedResult:
    """Outcome of :meth:`CacheService.get_or_set`."""

    data: Any
    from_cache: bool


class CacheService:
    """Facade over the memory and Redis backends."""

    def __init__(
        self,
        *,
        prefix: str = DEFAULT_PREFIX,
        default_ttl: int = DEFAULT_TTL,
        memory_backend: Optional[MemoryBackend] = None,
        remote_backend: Optional[RedisBackend] = None,
        ttl_policy: Optional[Mapping[str, int]] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.prefix = prefix
        self.default_ttl = default_ttl
        self.memory = memory_backend if memory_backend is not None else MemoryBackend()
        self.ttl_policy = dict(ttl_policy) if ttl_policy is not None else entity_ttls()
        self.metrics = metrics
        self.stats = CacheStatistics()
        self.logger = get_logger("storefront.cache")

        self._remote: Optional[RedisBackend] = remote_backend
        self._configured_remote = remote_backend
        if self._remote is not None:
            self._remote.on_abandon(self._abandon_remote)

    async def initialize(self, cleanup_interval: Optional[float] = None) -> str:
        """Connect the remote backend if configured; returns the active backend type."""
        if self._remote is not None and not await self._remote.connect():
            self.logger.warning("Falling back to in-memory cache", reason="connect_failed")
            self._record_fallback("connect_failed")
            self._remote = None
        elif self._remote is None:
            self.logger.info("Using in-memory cache (Redis URL not configured)")

        if cleanup_interval:
            self.memory.start_reaper(cleanup_interval)

        self.logger.info("Cache initialized", cache_type=self.backend_type)
        return self.backend_type

    def _abandon_remote(self) -> None:
        if self._remote is None:
            return
        self.logger.warning("Redis abandoned, using in-memory cache for the rest of the process")
        self._record_fallback("reconnect_abandoned")
        self._remote = None

    def _record_fallback(self, reason: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_backend_fallbacks_total", reason=reason)

    def get_client(self) -> CacheBackend:
        """Return the backend serving this call."""
        if self._remote is not None and self._remote.available:
            return self._remote
        return self.memory

    @property
    def backend_type(self) -> str:
        return "Redis" if self.get_client() is self._remote else "Memory"

    def generate_key(self, entity_type: str, identifier: Any = "") -> str:
        return f"{self.prefix}:{entity_type}:{identifier}"

    def full_key(self, key: str) -> str:
        if key.startswith(f"{self.prefix}:"):
            return key
        return f"{self.prefix}:{key}"

    def get_ttl(self, entity_type: str) -> int:
        return self.ttl_policy.get(entity_type, self.default_ttl)

    async def get(self, key: str) -> Optional[Any]:
        self.stats.total_requests += 1
        full_key = self.full_key(key)
        client = self.get_client()

        try:
            with self._timed("get", client):
                data = await client.get(full_key)
        except Exception as exc:
            self.logger.error("Cache get failed", key=full_key, backend=client.name, error=str(exc))
            data = None

        if data is None:
            self.stats.misses += 1
            self._count("cache_misses_total", client)
            return None

        self.stats.hits += 1
        self._count("cache_hits_total", client)
        return data

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        full_key = self.full_key(key)
        client = self.get_client()

        try:
            with self._timed("set", client):
                await client.set(full_key, value, ttl or self.default_ttl)
        except CacheSerializationError as exc:
            self.logger.warning("Value not cacheable", key=full_key, error=str(exc))
            return False
        except Exception as exc:
            self.logger.error("Cache set failed", key=full_key, backend=client.name, error=str(exc))
            return False

        self.stats.sets += 1
        self._count("cache_sets_total", client)
        return True

    async def delete(self, key: str) -> bool:
        full_key = self.full_key(key)
        client = self.get_client()

        try:
            await client.delete(full_key)
        except Exception as exc:
            self.logger.error("Cache delete failed", key=full_key, backend=client.name, error=str(exc))
            return False

        self.stats.deletes += 1
        return True

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern`` (``*`` wildcard) in the namespace."""
        full_pattern = self.full_key(pattern)
        client = self.get_client()

        try:
            count = await client.delete_pattern(full_pattern)
        except Exception as exc:
            self.logger.error(
                "Cache pattern invalidation failed",
                pattern=full_pattern,
                backend=client.name,
                error=str(exc),
            )
            return 0

        self.stats.invalidations += count
        self.logger.info("Invalidated cache keys", pattern=full_pattern, count=count)
        return count

    async def invalidate_entity(self, entity_type: str) -> int:
        count = await self.invalidate_pattern(f"{entity_type}:*")
        if self.metrics and count:
            self.metrics.increment_counter("cache_invalidations_total", count, entity_type=entity_type)
        return count

    async def invalidate_multiple(self, entity_types: Iterable[str]) -> int:
        """Invalidate each type concurrently; one failure never blocks the rest."""
        entity_types = list(entity_types)
        results = await asyncio.gather(
            *(self.invalidate_entity(entity_type) for entity_type in entity_types),
            return_exceptions=True,
        )

        total = 0
        for entity_type, outcome in zip(entity_types, results):
            if isinstance(outcome, BaseException):
                self.logger.error("Entity invalidation failed", entity_type=entity_type, error=str(outcome))
                continue
            total += outcome
        return total

    async def flush_all(self) -> int:
        """Clear the whole namespace on the active backend."""
        client = self.get_client()

        try:
            count = await client.flush_all(self.prefix)
        except Exception as exc:
            self.logger.error("Cache flush failed", backend=client.name, error=str(exc))
            return 0

        self.stats.invalidations += count
        self.logger.info("Flushed cache namespace", prefix=self.prefix, backend=client.name, count=count)
        return count

    async def get_or_set(
        self,
        key: str,
        producer: Callable[[], Any],
        ttl: Optional[int] = None,
    ) -> CachedResult:
        """Read-through helper.

        Concurrent misses on one key each run ``producer``; there is no
        single-flight de-duplication. Producer errors propagate to the caller.
        """
        cached = await self.get(key)
        if cached is not None:
            return CachedResult(data=cached, from_cache=True)

        data = producer()
        if inspect.isawaitable(data):
            data = await data

        await self.set(key, data, ttl)
        return CachedResult(data=data, from_cache=False)

    async def get_stats(self) -> Dict[str, Any]:
        client = self.get_client()
        try:
            backend_stats = await client.get_stats()
        except Exception as exc:
            backend_stats = {"error": str(exc)}

        return {
            **self.stats.as_dict(),
            "backend": backend_stats,
            "cache_type": self.backend_type,
            "prefix": self.prefix,
        }

    async def health_check(self) -> Dict[str, Any]:
        client = self.get_client()
        cache_type = self.backend_type
        try:
            pong = await client.ping()
        except Exception as exc:
            return {"status": "unhealthy", "cache_type": cache_type, "error": str(exc)}
        return {"status": "healthy", "cache_type": cache_type, "response": pong}

    async def close(self) -> None:
        await self.memory.close()
        if self._configured_remote is not None:
            await self._configured_remote.close()

    def _count(self, metric: str, client: CacheBackend) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric, cache_type=client.name)

    def _timed(self, operation: str, client: CacheBackend):
        if self.metrics:
            return self.metrics.time_operation(
                "cache_operation_duration_seconds", operation=operation, cache_type=client.name
            )
        return nullcontext()
