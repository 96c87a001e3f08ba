"""
Redis cache backend.

Values are stored as JSON strings. Pattern deletes walk the keyspace with
SCAN so a large namespace never blocks the shared Redis instance.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.errors import CacheBackendError, CacheSerializationError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from .base import CacheBackend

DEFAULT_SCAN_BATCH_SIZE = 100

# min(attempt * 100ms, 3s), ten attempts, then give up for good
DEFAULT_RECONNECT = RetryConfig.linear(max_attempts=10, step=0.1, cap=3.0)

_GLOB_SPECIALS = re.compile(r"([?\[\]\\])")


def escape_glob(pattern: str) -> str:
    """Escape Redis glob metacharacters other than ``*``."""
    return _GLOB_SPECIALS.sub(r"\\\1", pattern)


class RedisBackend(CacheBackend):
    """Adapter from the cache backend contract to ``redis.asyncio``."""

    name = "redis"

    def __init__(
        self,
        redis_url: str,
        *,
        scan_batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
        reconnect_config: Optional[RetryConfig] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.scan_batch_size = scan_batch_size
        self.reconnect_config = reconnect_config or DEFAULT_RECONNECT
        self.logger = get_logger("storefront.cache.redis")

        self._client: Optional[redis.Redis] = client
        self._reconnect_task: Optional[asyncio.Task] = None
        self._abandon_callbacks: List[Callable[[], None]] = []

        self.connected = False
        self.abandoned = False
        self.reconnect_attempts = 0

    @property
    def available(self) -> bool:
        return self.connected and not self.abandoned and self._client is not None

    def on_abandon(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once when reconnection is given up."""
        self._abandon_callbacks.append(callback)

    async def connect(self) -> bool:
        """Open the client and verify it with a single PING."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
            )

        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            self.connected = False
            self.logger.warning("Redis connection failed", error=str(exc))
            return False

        self.connected = True
        self.logger.info("Redis cache connected")
        return True

    async def _execute(self, operation: str, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if not self.available:
            raise CacheBackendError(self.name, "not connected", {"operation": operation})

        try:
            return await func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            self._connection_lost(exc)
            raise CacheBackendError(self.name, str(exc), {"operation": operation}) from exc
        except RedisError as exc:
            raise CacheBackendError(self.name, str(exc), {"operation": operation}) from exc

    def _connection_lost(self, exc: Exception) -> None:
        if self.abandoned:
            return

        if self.connected:
            self.connected = False
            self.logger.warning("Redis connection lost, reconnecting", error=str(exc))

        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect())

    def _count_attempt(self, attempt: int) -> None:
        self.reconnect_attempts += 1

    async def _ping(self) -> Any:
        return await self._client.ping()

    async def _reconnect(self) -> None:
        ping = retry_on_exception(
            (RedisError, OSError),
            self.reconnect_config,
            on_attempt=self._count_attempt,
        )(self._ping)

        try:
            await ping()
        except RetryError as exc:
            self.abandoned = True
            self.logger.warning(
                "Redis reconnection abandoned",
                attempts=exc.attempts,
                error=str(exc.last_exception),
            )
            for callback in self._abandon_callbacks:
                callback()
            return

        self.connected = True
        self.logger.info("Redis connection restored", attempts=self.reconnect_attempts)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._execute("get", self._client.get, key)
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheBackendError(self.name, "stored value is not valid JSON", {"key": key}) from exc

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(self.name, key, exc) from exc

        if ttl:
            # SET ... EX is atomic; no window where the key lives without a TTL
            result = await self._execute("set", self._client.set, key, payload, ex=int(ttl))
        else:
            result = await self._execute("set", self._client.set, key, payload)
        return bool(result)

    async def delete(self, key: str) -> bool:
        removed = await self._execute("delete", self._client.delete, key)
        return removed > 0

    async def _scan(self, pattern: str):
        match = escape_glob(pattern)
        cursor = 0
        while True:
            cursor, batch = await self._execute(
                "scan", self._client.scan, cursor=cursor, match=match, count=self.scan_batch_size
            )
            yield batch
            if int(cursor) == 0:
                break

    async def keys(self, pattern: str) -> List[str]:
        found: List[str] = []
        async for batch in self._scan(pattern):
            found.extend(batch)
        return found

    async def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        async for batch in self._scan(pattern):
            if batch:
                deleted += await self._execute("delete", self._client.delete, *batch)
        return deleted

    async def flush_all(self, namespace: str) -> int:
        # Shared instance: only our namespace, never FLUSHDB
        return await self.delete_pattern(f"{namespace}:*")

    async def ping(self) -> str:
        result = await self._execute("ping", self._client.ping)
        return "PONG" if result is True else str(result)

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "abandoned": self.abandoned,
            "reconnect_attempts": self.reconnect_attempts,
        }

    async def close(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass

        if self._client is not None:
            await self._client.aclose()
            self.logger.info("Redis cache closed")
        self.connected = False
