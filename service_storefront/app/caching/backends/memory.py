"""
In-process cache backend.

Used when no Redis URL is configured, when the initial Redis connection
fails, and for the rest of the process once Redis reconnection is abandoned.
"""

import asyncio
import json
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from shared.errors import CacheSerializationError
from shared.logging import get_logger
from .base import CacheBackend, CacheEntry, glob_to_regex

DEFAULT_MAX_ITEMS = 10000
DEFAULT_CLEANUP_INTERVAL = 60


class MemoryBackend(CacheBackend):
    """Bounded, TTL-aware dictionary store.

    Capacity is enforced by evicting the oldest *inserted* key, one per
    ``set`` of a new key. This is FIFO, not LRU: reads do not refresh a key's
    position. Expired entries are removed lazily on ``get`` and periodically
    by the reaper task.
    """

    name = "memory"

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS, clock: Callable[[], float] = time.time):
        self.max_items = max(1, max_items)
        self.logger = get_logger("storefront.cache.memory")
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._reaper: Optional[asyncio.Task] = None
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "evictions": 0}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.stats["misses"] += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        return json.loads(entry.value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(self.name, key, exc) from exc

        now = self._clock()
        existing = self._entries.get(key)
        if existing is None and len(self._entries) >= self.max_items:
            evicted_key, _ = self._entries.popitem(last=False)
            self.stats["evictions"] += 1
            self.logger.debug("Evicted oldest cache entry", key=evicted_key)

        entry = CacheEntry(
            key=key,
            value=payload,
            created_at=now,
            expires_at=now + ttl if ttl else None,
        )
        # Assignment to an existing key keeps its insertion position
        self._entries[key] = entry
        self.stats["sets"] += 1
        return True

    async def delete(self, key: str) -> bool:
        self.stats["deletes"] += 1
        return self._entries.pop(key, None) is not None

    async def keys(self, pattern: str) -> List[str]:
        regex = glob_to_regex(pattern)
        return [key for key in list(self._entries) if regex.match(key)]

    async def delete_pattern(self, pattern: str) -> int:
        matched = await self.keys(pattern)
        for key in matched:
            await self.delete(key)
        return len(matched)

    async def flush_all(self, namespace: str) -> int:
        # The store is process-private, so every entry belongs to this namespace
        count = len(self._entries)
        self._entries.clear()
        return count

    async def ping(self) -> str:
        return "PONG"

    def cleanup(self) -> int:
        """Remove every expired entry; returns the count removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug("Removed expired cache entries", count=len(expired))
        return len(expired)

    def start_reaper(self, interval: float = DEFAULT_CLEANUP_INTERVAL) -> None:
        """Start the background task that purges expired entries."""
        if self._reaper is not None and not self._reaper.done():
            return
        self._reaper = asyncio.create_task(self._reap(interval))

    async def stop_reaper(self) -> None:
        if self._reaper is None:
            return
        self._reaper.cancel()
        try:
            await self._reaper
        except asyncio.CancelledError:
            pass
        self._reaper = None

    async def _reap(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    async def get_stats(self) -> Dict[str, Any]:
        lookups = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "size": len(self._entries),
            "max_items": self.max_items,
            "hit_rate": format_hit_rate(self.stats["hits"], lookups),
        }

    async def close(self) -> None:
        await self.stop_reaper()


def format_hit_rate(hits: int, lookups: int) -> str:
    """Render a hit ratio as a percentage string, e.g. "66.67%"."""
    if lookups <= 0:
        return "0%"
    return f"{hits / lookups * 100:.2f}%"
