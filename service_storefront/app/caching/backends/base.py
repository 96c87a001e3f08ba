"""
Storage backend contract for the response cache.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class CacheEntry:
    """A stored value with its bookkeeping timestamps (epoch seconds)."""

    key: str
    value: str
    created_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a cache glob where ``*`` is the only wildcard.

    Every other character, including regex metacharacters that may appear in
    entity type names, matches literally. The whole key must match.
    """
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$")


class CacheBackend(ABC):
    """Key/value store used by the cache service.

    Values passed in are JSON-serializable payloads; each backend stores its
    own serialized copy and hands back a fresh deserialized value on read.
    Patterns follow :func:`glob_to_regex` semantics.
    """

    name: str = "backend"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key`` or None if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value``; ``ttl`` in seconds, None/0 means no expiry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; True if it existed."""

    @abstractmethod
    async def keys(self, pattern: str) -> List[str]:
        """Return every key matching ``pattern``."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching ``pattern``; returns the count removed."""

    @abstractmethod
    async def flush_all(self, namespace: str) -> int:
        """Remove every key this system owns under ``namespace``; returns the count removed."""

    @abstractmethod
    async def ping(self) -> str:
        """Round-trip check; returns "PONG"."""

    async def get_stats(self) -> Dict[str, Any]:
        return {}

    async def close(self) -> None:
        return None
