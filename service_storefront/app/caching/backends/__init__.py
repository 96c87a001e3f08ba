"""
Cache storage backends: in-process memory and Redis.
"""

from .base import CacheBackend, CacheEntry, glob_to_regex
from .memory import MemoryBackend
from .redis_backend import RedisBackend

__all__ = ["CacheBackend", "CacheEntry", "MemoryBackend", "RedisBackend", "glob_to_regex"]
