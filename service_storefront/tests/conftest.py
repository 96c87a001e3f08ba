"""
Shared fixtures for Storefront service tests.
"""

import pytest

from service_storefront.app.caching import CacheService
from service_storefront.app.caching.backends import MemoryBackend


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_backend(clock):
    return MemoryBackend(max_items=100, clock=clock)


@pytest.fixture
def cache_service(memory_backend):
    """Memory-only cache service under the graba2z namespace."""
    return CacheService(prefix="graba2z", default_ttl=3600, memory_backend=memory_backend)
