"""
Unit tests for the Redis cache backend using fakeredis to avoid real Redis.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import CacheBackendError, CacheSerializationError
from shared.retry import RetryConfig, calculate_delay
from service_storefront.app.caching.backends import RedisBackend
from service_storefront.app.caching.backends.redis_backend import DEFAULT_RECONNECT, escape_glob

FAST_RECONNECT = RetryConfig.linear(max_attempts=3, step=0, cap=0)


class TestRedisBackend:
    """Test cases for RedisBackend."""

    @pytest.fixture
    def fake_client(self):
        return fakeredis.aioredis.FakeRedis(decode_responses=True)

    @pytest.fixture
    async def backend(self, fake_client):
        backend = RedisBackend("redis://localhost:6379/0", scan_batch_size=2, client=fake_client)
        assert await backend.connect() is True
        return backend

    @pytest.mark.asyncio
    async def test_round_trip_uses_json_wire_format(self, backend, fake_client):
        """Values are written as JSON strings and read back deep-equal."""
        value = {"price": 10, "variants": [{"size": "M"}, {"size": "L"}]}

        assert await backend.set("graba2z:products:abc", value, 1800) is True
        assert json.loads(await fake_client.get("graba2z:products:abc")) == value
        assert await backend.get("graba2z:products:abc") == value

    @pytest.mark.asyncio
    async def test_get_unknown_key(self, backend):
        assert await backend.get("graba2z:products:missing") is None

    @pytest.mark.asyncio
    async def test_set_with_ttl_sets_expiry(self, backend, fake_client):
        """A TTL is applied in the same SET command."""
        await backend.set("graba2z:offers:weekend", {"discount": 15}, 30)

        ttl = await fake_client.ttl("graba2z:offers:weekend")
        assert 0 < ttl <= 30

    @pytest.mark.asyncio
    async def test_set_without_ttl_persists(self, backend, fake_client):
        await backend.set("graba2z:settings:site", {"theme": "dark"}, None)

        assert await fake_client.ttl("graba2z:settings:site") == -1

    @pytest.mark.asyncio
    async def test_set_rejects_non_json_values(self, backend):
        with pytest.raises(CacheSerializationError):
            await backend.set("graba2z:products:bad", {1, 2, 3}, 60)

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.set("graba2z:taxes:vat", 5, 60)

        assert await backend.delete("graba2z:taxes:vat") is True
        assert await backend.delete("graba2z:taxes:vat") is False

    @pytest.mark.asyncio
    async def test_delete_pattern_scans_in_batches(self, backend, fake_client):
        """Pattern deletes walk every SCAN batch and leave other prefixes alone."""
        for index in range(5):
            await backend.set(f"graba2z:products:{index}", index, 60)
        await backend.set("graba2z:brands:1", "b", 60)

        assert await backend.delete_pattern("graba2z:products:*") == 5
        assert await fake_client.keys("graba2z:*") == ["graba2z:brands:1"]

    @pytest.mark.asyncio
    async def test_keys(self, backend):
        for index in range(3):
            await backend.set(f"graba2z:colors:{index}", index, 60)

        assert sorted(await backend.keys("graba2z:colors:*")) == [
            "graba2z:colors:0", "graba2z:colors:1", "graba2z:colors:2",
        ]

    @pytest.mark.asyncio
    async def test_glob_metacharacters_are_literal(self, backend):
        """Only '*' acts as a wildcard in patterns."""
        await backend.set("graba2z:promo[1]:a", 1, 60)
        await backend.set("graba2z:promo1:a", 2, 60)

        assert await backend.delete_pattern("graba2z:promo[1]:*") == 1
        assert await backend.get("graba2z:promo1:a") == 2

    @pytest.mark.asyncio
    async def test_flush_all_only_touches_namespace(self, backend, fake_client):
        """Flushing never removes keys that belong to other applications."""
        await backend.set("graba2z:products:1", 1, 60)
        await backend.set("graba2z:categories:1", 1, 60)
        await fake_client.set("sessions:abc", "keep-me")

        assert await backend.flush_all("graba2z") == 2
        assert await fake_client.get("sessions:abc") == "keep-me"

    @pytest.mark.asyncio
    async def test_ping_and_stats(self, backend):
        assert await backend.ping() == "PONG"
        assert await backend.get_stats() == {"connected": True, "abandoned": False, "reconnect_attempts": 0}


class TestRedisBackendConnection:
    """Connection lifecycle and reconnection policy."""

    def _mock_client(self, ping_effects):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=ping_effects)
        client.get = AsyncMock(side_effect=RedisConnectionError("connection lost"))
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_connect_failure_returns_false(self):
        client = self._mock_client([RedisConnectionError("refused")])
        backend = RedisBackend("redis://localhost:6379/0", client=client)

        assert await backend.connect() is False
        assert backend.available is False

    @pytest.mark.asyncio
    async def test_unavailable_backend_fails_fast(self):
        """Operations on a disconnected backend raise without network calls."""
        client = self._mock_client([RedisConnectionError("refused")])
        backend = RedisBackend("redis://localhost:6379/0", client=client)
        await backend.connect()

        with pytest.raises(CacheBackendError):
            await backend.get("graba2z:products:1")
        client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_reconnection_abandoned_after_max_attempts(self):
        """Exhausted reconnection marks the backend abandoned and fires callbacks."""
        down = RedisConnectionError("down")
        client = self._mock_client([True, down, down, down])
        backend = RedisBackend("redis://localhost:6379/0", client=client, reconnect_config=FAST_RECONNECT)
        abandoned = []
        backend.on_abandon(lambda: abandoned.append(True))
        await backend.connect()

        with pytest.raises(CacheBackendError):
            await backend.get("graba2z:products:1")
        await backend._reconnect_task

        assert backend.abandoned is True
        assert backend.available is False
        assert backend.reconnect_attempts == 3
        assert abandoned == [True]

        # No further retries once abandoned
        with pytest.raises(CacheBackendError):
            await backend.get("graba2z:products:1")
        assert client.ping.await_count == 4

    @pytest.mark.asyncio
    async def test_reconnection_restores_connection(self):
        client = self._mock_client([True, RedisConnectionError("blip"), True])
        backend = RedisBackend("redis://localhost:6379/0", client=client, reconnect_config=FAST_RECONNECT)
        await backend.connect()

        with pytest.raises(CacheBackendError):
            await backend.get("graba2z:products:1")
        await backend._reconnect_task

        assert backend.available is True
        assert backend.abandoned is False
        assert backend.reconnect_attempts == 2

    @pytest.mark.asyncio
    async def test_close_cancels_pending_reconnect(self):
        client = self._mock_client([True] + [RedisConnectionError("down")] * 10)
        slow = RetryConfig.linear(max_attempts=10, step=10, cap=10)
        backend = RedisBackend("redis://localhost:6379/0", client=client, reconnect_config=slow)
        await backend.connect()

        with pytest.raises(CacheBackendError):
            await backend.get("graba2z:products:1")
        await asyncio.sleep(0)
        await backend.close()

        assert backend._reconnect_task.cancelled()
        client.aclose.assert_awaited_once()


class TestReconnectPolicy:
    """Default reconnection backoff."""

    def test_linear_backoff_is_capped(self):
        delays = [calculate_delay(attempt, DEFAULT_RECONNECT) for attempt in range(1, 11)]

        assert delays[0] == pytest.approx(0.1)
        assert delays[4] == pytest.approx(0.5)
        assert max(delays) <= 3.0
        assert DEFAULT_RECONNECT.max_attempts == 10

    def test_cap_applies_to_late_attempts(self):
        assert calculate_delay(45, DEFAULT_RECONNECT) == pytest.approx(3.0)

    def test_escape_glob(self):
        assert escape_glob("graba2z:a?b[c]\\d:*") == "graba2z:a\\?b\\[c\\]\\\\d:*"
