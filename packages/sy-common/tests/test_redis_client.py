"""
Tests for the bridge Redis client.

``redis.asyncio`` is replaced by mocks; only the calls the bridge relies
on are checked.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sy_common.messaging.redis_client import RedisClient


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _pubsub() -> AsyncMock:
    ps = AsyncMock()
    ps.subscribe = AsyncMock()
    ps.psubscribe = AsyncMock()
    ps.aclose = AsyncMock()
    return ps


@pytest.fixture()
def mock_redis() -> AsyncMock:
    r = AsyncMock()
    r.publish = AsyncMock(return_value=1)
    r.ping = AsyncMock(return_value=True)
    r.aclose = AsyncMock()
    r.pubsub = MagicMock(side_effect=lambda: _pubsub())
    return r


@pytest.fixture()
def client(mock_redis: AsyncMock) -> RedisClient:
    c = RedisClient(url="redis://localhost:6379/0")
    c._redis = mock_redis
    return c


# ---------------------------------------------------------------------------
# Tests: lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:

    async def test_connect_is_idempotent(self) -> None:
        with patch("sy_common.messaging.redis_client.aioredis.from_url") as mock_from:
            mock_from.return_value = AsyncMock()
            c = RedisClient(url="redis://gateway:6379/2")
            await c.connect()
            await c.connect()
            mock_from.assert_called_once_with("redis://gateway:6379/2", decode_responses=True)

    async def test_close_drops_subscription_then_connection(
        self, client: RedisClient, mock_redis: AsyncMock
    ) -> None:
        ps = await client.subscribe("ami:events")
        await client.close()
        ps.aclose.assert_awaited_once()
        mock_redis.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError, match="not connected"):
            _ = client.redis


# ---------------------------------------------------------------------------
# Tests: bridge traffic
# ---------------------------------------------------------------------------


class TestBridge:

    async def test_publish_sends_action_as_json_object(
        self, client: RedisClient, mock_redis: AsyncMock
    ) -> None:
        receivers = await client.publish("ami:actions", {"Action": "Ping", "ActionID": "a1"})
        assert receivers == 1
        channel, body = mock_redis.publish.call_args[0]
        assert channel == "ami:actions"
        assert json.loads(body) == {"Action": "Ping", "ActionID": "a1"}

    async def test_publish_without_gateway_returns_zero(
        self, client: RedisClient, mock_redis: AsyncMock
    ) -> None:
        mock_redis.publish.return_value = 0
        assert await client.publish("ami:actions", {"Action": "Ping"}) == 0

    async def test_subscribe_events_and_response_pattern(self, client: RedisClient) -> None:
        ps = await client.subscribe("ami:events", patterns=("ami:responses:*",))
        ps.subscribe.assert_awaited_once_with("ami:events")
        ps.psubscribe.assert_awaited_once_with("ami:responses:*")

    async def test_resubscribe_closes_previous_pubsub(self, client: RedisClient) -> None:
        first = await client.subscribe("ami:events")
        second = await client.subscribe("ami:events")
        first.aclose.assert_awaited_once()
        assert second is not first
        second.psubscribe.assert_not_awaited()


# ---------------------------------------------------------------------------
# Tests: ping
# ---------------------------------------------------------------------------


class TestPing:

    async def test_ping_ok(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        assert await client.ping() is True
        mock_redis.ping.assert_awaited_once()

    async def test_ping_failure_is_false(self, client: RedisClient, mock_redis: AsyncMock) -> None:
        mock_redis.ping.side_effect = ConnectionError("down")
        assert await client.ping() is False

    async def test_ping_before_connect_is_false(self) -> None:
        assert await RedisClient(url="redis://localhost:6379/0").ping() is False
