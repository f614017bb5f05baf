"""
Tests for the Redis-bridged management session.

The ``RedisClient`` is mocked; pub/sub traffic is injected through
``handle_message`` exactly as the listener would deliver it.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sy_common.errors import TransportUnavailableError
from sy_common.messaging.redis_transport import RedisAmiSession


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def pubsub() -> MagicMock:
    ps = MagicMock()

    async def _listen():
        await asyncio.Event().wait()
        yield  # pragma: no cover

    ps.listen = _listen
    return ps


@pytest.fixture()
def redis_client(pubsub: MagicMock) -> AsyncMock:
    client = AsyncMock()
    client.subscribe = AsyncMock(return_value=pubsub)
    client.publish = AsyncMock(return_value=1)
    return client


@pytest.fixture()
async def session(redis_client: AsyncMock) -> RedisAmiSession:
    s = RedisAmiSession(
        redis_client,
        action_channel="ami:actions",
        event_channel="ami:events",
        response_prefix="ami:responses:",
    )
    await s.start()
    yield s
    await s.stop()


def _message(channel: str, data: object, kind: str = "message") -> dict[str, object]:
    return {"type": kind, "channel": channel, "data": json.dumps(data)}


async def _published_action_id(redis_client: AsyncMock) -> str:
    for _ in range(20):
        if redis_client.publish.await_count:
            break
        await asyncio.sleep(0)
    _, payload = redis_client.publish.call_args[0]
    return payload["ActionID"]


# ---------------------------------------------------------------------------
# Tests: lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:

    async def test_start_subscribes(self, session: RedisAmiSession, redis_client: AsyncMock) -> None:
        redis_client.connect.assert_awaited_once()
        redis_client.subscribe.assert_awaited_once_with("ami:events", patterns=("ami:responses:*",))
        assert session.is_connected() is True

    async def test_send_requires_connection(self, redis_client: AsyncMock) -> None:
        s = RedisAmiSession(redis_client)
        with pytest.raises(TransportUnavailableError):
            await s.send_request("Ping", {})
        redis_client.publish.assert_not_awaited()

    async def test_stop_fails_pending(self, session: RedisAmiSession, redis_client: AsyncMock) -> None:
        task = asyncio.create_task(session.send_request("Ping", {}))
        await _published_action_id(redis_client)

        await session.stop()

        with pytest.raises(TransportUnavailableError):
            await task
        assert session.is_connected() is False
        redis_client.close.assert_awaited()


# ---------------------------------------------------------------------------
# Tests: requests
# ---------------------------------------------------------------------------


class TestRequests:

    async def test_response_resolves_request(self, session: RedisAmiSession, redis_client: AsyncMock) -> None:
        task = asyncio.create_task(session.send_request("ConfbridgeList", {"Conference": "1000"}))
        action_id = await _published_action_id(redis_client)

        channel, payload = redis_client.publish.call_args[0]
        assert channel == "ami:actions"
        assert payload["Action"] == "ConfbridgeList"
        assert payload["Conference"] == "1000"

        session.handle_message(
            _message(
                f"ami:responses:{action_id}",
                {
                    "fields": {"Response": "Success", "EventList": "start"},
                    "events": [{"Event": "ConfbridgeList", "Channel": "PJSIP/1001-1", "Admin": 0}],
                },
                kind="pmessage",
            )
        )
        response = await task

        assert response.fields["Response"] == "Success"
        assert response.events == [{"Event": "ConfbridgeList", "Channel": "PJSIP/1001-1", "Admin": "0"}]

    async def test_unmatched_response_ignored(self, session: RedisAmiSession) -> None:
        session.handle_message(_message("ami:responses:nobody", {"fields": {}}))


# ---------------------------------------------------------------------------
# Tests: events
# ---------------------------------------------------------------------------


class TestEvents:

    async def test_event_routed_by_name(self, session: RedisAmiSession) -> None:
        handler = MagicMock()
        session.subscribe("ConfbridgeJoin", handler)
        session.handle_message(_message("ami:events", {"Event": "ConfbridgeJoin", "Conference": 1000}))
        handler.assert_called_once_with({"Event": "ConfbridgeJoin", "Conference": "1000"})

    async def test_unsubscribe(self, session: RedisAmiSession) -> None:
        handler = MagicMock()
        unsubscribe = session.subscribe("Hangup", handler)
        unsubscribe()
        session.handle_message(_message("ami:events", {"Event": "Hangup"}))
        handler.assert_not_called()

    async def test_failing_handler_isolated(self, session: RedisAmiSession) -> None:
        healthy = MagicMock()
        session.subscribe("Hangup", MagicMock(side_effect=RuntimeError("boom")))
        session.subscribe("Hangup", healthy)
        session.handle_message(_message("ami:events", {"Event": "Hangup"}))
        healthy.assert_called_once()

    @pytest.mark.parametrize(
        "message",
        [
            {"type": "subscribe", "channel": "ami:events", "data": 1},
            {"type": "message", "channel": "ami:events", "data": "not json"},
            {"type": "message", "channel": "ami:events", "data": "[1, 2]"},
        ],
    )
    async def test_malformed_messages_dropped(self, session: RedisAmiSession, message: dict) -> None:
        handler = MagicMock()
        session.subscribe("Hangup", handler)
        session.handle_message(message)
        handler.assert_not_called()


# ---------------------------------------------------------------------------
# Tests: listener loop
# ---------------------------------------------------------------------------


class TestListener:

    async def test_raising_handler_keeps_listener_alive(self, redis_client: AsyncMock) -> None:
        delivered = asyncio.Event()
        ps = MagicMock()

        async def _listen():
            yield _message("ami:events", {"Event": "Hangup", "Channel": "PJSIP/1001-1"})
            yield _message("ami:events", {"Event": "Newchannel", "Channel": "PJSIP/1002-2"})
            delivered.set()
            await asyncio.Event().wait()

        ps.listen = _listen
        redis_client.subscribe = AsyncMock(return_value=ps)
        s = RedisAmiSession(
            redis_client,
            action_channel="ami:actions",
            event_channel="ami:events",
            response_prefix="ami:responses:",
        )
        later = MagicMock()
        s.subscribe("Hangup", MagicMock(side_effect=RuntimeError("boom")))
        s.subscribe("Newchannel", later)

        await s.start()
        try:
            await asyncio.wait_for(delivered.wait(), timeout=1)
            later.assert_called_once_with({"Event": "Newchannel", "Channel": "PJSIP/1002-2"})
            assert s.is_connected() is True
        finally:
            await s.stop()

    async def test_listener_end_disconnects_and_fails_pending(self, redis_client: AsyncMock) -> None:
        release = asyncio.Event()
        ps = MagicMock()

        async def _listen():
            await release.wait()
            return
            yield  # pragma: no cover

        ps.listen = _listen
        redis_client.subscribe = AsyncMock(return_value=ps)
        s = RedisAmiSession(redis_client, event_channel="ami:events", response_prefix="ami:responses:")
        await s.start()
        task = asyncio.create_task(s.send_request("Ping", {}))
        await _published_action_id(redis_client)

        release.set()
        with pytest.raises(TransportUnavailableError):
            await asyncio.wait_for(task, timeout=1)
        assert s.is_connected() is False
        await s.stop()

    async def test_ping_delegates_to_client(self, session: RedisAmiSession, redis_client: AsyncMock) -> None:
        redis_client.ping = AsyncMock(return_value=False)
        assert await session.ping() is False
