"""
Management-protocol session bridged over Redis pub/sub.

A gateway process owns the real server connection and relays traffic
through three kinds of channel:

* ``ami:actions``: this session publishes ``{"Action", "ActionID", ...}``.
* ``ami:responses:{ActionID}``: the gateway answers with
  ``{"fields": {...}, "events": [{...}, ...]}``.
* ``ami:events``: unsolicited events, one JSON object per message with
  an ``Event`` key.

Channel names come from ``Settings`` unless given explicitly.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Mapping
from typing import Any

import structlog

from sy_common.config import get_settings
from sy_common.errors import TransportUnavailableError
from sy_common.messaging.redis_client import RedisClient
from sy_common.messaging.transport import EventHandler, TransportResponse, Unsubscribe

logger = structlog.get_logger()


def _stringify(record: Mapping[str, Any]) -> dict[str, str]:
    return {str(k): "" if v is None else str(v) for k, v in record.items()}


class RedisAmiSession:
    """``TransportSession`` implementation on top of :class:`RedisClient`.

    Args:
        redis_client: A ``RedisClient``; connected by :meth:`start`.
        action_channel: Channel actions are published on.
        event_channel: Channel events arrive on.
        response_prefix: Prefix of per-action response channels.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        *,
        action_channel: str | None = None,
        event_channel: str | None = None,
        response_prefix: str | None = None,
    ) -> None:
        settings = get_settings()
        self._redis = redis_client
        self._action_channel = action_channel or settings.ami_action_channel
        self._event_channel = event_channel or settings.ami_event_channel
        self._response_prefix = response_prefix or settings.ami_response_prefix
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pending: dict[str, asyncio.Future[TransportResponse]] = {}
        self._listener: asyncio.Task[None] | None = None
        self._connected = False

    # ── lifecycle ──

    async def start(self) -> None:
        """Connect, subscribe to event and response channels, start listening."""
        if self._connected:
            return
        await self._redis.connect()
        pubsub = await self._redis.subscribe(
            self._event_channel,
            patterns=(f"{self._response_prefix}*",),
        )
        self._connected = True
        self._listener = asyncio.create_task(self._listen(pubsub), name="ami-redis-listener")
        logger.info("ami_session_started", event_channel=self._event_channel)

    async def stop(self) -> None:
        """Stop listening, fail pending requests, and close Redis."""
        self._connected = False
        if self._listener is not None and not self._listener.done():
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        self._listener = None
        self._fail_pending("session stopped")
        await self._redis.close()
        logger.info("ami_session_stopped")

    def is_connected(self) -> bool:
        return self._connected

    async def ping(self) -> bool:
        """Whether the Redis hop to the gateway currently answers."""
        return await self._redis.ping()

    # ── TransportSession ──

    async def send_request(self, action: str, args: Mapping[str, str]) -> TransportResponse:
        """Publish *action* and wait for the gateway's response.

        Raises:
            TransportUnavailableError: If the session is not started.
        """
        if not self._connected:
            raise TransportUnavailableError("Redis AMI session is not connected")
        action_id = uuid.uuid4().hex
        future: asyncio.Future[TransportResponse] = asyncio.get_running_loop().create_future()
        self._pending[action_id] = future
        try:
            await self._redis.publish(
                self._action_channel,
                {**args, "Action": action, "ActionID": action_id},
            )
            return await future
        finally:
            self._pending.pop(action_id, None)

    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe:
        self._handlers.setdefault(event_name, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_name)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    # ── message handling ──

    def handle_message(self, message: Mapping[str, Any]) -> None:
        """Route one raw pub/sub message to a pending request or event handlers."""
        if message.get("type") not in ("message", "pmessage"):
            return
        channel = str(message.get("channel", ""))
        try:
            data = json.loads(message.get("data", ""))
        except (json.JSONDecodeError, TypeError):
            logger.warning("ami_message_parse_failed", channel=channel)
            return
        if not isinstance(data, dict):
            logger.warning("ami_message_not_object", channel=channel)
            return

        if channel == self._event_channel:
            self._dispatch_event(data)
        elif channel.startswith(self._response_prefix):
            self._resolve(channel[len(self._response_prefix):], data)

    def _dispatch_event(self, data: dict[str, Any]) -> None:
        payload = _stringify(data)
        name = payload.get("Event", "")
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                logger.exception("ami_event_handler_failed", event_name=name)

    def _resolve(self, action_id: str, data: dict[str, Any]) -> None:
        future = self._pending.get(action_id)
        if future is None or future.done():
            logger.debug("ami_response_unmatched", action_id=action_id)
            return
        fields = data.get("fields") or {}
        events = data.get("events") or []
        future.set_result(
            TransportResponse(
                fields=_stringify(fields),
                events=[_stringify(e) for e in events if isinstance(e, dict)],
            )
        )

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportUnavailableError(reason))
        self._pending.clear()

    async def _listen(self, pubsub: Any) -> None:
        log = logger.bind(component="ami_redis_listener")
        try:
            async for message in pubsub.listen():
                self.handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("ami_listener_failed")
        self._connected = False
        self._fail_pending("listener stopped")
