"""
Redis connection used by the management-protocol bridge.

One ``RedisClient`` carries a single bridge session: actions go out as
JSON objects on one channel, and a single ``PubSub`` listens to the
event channel plus the response-channel pattern.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

import redis.asyncio as aioredis
import structlog

from sy_common.config import get_settings

logger = structlog.get_logger()


class RedisClient:
    """Async Redis connection for the AMI bridge.

    Args:
        url: Redis connection URL.  Falls back to ``Settings.redis_url``.
    """

    def __init__(self, url: str | None = None) -> None:
        self._url = url or get_settings().redis_url
        self._redis: aioredis.Redis | None = None
        self._pubsub: aioredis.client.PubSub | None = None

    async def connect(self) -> None:
        """Open the connection pool; a second call is a no-op."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._url, decode_responses=True)
            logger.debug("redis_connected", url=self._url)

    async def close(self) -> None:
        """Drop the bridge subscription, then the connection."""
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def redis(self) -> aioredis.Redis:
        """The connected ``aioredis.Redis``.

        Raises:
            RuntimeError: If ``connect()`` has not been called.
        """
        if self._redis is None:
            raise RuntimeError("RedisClient is not connected. Call connect() first.")
        return self._redis

    async def publish(self, channel: str, fields: Mapping[str, str]) -> int:
        """Publish one action record as a JSON object.

        Returns:
            Number of subscribers that received it; ``0`` means no gateway
            is listening.
        """
        receivers: int = await self.redis.publish(channel, json.dumps(dict(fields)))
        if not receivers:
            logger.warning("redis_publish_unheard", channel=channel)
        return receivers

    async def subscribe(
        self,
        *channels: str,
        patterns: tuple[str, ...] = (),
    ) -> aioredis.client.PubSub:
        """Listen on exact *channels* and glob *patterns* through one ``PubSub``.

        Any earlier subscription made through this client is closed first.
        """
        if self._pubsub is not None:
            await self._pubsub.aclose()
        self._pubsub = self.redis.pubsub()
        if channels:
            await self._pubsub.subscribe(*channels)
        if patterns:
            await self._pubsub.psubscribe(*patterns)
        return self._pubsub

    async def ping(self) -> bool:
        """``True`` when Redis answers a ``PING``; never raises."""
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except Exception:  # noqa: BLE001
            logger.warning("redis_ping_failed", url=self._url)
            return False
