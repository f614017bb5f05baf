"""
Messaging primitives: the transport session contract and its Redis bridge.
"""

from sy_common.messaging.redis_client import RedisClient
from sy_common.messaging.redis_transport import RedisAmiSession
from sy_common.messaging.transport import (
    EventHandler,
    SessionRef,
    TransportResponse,
    TransportSession,
    Unsubscribe,
)

__all__ = [
    "EventHandler",
    "RedisAmiSession",
    "RedisClient",
    "SessionRef",
    "TransportResponse",
    "TransportSession",
    "Unsubscribe",
]
