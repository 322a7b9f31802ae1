"""
Broker transports.
"""

from .base import (
    REPLY_SUFFIX,
    EventHandler,
    Responder,
    Transport,
    decode_packet,
    encode_packet,
    event_packet,
    reply_channel,
    reply_packet,
    request_packet,
)
from .memory import InMemoryBroker, InMemoryTransport
from .redis_transport import RedisTransport

__all__ = [
    "REPLY_SUFFIX",
    "EventHandler",
    "InMemoryBroker",
    "InMemoryTransport",
    "RedisTransport",
    "Responder",
    "Transport",
    "decode_packet",
    "encode_packet",
    "event_packet",
    "reply_channel",
    "reply_packet",
    "request_packet",
]
