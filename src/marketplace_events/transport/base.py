"""
Transport abstraction for the event bus.

A transport owns the broker client. It is driven by the connection manager
(connect/close/ping) and used directly, and concurrently, by the publisher,
requester and consumer. Packets use the same JSON framing as the marketplace's
Node services so both sides can share one broker:

- event:   ``{"pattern": ..., "data": ...}`` on channel ``<pattern>``
- request: ``{"pattern": ..., "data": ..., "id": ...}`` on channel ``<pattern>``
- reply:   ``{"id": ..., "response"|"err": ..., "isDisposed": true}`` on ``<pattern>.reply``
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from ..exceptions import EventSerializationError, TransportError

logger = logging.getLogger(__name__)

REPLY_SUFFIX = ".reply"

EventHandler = Callable[[Any], Awaitable[None]]
Responder = Callable[[Any], Awaitable[Any]]
DisconnectCallback = Callable[[Exception | None], None]


def reply_channel(pattern: str) -> str:
    return f"{pattern}{REPLY_SUFFIX}"


def encode_packet(packet: dict[str, Any]) -> str:
    try:
        return json.dumps(packet, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise EventSerializationError(
            f"Packet for '{packet.get('pattern')}' is not JSON serializable: {e}",
            pattern=packet.get("pattern"),
            cause=e,
        ) from e


def decode_packet(raw: str | bytes) -> dict[str, Any]:
    try:
        packet = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise TransportError(f"Received malformed packet: {e}", cause=e) from e
    if not isinstance(packet, dict):
        raise TransportError("Received packet is not a JSON object")
    return packet


def event_packet(pattern: str, data: Any) -> dict[str, Any]:
    return {"pattern": pattern, "data": data}


def request_packet(pattern: str, data: Any, request_id: str) -> dict[str, Any]:
    return {"pattern": pattern, "data": data, "id": request_id}


def reply_packet(request_id: str, *, response: Any = None, err: Any = None) -> dict[str, Any]:
    packet: dict[str, Any] = {"id": request_id, "isDisposed": True}
    if err is not None:
        packet["err"] = err
    else:
        packet["response"] = response
    return packet


class Transport(ABC):
    """Abstract broker transport."""

    name = "transport"

    def __init__(self) -> None:
        self._connected = False
        self._disconnect_callback: DisconnectCallback | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_disconnect_callback(self, callback: DisconnectCallback | None) -> None:
        """Register the callable notified when the transport loses its connection."""
        self._disconnect_callback = callback

    def _notify_disconnected(self, error: Exception | None) -> None:
        self._connected = False
        if self._disconnect_callback is None:
            return
        try:
            self._disconnect_callback(error)
        except Exception:
            logger.exception(f"Disconnect callback failed for transport {self.name}")

    @abstractmethod
    async def connect(self) -> None:
        """Open the broker connection; raise ``BrokerConnectionError`` on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Close the broker connection and release resources."""

    @abstractmethod
    async def ping(self) -> None:
        """Round-trip to the broker; raise ``BrokerConnectionError`` if unreachable."""

    @abstractmethod
    async def publish(self, pattern: str, data: Any) -> None:
        """Publish an event packet on the pattern's channel."""

    @abstractmethod
    async def request(self, pattern: str, data: Any) -> Any:
        """Send a request packet and wait (without a deadline) for its reply."""

    @abstractmethod
    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Deliver the ``data`` of every event published on ``pattern`` to ``handler``."""

    @abstractmethod
    async def serve(self, pattern: str, responder: Responder) -> None:
        """Answer requests sent on ``pattern`` with the result of ``responder``."""

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "connected": self.is_connected}
