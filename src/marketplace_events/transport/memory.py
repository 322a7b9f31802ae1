"""
In-memory transport for development and testing.

Several ``InMemoryTransport`` instances attached to one ``InMemoryBroker``
behave like services sharing a broker: events fan out to subscribers, requests
reach the registered responder. ``go_down()``/``come_up()`` simulate broker
outages so reconnection behaviour can be exercised without Redis.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any

from ..exceptions import BrokerConnectionError, RemoteServiceError
from .base import EventHandler, Responder, Transport, encode_packet, event_packet, request_packet

logger = logging.getLogger(__name__)


class InMemoryBroker:
    """Process-local pub/sub broker shared by in-memory transports."""

    def __init__(self) -> None:
        self.available = True
        self.published: list[tuple[str, Any]] = []
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._responders: dict[str, Responder] = {}
        self._transports: set[InMemoryTransport] = set()
        self._deliveries: set[asyncio.Task] = set()

    def go_down(self, error: Exception | None = None) -> None:
        """Make the broker unreachable and drop every attached connection."""
        self.available = False
        error = error or BrokerConnectionError("In-memory broker went down")
        for transport in list(self._transports):
            if transport.is_connected:
                transport._notify_disconnected(error)
        logger.info("In-memory broker is down")

    def come_up(self) -> None:
        self.available = True
        logger.info("In-memory broker is up")

    def published_patterns(self) -> list[str]:
        return [pattern for pattern, _ in self.published]

    def add_subscriber(self, pattern: str, handler: EventHandler) -> None:
        self._subscribers[pattern].append(handler)

    def set_responder(self, pattern: str, responder: Responder) -> None:
        self._responders[pattern] = responder

    def attach(self, transport: InMemoryTransport) -> None:
        self._transports.add(transport)

    def detach(self, transport: InMemoryTransport) -> None:
        self._transports.discard(transport)

    def deliver(self, pattern: str, data: Any) -> None:
        """Accept an event and fan it out to subscribers asynchronously."""
        self.published.append((pattern, data))
        for handler in list(self._subscribers.get(pattern, [])):
            task = asyncio.get_running_loop().create_task(self._run_handler(pattern, handler, data))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def _run_handler(self, pattern: str, handler: EventHandler, data: Any) -> None:
        try:
            await handler(data)
        except Exception:
            logger.exception(f"Subscriber for {pattern} failed")

    async def call(self, pattern: str, data: Any) -> Any:
        """Route a request to the responder for ``pattern``; waits forever if there is none."""
        responder = self._responders.get(pattern)
        if responder is None:
            # Nobody answers: the caller's timeout is the only way out
            await asyncio.get_running_loop().create_future()
        try:
            return await responder(data)
        except Exception as e:
            raise RemoteServiceError(
                f"Responder for '{pattern}' failed: {e}", pattern=pattern, remote_error=str(e)
            ) from e

    async def drain(self) -> None:
        """Wait until every delivered event has been handled."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)


class InMemoryTransport(Transport):
    """Transport bound to an ``InMemoryBroker``."""

    name = "memory"

    def __init__(self, broker: InMemoryBroker | None = None) -> None:
        super().__init__()
        self.broker = broker or InMemoryBroker()
        self.connect_calls = 0

    async def connect(self) -> None:
        self.connect_calls += 1
        if not self.broker.available:
            raise BrokerConnectionError("In-memory broker is unavailable")
        self._connected = True
        self.broker.attach(self)

    async def close(self) -> None:
        self._connected = False
        self.broker.detach(self)

    async def ping(self) -> None:
        self._ensure_available()

    async def publish(self, pattern: str, data: Any) -> None:
        self._ensure_available()
        wire = encode_packet(event_packet(pattern, data))
        self.broker.deliver(pattern, json.loads(wire)["data"])

    async def request(self, pattern: str, data: Any) -> Any:
        self._ensure_available()
        wire = encode_packet(request_packet(pattern, data, "local"))
        result = await self.broker.call(pattern, json.loads(wire)["data"])
        # replies cross the wire as JSON too
        return json.loads(json.dumps(result))

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self.broker.add_subscriber(pattern, handler)

    async def serve(self, pattern: str, responder: Responder) -> None:
        self.broker.set_responder(pattern, responder)

    def _ensure_available(self) -> None:
        if self._connected and self.broker.available:
            return
        error = BrokerConnectionError("In-memory broker connection is not available")
        if self._connected:
            self._notify_disconnected(error)
        raise error
