"""
Event bus facade.

Wires one service's event bus together: settings, service identity, transport,
connection manager, publisher, requester and consumer.

Example:
    async with create_event_bus() as bus:
        bus.emit(OrderEvents.CREATED, OrderCreatedPayload(...))
        result = await bus.send("payout.process", {"payoutId": "p-1"})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .config import EventBusSettings
from .connection import ConnectionManager, ReconnectPolicy
from .consumer import EnvelopeHandler, EventConsumer, RequestResponder
from .contracts.catalog import EVENT_REGISTRY
from .contracts.registry import ContractRegistry
from .identity import ServiceIdentity
from .observability.logging import configure_logging
from .observability.metrics import EventBusMetrics
from .outbox import PendingEventBuffer
from .publisher import EventPublisher
from .requester import ServiceRequester
from .transport.base import Transport
from .transport.redis_transport import RedisTransport

logger = logging.getLogger(__name__)


class EventBus:
    """One service's connection to the marketplace event bus."""

    def __init__(
        self,
        settings: EventBusSettings | None = None,
        *,
        transport: Transport | None = None,
        registry: ContractRegistry | None = None,
        metrics: EventBusMetrics | None = None,
    ):
        self.settings = settings or EventBusSettings()
        self.identity = ServiceIdentity.from_settings(self.settings)
        self.registry = registry if registry is not None else EVENT_REGISTRY
        self.metrics = metrics or EventBusMetrics(self.identity.service_name)
        self.transport = transport or RedisTransport.from_settings(self.settings)

        self.buffer = (
            PendingEventBuffer(self.settings.outbox_max_size) if self.settings.outbox_max_size > 0 else None
        )
        self.connection = ConnectionManager(
            self.transport,
            ReconnectPolicy.from_settings(self.settings),
            health_check_interval=self.settings.health_check_interval,
            metrics=self.metrics,
            name=self.identity.service_name,
        )
        self.publisher = EventPublisher(
            self.connection,
            self.identity,
            self.registry,
            validate_payloads=self.settings.validate_payloads,
            metrics=self.metrics,
            buffer=self.buffer,
        )
        self.requester = ServiceRequester(
            self.connection,
            default_timeout=self.settings.request_timeout,
            metrics=self.metrics,
        )
        self.consumer = EventConsumer(
            self.connection,
            self.registry,
            validate_payloads=self.settings.validate_payloads,
        )

    async def start(self) -> bool:
        """Bind consumers and connect; returns whether the broker is reachable now."""
        await self.consumer.start()
        connected = await self.connection.connect()
        logger.info(
            f"Event bus for {self.identity.service_name} started "
            f"({'connected' if connected else 'not connected'}, broker {self.identity.redacted_broker_url})"
        )
        return connected

    async def stop(self, flush_timeout: float | None = 5.0) -> None:
        """Wait briefly for in-flight publishes, then close the connection."""
        await self.publisher.flush(flush_timeout)
        await self.connection.close()
        logger.info(f"Event bus for {self.identity.service_name} stopped")

    async def __aenter__(self) -> EventBus:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def is_ready(self) -> bool:
        return self.connection.is_ready()

    def emit(
        self,
        pattern: str | Enum,
        payload: BaseModel | Mapping[str, Any],
        *,
        correlation_id: str | None = None,
        tenant_id: str | None = None,
    ) -> None:
        self.publisher.emit(pattern, payload, correlation_id=correlation_id, tenant_id=tenant_id)

    async def send(self, pattern: str | Enum, payload: Any, *, timeout: float | None = None) -> Any:
        return await self.requester.send(pattern, payload, timeout=timeout)

    def on(self, pattern: str | Enum):
        return self.consumer.on(pattern)

    def responder(self, pattern: str | Enum):
        return self.consumer.responder(pattern)

    def add_handler(self, pattern: str | Enum, handler: EnvelopeHandler) -> None:
        self.consumer.add_handler(pattern, handler)

    def add_responder(self, pattern: str | Enum, responder: RequestResponder) -> None:
        self.consumer.add_responder(pattern, responder)

    def health_check(self) -> dict[str, Any]:
        health = self.connection.health_check()
        health.update(
            {
                "service": self.identity.service_name,
                "broker": self.identity.redacted_broker_url,
                "in_flight_events": self.publisher.pending_count,
                "buffered_events": len(self.buffer) if self.buffer is not None else 0,
                "registered_patterns": len(self.registry),
            }
        )
        return health


def create_event_bus(
    settings: EventBusSettings | None = None,
    *,
    transport: Transport | None = None,
    registry: ContractRegistry | None = None,
    configure_logs: bool = True,
) -> EventBus:
    """Build an ``EventBus`` from settings, installing the library log handler."""
    settings = settings or EventBusSettings()
    if configure_logs:
        configure_logging(settings.service_name, settings.log_level, settings.json_logs)
    return EventBus(settings, transport=transport, registry=registry)
