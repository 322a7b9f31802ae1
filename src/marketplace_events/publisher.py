"""
Fire-and-forget event publisher.

``emit()`` is called after the caller's own state change has committed, so it
must never raise back into the caller: every failure (contract violation,
serialization, broker not connected, publish rejected) is logged and
swallowed. Each call makes exactly one publish attempt; there is no retry and
no delivery confirmation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .contracts.catalog import EVENT_REGISTRY
from .contracts.envelope import build_envelope, pattern_name
from .exceptions import BrokerConnectionError, ContractError, EventBusError, EventSerializationError
from .observability.context import get_correlation_id, get_tenant_id

if TYPE_CHECKING:
    from .connection import ConnectionManager
    from .contracts.registry import ContractRegistry
    from .identity import ServiceIdentity
    from .observability.metrics import EventBusMetrics
    from .outbox import PendingEventBuffer

logger = logging.getLogger(__name__)


class EventPublisher:
    """Builds envelopes and hands them to the broker without waiting."""

    def __init__(
        self,
        connection: ConnectionManager,
        identity: ServiceIdentity,
        registry: ContractRegistry | None = None,
        *,
        validate_payloads: bool = False,
        metrics: EventBusMetrics | None = None,
        buffer: PendingEventBuffer | None = None,
    ):
        self.connection = connection
        self.identity = identity
        self.registry = registry if registry is not None else EVENT_REGISTRY
        self.validate_payloads = validate_payloads
        self.metrics = metrics
        self.buffer = buffer
        self._in_flight: set[asyncio.Task] = set()

        if buffer is not None:
            connection.on_connected(self._replay_buffer)

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    def emit(
        self,
        pattern: str | Enum,
        payload: BaseModel | Mapping[str, Any],
        *,
        correlation_id: str | None = None,
        tenant_id: str | None = None,
    ) -> None:
        """
        Publish a domain event without waiting for the broker.

        Correlation and tenant ids default to the ones bound in the current
        event context. Returns immediately; failures are only logged.
        """
        name = pattern_name(pattern)
        try:
            self._emit(name, payload, correlation_id, tenant_id)
        except Exception:
            logger.exception(f"Unexpected error emitting event {name}; dropping it", extra={"pattern": name})
            self._record_dropped(name, "unexpected")

    def _emit(
        self,
        name: str,
        payload: BaseModel | Mapping[str, Any],
        correlation_id: str | None,
        tenant_id: str | None,
    ) -> None:
        try:
            envelope = build_envelope(
                name,
                payload,
                self.identity.source,
                correlation_id=correlation_id or get_correlation_id(),
                tenant_id=tenant_id or get_tenant_id(),
                registry=self.registry,
                validate=self.validate_payloads,
            )
            wire = envelope.to_wire()
        except ContractError as e:
            logger.error(f"Rejected event {name}: {e}", extra={"pattern": name})
            self._record_dropped(name, "contract")
            return
        except EventSerializationError as e:
            logger.error(f"Could not serialize event {name}: {e}", extra={"pattern": name})
            self._record_dropped(name, "serialization")
            return

        log_extra = {"pattern": name, "event_id": envelope.event_id}

        if not self.connection.is_ready():
            if self.buffer is not None:
                evicted = self.buffer.add(name, wire)
                logger.warning(f"Broker not connected; buffered event {name}", extra=log_extra)
                if self.metrics:
                    self.metrics.record_buffered(name)
                if evicted is not None:
                    self._record_dropped(evicted.pattern, "buffer_full")
            else:
                logger.warning(f"Broker not connected; dropping event {name}", extra=log_extra)
                self._record_dropped(name, "not_connected")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"emit() called outside a running event loop; dropping event {name}", extra=log_extra)
            self._record_dropped(name, "no_event_loop")
            return

        task = loop.create_task(self._publish(name, wire))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def flush(self, timeout: float | None = None) -> bool:
        """
        Wait for in-flight publish attempts to finish.

        Returns:
            True if all of them finished within ``timeout``
        """
        if not self._in_flight:
            return True
        _, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} event publish(es) still in flight after flush timeout")
        return not pending

    async def _publish(self, pattern: str, wire: dict[str, Any]) -> bool:
        event_id = wire.get("eventId")
        try:
            await self.connection.transport.publish(pattern, wire)
        except BrokerConnectionError as e:
            logger.error(f"Failed to publish event {pattern} ({event_id}): {e}", extra={"pattern": pattern})
            self._record_failure(pattern)
            self.connection.report_connection_lost(e)
            return False
        except EventBusError as e:
            logger.error(f"Failed to publish event {pattern} ({event_id}): {e}", extra={"pattern": pattern})
            self._record_failure(pattern)
            return False
        except Exception:
            logger.exception(f"Unexpected error publishing event {pattern} ({event_id})")
            self._record_failure(pattern)
            return False

        if self.metrics:
            self.metrics.record_emitted(pattern)
        logger.debug(f"Published event {pattern} ({event_id})", extra={"pattern": pattern, "event_id": event_id})
        return True

    async def _replay_buffer(self) -> None:
        if not self.buffer:
            return
        events = self.buffer.drain()
        logger.info(f"Replaying {len(events)} buffered event(s)")
        for index, event in enumerate(events):
            if not self.connection.is_ready():
                # connection dropped again mid-replay; keep the rest for the next one
                for remaining in events[index:]:
                    self.buffer.add(remaining.pattern, remaining.envelope)
                return
            await self._publish(event.pattern, event.envelope)

    def _record_dropped(self, pattern: str, reason: str) -> None:
        if self.metrics:
            self.metrics.record_dropped(pattern, reason)

    def _record_failure(self, pattern: str) -> None:
        if self.metrics:
            self.metrics.record_publish_failure(pattern)
