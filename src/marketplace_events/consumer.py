"""
Event consumer: envelope handlers and request responders.

Handlers receive parsed ``DomainEvent`` envelopes. While a handler runs, the
envelope's correlation and tenant ids are bound in the event context so any
event emitted from inside the handler carries them forward.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .contracts.catalog import EVENT_REGISTRY
from .contracts.envelope import DomainEvent, pattern_name
from .exceptions import ContractError
from .observability.context import event_context

if TYPE_CHECKING:
    from .connection import ConnectionManager
    from .contracts.registry import ContractRegistry

logger = logging.getLogger(__name__)

EnvelopeHandler = Callable[[DomainEvent], Any]
RequestResponder = Callable[[Any], Any]


class EventConsumer:
    """Routes incoming events and requests to registered callables."""

    def __init__(
        self,
        connection: ConnectionManager,
        registry: ContractRegistry | None = None,
        *,
        validate_payloads: bool = False,
    ):
        self.connection = connection
        self.registry = registry if registry is not None else EVENT_REGISTRY
        self.validate_payloads = validate_payloads
        self._handlers: dict[str, list[EnvelopeHandler]] = {}
        self._responders: dict[str, RequestResponder] = {}
        self._subscribed: set[str] = set()
        self._served: set[str] = set()

    @property
    def patterns(self) -> list[str]:
        return sorted(self._handlers)

    def on(self, pattern: str | Enum) -> Callable[[EnvelopeHandler], EnvelopeHandler]:
        """Decorator registering an envelope handler for ``pattern``."""

        def decorator(handler: EnvelopeHandler) -> EnvelopeHandler:
            self.add_handler(pattern, handler)
            return handler

        return decorator

    def responder(self, pattern: str | Enum) -> Callable[[RequestResponder], RequestResponder]:
        """Decorator registering the responder answering requests on ``pattern``."""

        def decorator(func: RequestResponder) -> RequestResponder:
            self.add_responder(pattern, func)
            return func

        return decorator

    def add_handler(self, pattern: str | Enum, handler: EnvelopeHandler) -> None:
        name = pattern_name(pattern)
        if name not in self.registry:
            logger.warning(f"Subscribing to unregistered event pattern {name}")
        self._handlers.setdefault(name, []).append(handler)

    def add_responder(self, pattern: str | Enum, responder: RequestResponder) -> None:
        name = pattern_name(pattern)
        if name in self._responders:
            raise ValueError(f"A responder for '{name}' is already registered")
        self._responders[name] = responder

    async def start(self) -> None:
        """Bind every handler and responder not yet bound to the transport."""
        transport = self.connection.transport
        for name in self._handlers:
            if name not in self._subscribed:
                await transport.subscribe(name, partial(self._dispatch_event, name))
                self._subscribed.add(name)
        for name, responder in self._responders.items():
            if name not in self._served:
                await transport.serve(name, partial(self._answer, name, responder))
                self._served.add(name)
        logger.info(
            f"Event consumer bound {len(self._subscribed)} event pattern(s) "
            f"and {len(self._served)} request pattern(s)"
        )

    async def _dispatch_event(self, pattern: str, data: Any) -> None:
        if not isinstance(data, Mapping):
            logger.warning(f"Dropping malformed event on {pattern}: envelope is not an object")
            return
        try:
            envelope = DomainEvent.from_wire(data)
        except ContractError as e:
            logger.warning(f"Dropping malformed event on {pattern}: {e}")
            return

        if self.validate_payloads:
            try:
                self.registry.validate_payload(envelope.pattern, envelope.payload)
            except ContractError as e:
                logger.warning(
                    f"Dropping event {envelope.event_id} on {pattern}: {e}",
                    extra={"pattern": pattern, "event_id": envelope.event_id},
                )
                return

        with event_context(correlation_id=envelope.correlation_id, tenant_id=envelope.tenant_id):
            for handler in list(self._handlers.get(pattern, [])):
                try:
                    result = handler(envelope)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception(
                        f"Handler {getattr(handler, '__name__', handler)!s} failed for event {envelope.event_id}",
                        extra={"pattern": pattern, "event_id": envelope.event_id},
                    )

    async def _answer(self, pattern: str, responder: RequestResponder, data: Any) -> Any:
        logger.debug(f"Answering request {pattern}")
        result = responder(data)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json", by_alias=True, exclude_none=True)
        return result
