"""
Correlation and tenant context for event propagation.

Values are held in context variables so that every emit issued while handling
a request (or a consumed event) inherits the originating correlation and
tenant ids without threading them through each call.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

correlation_id_context: ContextVar[str | None] = ContextVar("event_correlation_id", default=None)
tenant_id_context: ContextVar[str | None] = ContextVar("event_tenant_id", default=None)


@dataclass(frozen=True)
class EventContext:
    """Snapshot of the ambient correlation and tenant ids."""

    correlation_id: str | None = None
    tenant_id: str | None = None

    def to_log_context(self) -> dict[str, str]:
        context = {}
        if self.correlation_id:
            context["correlation_id"] = self.correlation_id
        if self.tenant_id:
            context["tenant_id"] = self.tenant_id
        return context


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return correlation_id_context.get()


def get_tenant_id() -> str | None:
    return tenant_id_context.get()


def current_context() -> EventContext:
    return EventContext(correlation_id=get_correlation_id(), tenant_id=get_tenant_id())


@contextmanager
def event_context(
    correlation_id: str | None = None,
    tenant_id: str | None = None,
) -> Iterator[EventContext]:
    """
    Bind correlation and tenant ids for the duration of the block.

    Unset arguments keep whatever value is already bound, so nested blocks can
    narrow the tenant without losing the correlation id.
    """
    correlation_token = correlation_id_context.set(correlation_id or get_correlation_id())
    tenant_token = tenant_id_context.set(tenant_id or get_tenant_id())
    try:
        yield current_context()
    finally:
        tenant_id_context.reset(tenant_token)
        correlation_id_context.reset(correlation_token)
