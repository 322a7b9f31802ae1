"""
Observability helpers: structured logging, metrics and correlation context.
"""

from .context import (
    EventContext,
    current_context,
    event_context,
    get_correlation_id,
    get_tenant_id,
    new_correlation_id,
)
from .logging import (
    EventBusJSONFormatter,
    EventContextFilter,
    ServiceNameFilter,
    TraceContextFilter,
    configure_logging,
)
from .metrics import EventBusMetrics

__all__ = [
    "EventBusJSONFormatter",
    "EventBusMetrics",
    "EventContext",
    "EventContextFilter",
    "ServiceNameFilter",
    "TraceContextFilter",
    "configure_logging",
    "current_context",
    "event_context",
    "get_correlation_id",
    "get_tenant_id",
    "new_correlation_id",
]
