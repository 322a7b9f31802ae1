"""
Marketplace Events

Domain event bus client shared by the marketplace services: typed event
contracts, fire-and-forget publishing, request/response with timeouts and a
resilient broker connection.
"""

__version__ = "1.0.0"

from .bus import EventBus, create_event_bus
from .config import EventBusSettings
from .connection import ConnectionManager, ConnectionState, ReconnectPolicy
from .consumer import EventConsumer
from .contracts import (
    EVENT_REGISTRY,
    ContractRegistry,
    DomainEvent,
    EventPayload,
    build_envelope,
)
from .exceptions import (
    BrokerConnectionError,
    ContractError,
    EventBusError,
    EventSerializationError,
    InvalidPatternError,
    PatternConflictError,
    PayloadValidationError,
    RemoteServiceError,
    RequestError,
    RequestTimeoutError,
    RequestTransportError,
    TransportError,
    UnknownPatternError,
)
from .identity import ServiceIdentity
from .observability import EventBusMetrics, configure_logging, event_context
from .outbox import PendingEventBuffer
from .publisher import EventPublisher
from .requester import ServiceRequester
from .transport import InMemoryBroker, InMemoryTransport, RedisTransport, Transport

__all__ = [
    "EVENT_REGISTRY",
    "BrokerConnectionError",
    "ConnectionManager",
    "ConnectionState",
    "ContractError",
    "ContractRegistry",
    "DomainEvent",
    "EventBus",
    "EventBusError",
    "EventBusMetrics",
    "EventBusSettings",
    "EventConsumer",
    "EventPayload",
    "EventPublisher",
    "EventSerializationError",
    "InMemoryBroker",
    "InMemoryTransport",
    "InvalidPatternError",
    "PatternConflictError",
    "PayloadValidationError",
    "PendingEventBuffer",
    "ReconnectPolicy",
    "RedisTransport",
    "RemoteServiceError",
    "RequestError",
    "RequestTimeoutError",
    "RequestTransportError",
    "ServiceIdentity",
    "ServiceRequester",
    "Transport",
    "TransportError",
    "UnknownPatternError",
    "__version__",
    "build_envelope",
    "configure_logging",
    "create_event_bus",
    "event_context",
]
