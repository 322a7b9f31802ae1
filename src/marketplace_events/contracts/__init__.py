"""
Event contracts shared by all marketplace services.

This package provides:
- The domain event envelope and its wire format
- The contract registry mapping patterns to payload models
- The marketplace event catalog
"""

from .catalog import (
    ALL_EVENT_GROUPS,
    EVENT_REGISTRY,
    AdminEvents,
    AuthEvents,
    ContentEvents,
    InfluencerEvents,
    InventoryEvents,
    NotificationEvents,
    OrderEvents,
    PaymentEvents,
    ProductEvents,
    SellerEvents,
    ShippingEvents,
    UserEvents,
    build_default_registry,
    register_marketplace_events,
)
from .envelope import DomainEvent, build_envelope, dump_payload, pattern_name, utc_timestamp
from .payloads import EventPayload, OpenPayload
from .registry import ContractRegistry, PatternContract, payload_shape, validate_pattern_name

__all__ = [
    "ALL_EVENT_GROUPS",
    "EVENT_REGISTRY",
    "AdminEvents",
    "AuthEvents",
    "ContentEvents",
    "ContractRegistry",
    "DomainEvent",
    "EventPayload",
    "InfluencerEvents",
    "InventoryEvents",
    "NotificationEvents",
    "OpenPayload",
    "OrderEvents",
    "PatternContract",
    "PaymentEvents",
    "ProductEvents",
    "SellerEvents",
    "ShippingEvents",
    "UserEvents",
    "build_default_registry",
    "build_envelope",
    "dump_payload",
    "pattern_name",
    "payload_shape",
    "register_marketplace_events",
    "utc_timestamp",
    "validate_pattern_name",
]
