"""
Domain Event Envelope

The wire unit every service publishes and consumes. Envelopes are transient:
they are built per emit, serialized to JSON and never persisted by the client.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticSerializationError

from ..exceptions import ContractError, EventSerializationError, InvalidPatternError, PayloadValidationError

if TYPE_CHECKING:
    from .registry import ContractRegistry

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# Optional envelope fields omitted from the wire when unset
_OPTIONAL_WIRE_FIELDS = ("tenantId", "correlationId")


def pattern_name(pattern: str | Enum) -> str:
    """Normalize a pattern given as a string or a pattern enum member."""
    if isinstance(pattern, Enum):
        return str(pattern.value)
    return str(pattern)


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def dump_payload(payload: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    """Convert a payload model or mapping into its wire dictionary."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(payload, Mapping):
        return dict(payload)
    raise PayloadValidationError(
        f"Event payload must be a mapping or a pydantic model, got {type(payload).__name__}"
    )


class DomainEvent(BaseModel):
    """Envelope wrapping a pattern-specific payload with routing and tracing metadata."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    event_id: str = Field(min_length=1)
    pattern: str = Field(min_length=1)
    timestamp: str
    source: str
    tenant_id: str | None = None
    correlation_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-safe wire dictionary (camelCase keys)."""
        try:
            data = self.model_dump(mode="json", by_alias=True)
        except PydanticSerializationError as e:
            raise EventSerializationError(
                f"Event {self.event_id} is not JSON serializable: {e}",
                pattern=self.pattern,
                cause=e,
            ) from e

        for key in _OPTIONAL_WIRE_FIELDS:
            if data.get(key) is None:
                data.pop(key, None)
        return data

    def to_json(self) -> str:
        try:
            return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise EventSerializationError(
                f"Event {self.event_id} is not JSON serializable: {e}",
                pattern=self.pattern,
                cause=e,
            ) from e

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> DomainEvent:
        """Rebuild an envelope received from the broker."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ContractError(f"Malformed event envelope: {e}", cause=e) from e

    @classmethod
    def from_json(cls, raw: str | bytes) -> DomainEvent:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ContractError(f"Event envelope is not valid JSON: {e}", cause=e) from e
        if not isinstance(data, Mapping):
            raise ContractError("Event envelope must be a JSON object")
        return cls.from_wire(data)

    def payload_as(self, model: type[PayloadT]) -> PayloadT:
        """Parse the payload into a typed model."""
        try:
            return model.model_validate(self.payload)
        except ValidationError as e:
            raise PayloadValidationError(
                f"Payload of {self.pattern} does not match {model.__name__}",
                pattern=self.pattern,
                errors=e.errors(include_url=False),
                cause=e,
            ) from e


def build_envelope(
    pattern: str | Enum,
    payload: BaseModel | Mapping[str, Any],
    source: str,
    *,
    correlation_id: str | None = None,
    tenant_id: str | None = None,
    registry: ContractRegistry | None = None,
    validate: bool = False,
) -> DomainEvent:
    """
    Build an envelope for ``pattern``.

    Generates a fresh ``event_id`` and stamps the current UTC time. When a
    registry is given the pattern must be registered in it; the payload is only
    deep-validated against the registered model when ``validate`` is set.

    Args:
        pattern: Registered event pattern, e.g. ``order.order.created``
        payload: Payload model instance or plain mapping
        source: Name of the emitting service
        correlation_id: Optional id linking causally related events
        tenant_id: Optional tenant scope of the originating operation
        registry: Contract registry used to check the pattern
        validate: Run the runtime payload validation hook

    Returns:
        The new envelope
    """
    name = pattern_name(pattern)
    if not name:
        raise InvalidPatternError("Event pattern must not be empty")
    if not source:
        raise ContractError("Event source service name must not be empty", pattern=name)

    if registry is not None and validate:
        data = registry.validate_payload(name, payload)
    else:
        if registry is not None:
            registry.get(name)
        data = dump_payload(payload)

    try:
        return DomainEvent(
            event_id=str(uuid.uuid4()),
            pattern=name,
            timestamp=utc_timestamp(),
            source=source,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            payload=data,
        )
    except ValidationError as e:
        raise ContractError(f"Invalid envelope for {name}: {e}", pattern=name, cause=e) from e
