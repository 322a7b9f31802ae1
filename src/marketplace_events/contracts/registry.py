"""
Contract Registry

Closed set of event patterns shared by every marketplace service and the
payload model each pattern carries. Registration happens at import/start-up
time; the registry is constant for the rest of the process lifetime.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..exceptions import (
    InvalidPatternError,
    PatternConflictError,
    PayloadValidationError,
    UnknownPatternError,
)
from .envelope import DomainEvent, dump_payload, pattern_name

logger = logging.getLogger(__name__)

# {domain}.{entity}.{action}, lowercase
PATTERN_REGEX = re.compile(r"^[a-z][a-z0-9_]*\.[a-z][a-z0-9_]*\.[a-z][a-z0-9_]*$")

_ANNOTATION_KEYS = frozenset({"title", "description", "examples"})

ModelT = TypeVar("ModelT", bound=type[BaseModel])


def validate_pattern_name(pattern: str | Enum) -> str:
    """Return the normalized pattern name or raise if it breaks the naming convention."""
    name = pattern_name(pattern)
    if not PATTERN_REGEX.match(name):
        raise InvalidPatternError(
            f"Invalid event pattern '{name}': expected lowercase '{{domain}}.{{entity}}.{{action}}'",
            pattern=name,
        )
    return name


def _strip_annotations(node: Any, parent_key: str | None = None) -> Any:
    if isinstance(node, dict):
        # keys under properties/$defs are field and model names, not annotations
        keep_all = parent_key in ("properties", "$defs")
        return {
            key: _strip_annotations(value, key)
            for key, value in node.items()
            if keep_all or key not in _ANNOTATION_KEYS
        }
    if isinstance(node, list):
        return [_strip_annotations(item) for item in node]
    return node


def payload_shape(model: type[BaseModel]) -> dict[str, Any]:
    """Structural description of a payload model, ignoring titles and docs."""
    return _strip_annotations(model.model_json_schema(by_alias=True))


@dataclass(frozen=True)
class PatternContract:
    """A registered pattern and the payload model it implies."""

    pattern: str
    payload_model: type[BaseModel]
    description: str = ""

    @property
    def domain(self) -> str:
        return self.pattern.split(".", 1)[0]


class ContractRegistry:
    """In-memory registry mapping event patterns to payload models."""

    def __init__(self) -> None:
        self._contracts: dict[str, PatternContract] = {}

    def register_pattern(
        self,
        pattern: str | Enum,
        payload_model: type[BaseModel],
        description: str = "",
    ) -> PatternContract:
        """
        Register ``payload_model`` as the shape carried by ``pattern``.

        Registering the same shape again is a no-op. Registering a different
        shape under an existing pattern raises ``PatternConflictError`` so the
        owning service fails at start-up instead of publishing ambiguous events.
        """
        name = validate_pattern_name(pattern)
        if not (isinstance(payload_model, type) and issubclass(payload_model, BaseModel)):
            raise TypeError(f"Payload model for '{name}' must be a pydantic model class")

        existing = self._contracts.get(name)
        if existing is not None:
            if existing.payload_model is payload_model or payload_shape(
                existing.payload_model
            ) == payload_shape(payload_model):
                return existing
            raise PatternConflictError(
                f"Pattern '{name}' is already registered with payload "
                f"{existing.payload_model.__name__}, refusing {payload_model.__name__}",
                pattern=name,
            )

        contract = PatternContract(pattern=name, payload_model=payload_model, description=description)
        self._contracts[name] = contract
        logger.debug(f"Registered event pattern {name} -> {payload_model.__name__}")
        return contract

    def contract(self, pattern: str | Enum, description: str = "") -> Callable[[ModelT], ModelT]:
        """Decorator form of ``register_pattern`` for payload model classes."""

        def decorator(model: ModelT) -> ModelT:
            self.register_pattern(pattern, model, description or (model.__doc__ or "").strip())
            return model

        return decorator

    def get(self, pattern: str | Enum) -> PatternContract:
        name = pattern_name(pattern)
        try:
            return self._contracts[name]
        except KeyError:
            raise UnknownPatternError(f"Event pattern '{name}' is not registered", pattern=name) from None

    def is_registered(self, pattern: str | Enum) -> bool:
        return pattern_name(pattern) in self._contracts

    def patterns(self, domain: str | None = None) -> list[str]:
        """Sorted registered pattern names, optionally limited to one domain."""
        return sorted(
            name for name, contract in self._contracts.items() if domain is None or contract.domain == domain
        )

    def domains(self) -> list[str]:
        return sorted({contract.domain for contract in self._contracts.values()})

    def validate_payload(self, pattern: str | Enum, payload: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        """
        Runtime validation hook: check ``payload`` against the registered model.

        Returns:
            The validated payload in wire form (camelCase keys, unset optionals omitted)
        """
        contract = self.get(pattern)
        data = dump_payload(payload)
        try:
            model = contract.payload_model.model_validate(data)
        except ValidationError as e:
            raise PayloadValidationError(
                f"Payload for '{contract.pattern}' does not match {contract.payload_model.__name__}: "
                f"{e.error_count()} error(s)",
                pattern=contract.pattern,
                errors=e.errors(include_url=False),
                cause=e,
            ) from e
        return model.model_dump(mode="json", by_alias=True, exclude_none=True)

    def parse_payload(self, envelope: DomainEvent) -> BaseModel:
        """Typed payload of a received envelope, using the model registered for its pattern."""
        return envelope.payload_as(self.get(envelope.pattern).payload_model)

    def __contains__(self, pattern: object) -> bool:
        if not isinstance(pattern, (str, Enum)):
            return False
        return self.is_registered(pattern)

    def __iter__(self) -> Iterator[PatternContract]:
        return iter(sorted(self._contracts.values(), key=lambda c: c.pattern))

    def __len__(self) -> int:
        return len(self._contracts)
