"""
Event Bus Exceptions

Custom exceptions for contract, transport and request/response failures.
"""

from __future__ import annotations

from typing import Any


class EventBusError(Exception):
    """Base exception for event bus errors."""

    def __init__(self, message: str, *, pattern: str | None = None, cause: Exception | None = None):
        super().__init__(message)
        self.pattern = pattern
        self.cause = cause


class ContractError(EventBusError):
    """Raised when an event violates the shared contract registry."""


class InvalidPatternError(ContractError):
    """Raised when a pattern does not follow the {domain}.{entity}.{action} convention."""


class PatternConflictError(ContractError):
    """Raised when a pattern is registered twice with different payload shapes."""


class UnknownPatternError(ContractError):
    """Raised when a pattern is not present in the registry."""


class PayloadValidationError(ContractError):
    """Raised when a payload does not match the model registered for its pattern."""

    def __init__(
        self,
        message: str,
        *,
        pattern: str | None = None,
        errors: list[dict[str, Any]] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, pattern=pattern, cause=cause)
        self.errors = errors or []


class EventSerializationError(EventBusError):
    """Raised when an envelope cannot be serialized to the wire format."""


class TransportError(EventBusError):
    """Raised when the broker transport fails."""


class BrokerConnectionError(TransportError):
    """Raised when the broker is unreachable or the connection was lost."""


class RequestError(EventBusError):
    """Base exception for failed request/response calls."""


class RequestTimeoutError(RequestError):
    """Raised when no reply arrives within the configured timeout."""

    def __init__(self, message: str, *, pattern: str | None = None, timeout_seconds: float = 0.0):
        super().__init__(message, pattern=pattern)
        self.timeout_seconds = timeout_seconds


class RemoteServiceError(RequestError):
    """Raised when the responding service answered with an error."""

    def __init__(self, message: str, *, pattern: str | None = None, remote_error: Any = None):
        super().__init__(message, pattern=pattern)
        self.remote_error = remote_error


class RequestTransportError(RequestError):
    """Raised when a request could not be delivered to the broker."""
