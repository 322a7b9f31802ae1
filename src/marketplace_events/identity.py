"""
Service identity: the constant ``source`` name and resolved broker endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from .config import EventBusSettings


def redact_url(url: str) -> str:
    """Hide the password part of a broker URL for logging."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    user = parts.username or ""
    return urlunsplit((parts.scheme, f"{user}:***@{host}", parts.path, parts.query, parts.fragment))


@dataclass(frozen=True)
class ServiceIdentity:
    """Stable per-deployment identity of the emitting service."""

    service_name: str
    broker_url: str

    def __post_init__(self) -> None:
        if not self.service_name:
            raise ValueError("service_name must not be empty")
        if not self.broker_url:
            raise ValueError("broker_url must not be empty")

    @classmethod
    def from_settings(cls, settings: EventBusSettings) -> ServiceIdentity:
        return cls(service_name=settings.service_name, broker_url=settings.broker_url())

    @property
    def source(self) -> str:
        return self.service_name

    @property
    def redacted_broker_url(self) -> str:
        return redact_url(self.broker_url)
