"""
Request/response over the event bus.

Unlike ``emit()``, ``send()`` is awaited by the caller and every failure is
raised: the caller needs the answer and decides itself how to handle its
absence. Requests are never retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from .contracts.envelope import dump_payload, pattern_name
from .exceptions import (
    BrokerConnectionError,
    EventSerializationError,
    RemoteServiceError,
    RequestTimeoutError,
    RequestTransportError,
    TransportError,
)

if TYPE_CHECKING:
    from .connection import ConnectionManager
    from .observability.metrics import EventBusMetrics

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 5.0


class ServiceRequester:
    """Sends requests to other services and awaits their reply."""

    def __init__(
        self,
        connection: ConnectionManager,
        *,
        default_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        metrics: EventBusMetrics | None = None,
    ):
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self.connection = connection
        self.default_timeout = default_timeout
        self.metrics = metrics

    async def send(
        self,
        pattern: str | Enum,
        payload: BaseModel | Mapping[str, Any] | Any,
        *,
        timeout: float | None = None,
    ) -> Any:
        """
        Send a request and wait for the reply.

        Args:
            pattern: Request pattern, e.g. ``payout.process``
            payload: Request body (pydantic model, mapping or JSON value)
            timeout: Seconds to wait; defaults to the configured request timeout

        Returns:
            The responder's result

        Raises:
            RequestTimeoutError: No reply within ``timeout``
            RemoteServiceError: The responder answered with an error
            RequestTransportError: The broker is unavailable or rejected the write
        """
        name = pattern_name(pattern)
        timeout = self.default_timeout if timeout is None else timeout
        data = dump_payload(payload) if isinstance(payload, (BaseModel, Mapping)) else payload

        if not self.connection.is_ready():
            self._record(name, "not_connected", 0.0)
            raise RequestTransportError(f"Cannot send '{name}': broker not connected", pattern=name)

        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self.connection.transport.request(name, data), timeout=timeout)
        except asyncio.TimeoutError as e:
            elapsed = time.monotonic() - started
            self._record(name, "timeout", elapsed)
            logger.warning(f"Request {name} timed out after {timeout}s")
            raise RequestTimeoutError(
                f"No reply to '{name}' within {timeout}s", pattern=name, timeout_seconds=timeout
            ) from e
        except RemoteServiceError as e:
            self._record(name, "remote_error", time.monotonic() - started)
            logger.warning(f"Request {name} failed remotely: {e.remote_error}")
            raise RemoteServiceError(str(e), pattern=name, remote_error=e.remote_error) from e
        except BrokerConnectionError as e:
            self._record(name, "transport_error", time.monotonic() - started)
            self.connection.report_connection_lost(e)
            raise RequestTransportError(f"Broker connection lost while sending '{name}': {e}", pattern=name, cause=e) from e
        except (TransportError, EventSerializationError) as e:
            self._record(name, "transport_error", time.monotonic() - started)
            raise RequestTransportError(f"Could not send '{name}': {e}", pattern=name, cause=e) from e

        self._record(name, "success", time.monotonic() - started)
        return result

    def _record(self, pattern: str, outcome: str, duration: float) -> None:
        if self.metrics:
            self.metrics.record_request(pattern, outcome, duration)
