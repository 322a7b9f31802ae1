"""
Broker connection manager.

Owns the connection lifecycle for one process: an explicit
DISCONNECTED -> CONNECTING -> CONNECTED state machine shared by the
publisher, requester and consumer. Connection failures never propagate to
callers; they are logged and handed to a bounded, fixed-delay reconnect loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .transport.base import Transport

if TYPE_CHECKING:
    from .config import EventBusSettings
    from .observability.metrics import EventBusMetrics

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[], Any]


class ConnectionState(Enum):
    """Broker connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Fixed-delay reconnect policy with a hard attempt cap."""

    max_attempts: int = 5
    delay: float = 3.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    @classmethod
    def from_settings(cls, settings: EventBusSettings) -> ReconnectPolicy:
        return cls(max_attempts=settings.retry_attempts, delay=settings.retry_delay)


class ConnectionManager:
    """
    Process-wide broker connection state machine.

    ``connect()`` is idempotent: while a connection exists or is being
    established, further calls do nothing, so concurrent start-up code ends up
    with a single transport connection. Lost connections are retried up to
    ``policy.max_attempts`` times, ``policy.delay`` seconds apart; after that the
    manager stays disconnected until ``connect()`` is called again.
    """

    def __init__(
        self,
        transport: Transport,
        policy: ReconnectPolicy | None = None,
        *,
        health_check_interval: float = 30.0,
        metrics: EventBusMetrics | None = None,
        name: str = "event-bus",
    ):
        self._transport = transport
        self.policy = policy or ReconnectPolicy()
        self.health_check_interval = health_check_interval
        self.metrics = metrics
        self.name = name

        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._closed = False
        self._reconnect_task: asyncio.Task | None = None
        self._health_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._reconnect_attempts = 0
        self._last_error: str | None = None

        self._connected_listeners: list[ConnectionListener] = []
        self._disconnected_listeners: list[ConnectionListener] = []

        transport.set_disconnect_callback(self.report_connection_lost)

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def is_ready(self) -> bool:
        """Whether publish and send can currently be attempted."""
        return self._state is ConnectionState.CONNECTED and self._transport.is_connected

    def on_connected(self, listener: ConnectionListener) -> ConnectionListener:
        """Register a (sync or async) callable run after every successful connect."""
        self._connected_listeners.append(listener)
        return listener

    def on_disconnected(self, listener: ConnectionListener) -> ConnectionListener:
        """Register a (sync or async) callable run when an established connection is lost."""
        self._disconnected_listeners.append(listener)
        return listener

    async def connect(self) -> bool:
        """
        Establish the broker connection if there is none.

        Returns:
            True if the manager is connected when the call returns. A failed
            attempt is logged and schedules the reconnect loop; it never raises.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            return self.is_ready()

        self._closed = False
        self._set_state(ConnectionState.CONNECTING)
        if await self._attempt_connect():
            return True
        self._schedule_reconnect()
        return False

    def report_connection_lost(self, error: Exception | None = None) -> None:
        """Signal that the broker connection dropped; starts bounded reconnection."""
        if self._closed or self._state is ConnectionState.CONNECTING:
            return
        if self._state is ConnectionState.DISCONNECTED:
            # already handled, or the retry budget is spent
            return

        self._last_error = str(error) if error else "connection lost"
        self._set_state(ConnectionState.DISCONNECTED)
        logger.warning(f"Broker connection lost ({self._transport.name}): {self._last_error}")

        self._stop_health_monitor()
        self._spawn(self._notify(self._disconnected_listeners, "disconnected"))
        self._schedule_reconnect()

    async def close(self) -> None:
        """Stop retries and health checks and close the transport."""
        self._closed = True
        await self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self._stop_health_monitor()
        for task in list(self._background):
            task.cancel()

        async with self._lock:
            try:
                await self._transport.close()
            except Exception as e:
                logger.warning(f"Error while closing transport {self._transport.name}: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"Event bus connection '{self.name}' closed")

    def health_check(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "ready": self.is_ready(),
            "reconnecting": self.reconnecting,
            "reconnect_attempts": self._reconnect_attempts,
            "last_error": self._last_error,
            "transport": self._transport.describe(),
        }

    async def _attempt_connect(self) -> bool:
        async with self._lock:
            if self._closed:
                return False
            if self._state is ConnectionState.CONNECTED and self._transport.is_connected:
                return True

            self._set_state(ConnectionState.CONNECTING)
            try:
                await self._transport.connect()
            except Exception as e:
                self._last_error = str(e)
                self._set_state(ConnectionState.DISCONNECTED)
                logger.warning(f"Could not connect to broker via {self._transport.name}: {e}")
                return False

            self._set_state(ConnectionState.CONNECTED)
            self._reconnect_attempts = 0
            self._last_error = None

        logger.info(f"Event bus connection '{self.name}' established via {self._transport.name}")
        self._start_health_monitor()
        await self._notify(self._connected_listeners, "connected")
        return True

    def _schedule_reconnect(self) -> None:
        if self._closed or self.reconnecting:
            return
        if self.policy.max_attempts == 0:
            logger.error("Automatic reconnection disabled; event bus stays disconnected")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("No running event loop; cannot schedule broker reconnection")
            return
        self._reconnect_task = loop.create_task(self._reconnect_loop(), name=f"{self.name}-reconnect")

    async def _reconnect_loop(self) -> None:
        max_attempts = self.policy.max_attempts
        for attempt in range(1, max_attempts + 1):
            await asyncio.sleep(self.policy.delay)
            if self._closed or self._state is ConnectionState.CONNECTED:
                return

            self._reconnect_attempts = attempt
            if self.metrics:
                self.metrics.record_reconnect_attempt()
            logger.info(f"Reconnecting to broker (attempt {attempt}/{max_attempts})")

            if await self._attempt_connect():
                logger.info(f"Reconnected to broker after {attempt} attempt(s)")
                return

        logger.error(
            f"Giving up on broker after {max_attempts} reconnect attempts; "
            "event bus stays disconnected until connect() is called again"
        )

    def _start_health_monitor(self) -> None:
        if self.health_check_interval <= 0:
            return
        if self._health_task is not None and not self._health_task.done():
            return
        self._health_task = asyncio.get_running_loop().create_task(
            self._health_loop(), name=f"{self.name}-health"
        )

    def _stop_health_monitor(self) -> None:
        task, self._health_task = self._health_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _health_loop(self) -> None:
        while not self._closed and self._state is ConnectionState.CONNECTED:
            await asyncio.sleep(self.health_check_interval)
            if self._state is not ConnectionState.CONNECTED:
                return
            try:
                await self._transport.ping()
            except Exception as e:
                logger.warning(f"Broker health check failed: {e}")
                self.report_connection_lost(e)
                return

    async def _notify(self, listeners: list[ConnectionListener], event: str) -> None:
        for listener in list(listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Connection '{event}' listener failed")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        if self.metrics:
            self.metrics.record_connection_state(state.value)

    def _spawn(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
