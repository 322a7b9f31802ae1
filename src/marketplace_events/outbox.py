"""
Pending event buffer.

A bounded, process-local holding area for events emitted while the broker was
unreachable. Entries are replayed once, oldest first, after the connection is
re-established. The buffer lives in memory only: it narrows the window in
which events are lost during short outages but does not make delivery durable.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class PendingEvent:
    """An envelope waiting for the broker to come back."""

    pattern: str
    envelope: dict[str, Any]
    buffered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_id(self) -> str | None:
        return self.envelope.get("eventId")


class PendingEventBuffer:
    """FIFO buffer with a hard size cap; the oldest entry is evicted when full."""

    def __init__(self, max_size: int):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._events: deque[PendingEvent] = deque()
        self.evicted = 0

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    def add(self, pattern: str, envelope: dict[str, Any]) -> PendingEvent | None:
        """
        Buffer an envelope.

        Returns:
            The evicted entry when the buffer was full, otherwise None
        """
        evicted = None
        if len(self._events) >= self.max_size:
            evicted = self._events.popleft()
            self.evicted += 1
            logger.warning(
                f"Pending event buffer full ({self.max_size}); dropping oldest event "
                f"{evicted.event_id} ({evicted.pattern})"
            )
        self._events.append(PendingEvent(pattern=pattern, envelope=envelope))
        return evicted

    def drain(self) -> list[PendingEvent]:
        """Remove and return every buffered event in emit order."""
        events = list(self._events)
        self._events.clear()
        return events

    def patterns(self) -> list[str]:
        return [event.pattern for event in self._events]
