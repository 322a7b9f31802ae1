"""
Prometheus metrics for the event bus.

Each bus owns its own ``CollectorRegistry`` so several buses (or test cases) in
one process never collide on metric names. Services expose it by merging it
into their scrape endpoint.
"""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

METRIC_PREFIX = "marketplace_events"

CONNECTION_STATE_VALUES = {"disconnected": 0, "connecting": 1, "connected": 2}


class EventBusMetrics:
    """Counters and gauges describing emit, send and connection activity."""

    def __init__(self, service_name: str, registry: CollectorRegistry | None = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.events_emitted = Counter(
            f"{METRIC_PREFIX}_events_emitted_total",
            "Events handed to the broker",
            ["service", "pattern"],
            registry=self.registry,
        )
        self.events_dropped = Counter(
            f"{METRIC_PREFIX}_events_dropped_total",
            "Events dropped before reaching the broker",
            ["service", "pattern", "reason"],
            registry=self.registry,
        )
        self.events_buffered = Counter(
            f"{METRIC_PREFIX}_events_buffered_total",
            "Events held in the pending buffer while disconnected",
            ["service", "pattern"],
            registry=self.registry,
        )
        self.publish_failures = Counter(
            f"{METRIC_PREFIX}_publish_failures_total",
            "Publish attempts rejected by the transport",
            ["service", "pattern"],
            registry=self.registry,
        )
        self.requests = Counter(
            f"{METRIC_PREFIX}_requests_total",
            "Request/response calls by outcome",
            ["service", "pattern", "outcome"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            f"{METRIC_PREFIX}_request_duration_seconds",
            "Time spent waiting for replies",
            ["service", "pattern"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )
        self.connection_state = Gauge(
            f"{METRIC_PREFIX}_connection_state",
            "Broker connection state (0=disconnected, 1=connecting, 2=connected)",
            ["service"],
            registry=self.registry,
        )
        self.reconnect_attempts = Counter(
            f"{METRIC_PREFIX}_reconnect_attempts_total",
            "Automatic reconnection attempts",
            ["service"],
            registry=self.registry,
        )

    def record_emitted(self, pattern: str) -> None:
        self.events_emitted.labels(service=self.service_name, pattern=pattern).inc()

    def record_dropped(self, pattern: str, reason: str) -> None:
        self.events_dropped.labels(service=self.service_name, pattern=pattern, reason=reason).inc()

    def record_buffered(self, pattern: str) -> None:
        self.events_buffered.labels(service=self.service_name, pattern=pattern).inc()

    def record_publish_failure(self, pattern: str) -> None:
        self.publish_failures.labels(service=self.service_name, pattern=pattern).inc()

    def record_request(self, pattern: str, outcome: str, duration: float) -> None:
        self.requests.labels(service=self.service_name, pattern=pattern, outcome=outcome).inc()
        self.request_duration.labels(service=self.service_name, pattern=pattern).observe(duration)

    def record_connection_state(self, state: str) -> None:
        self.connection_state.labels(service=self.service_name).set(CONNECTION_STATE_VALUES.get(state, 0))

    def record_reconnect_attempt(self) -> None:
        self.reconnect_attempts.labels(service=self.service_name).inc()

    def sample(self, name: str, **labels: str) -> float:
        """Current value of a sample, 0.0 when it has not been recorded yet."""
        labels.setdefault("service", self.service_name)
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0
