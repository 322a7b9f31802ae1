"""
End-to-end behaviour of the event bus against the in-memory broker:
best-effort emits, bounded request timeouts and bounded reconnection.
"""

import asyncio
import time

import pytest

from marketplace_events.connection import ConnectionManager, ConnectionState, ReconnectPolicy
from marketplace_events.contracts import EVENT_REGISTRY, DomainEvent, OrderEvents, build_envelope
from marketplace_events.exceptions import RequestTimeoutError
from marketplace_events.publisher import EventPublisher
from marketplace_events.requester import ServiceRequester
from marketplace_events.transport import InMemoryTransport

SCENARIO_ORDER = {
    "orderId": "o1",
    "orderNumber": "HOS-1",
    "userId": "u1",
    "userEmail": "a@b.com",
    "sellerId": "s1",
    "items": [{"productId": "p1", "quantity": 2, "price": 9.99}],
    "total": 19.98,
    "currency": "GBP",
}


@pytest.mark.unit
class TestEnvelopeProperties:
    """Envelope guarantees for every registered pattern."""

    def test_every_pattern_builds_unique_envelopes(self):
        """Test each registered pattern gets its own pattern, fresh ids and the configured source."""
        event_ids = set()
        for contract in EVENT_REGISTRY:
            for _ in range(3):
                envelope = build_envelope(contract.pattern, {}, "order-service", registry=EVENT_REGISTRY)
                assert envelope.pattern == contract.pattern
                assert envelope.source == "order-service"
                event_ids.add(envelope.event_id)

        assert len(event_ids) == 3 * len(EVENT_REGISTRY)

    def test_round_trip_field_equality(self):
        """Test a consumer sees exactly the fields the producer sent."""
        envelope = build_envelope(
            OrderEvents.CREATED,
            SCENARIO_ORDER,
            "order-service",
            correlation_id="corr-1",
            tenant_id="tenant-1",
            registry=EVENT_REGISTRY,
            validate=True,
        )

        received = DomainEvent.from_json(envelope.to_json())

        for field in ("event_id", "pattern", "timestamp", "source", "tenant_id", "correlation_id", "payload"):
            assert getattr(received, field) == getattr(envelope, field)


@pytest.mark.unit
class TestBestEffortEmit:
    """Emit never blocks or raises."""

    @pytest.mark.asyncio
    async def test_order_created_while_disconnected(self, publisher, connection, broker, caplog):
        """Test order.order.created emitted while disconnected returns quietly and is not delivered."""
        assert connection.state is ConnectionState.DISCONNECTED

        started = time.monotonic()
        result = publisher.emit("order.order.created", SCENARIO_ORDER)
        elapsed = time.monotonic() - started
        await publisher.flush()

        assert result is None
        assert elapsed < 0.5
        assert broker.published == []
        assert "dropping event order.order.created" in caplog.text

    @pytest.mark.asyncio
    async def test_drop_after_three_emits(self, broker, identity, metrics, caplog):
        """Test a connection drop after three emits triggers bounded reconnection and swallows the fourth."""
        transport = InMemoryTransport(broker)
        connection = ConnectionManager(
            transport, ReconnectPolicy(max_attempts=3, delay=0.05), health_check_interval=0, metrics=metrics
        )
        publisher = EventPublisher(connection, identity, metrics=metrics)
        await connection.connect()

        for _ in range(3):
            publisher.emit(OrderEvents.CREATED, SCENARIO_ORDER)
        await publisher.flush()
        assert len(broker.published) == 3

        broker.go_down()
        assert connection.state is ConnectionState.DISCONNECTED
        assert connection.reconnecting

        # mid-retry
        await asyncio.sleep(0.07)
        publisher.emit(OrderEvents.CREATED, SCENARIO_ORDER)
        await publisher.flush()

        await asyncio.wait_for(connection._reconnect_task, timeout=2.0)

        assert len(broker.published) == 3
        assert transport.connect_calls == 1 + 3
        assert connection.state is ConnectionState.DISCONNECTED
        assert metrics.sample("marketplace_events_reconnect_attempts_total") == 3
        assert metrics.sample(
            "marketplace_events_events_dropped_total", pattern="order.order.created", reason="not_connected"
        ) == 1
        assert "Giving up on broker after 3 reconnect attempts" in caplog.text
        await connection.close()


@pytest.mark.unit
class TestRequestTimeout:
    """Requests against a silent responder."""

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_payout_process_times_out_near_five_seconds(self, connection):
        """Test send() with a 5 second timeout fails between 4 and 7 seconds."""
        requester = ServiceRequester(connection, default_timeout=5.0)
        await connection.connect()

        started = time.monotonic()
        with pytest.raises(RequestTimeoutError) as exc_info:
            await requester.send("payout.process", {"payoutId": "pay1"})
        elapsed = time.monotonic() - started

        assert 4.0 <= elapsed <= 7.0
        assert exc_info.value.timeout_seconds == 5.0
