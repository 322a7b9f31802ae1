"""
Tests for the in-memory broker and transport.
"""

import asyncio

import pytest

from marketplace_events.exceptions import BrokerConnectionError, EventSerializationError, RemoteServiceError
from marketplace_events.transport import InMemoryBroker, InMemoryTransport, decode_packet, encode_packet, reply_packet


@pytest.mark.unit
class TestPackets:
    """Test the shared packet framing."""

    def test_reply_packet_shapes(self):
        """Test replies carry either a response or an error."""
        assert reply_packet("r-1", response={"ok": True}) == {"id": "r-1", "isDisposed": True, "response": {"ok": True}}
        assert reply_packet("r-1", err="boom") == {"id": "r-1", "isDisposed": True, "err": "boom"}

    def test_encode_rejects_unserializable(self):
        """Test packets that cannot be encoded raise serialization errors."""
        with pytest.raises(EventSerializationError):
            encode_packet({"pattern": "x.y.z", "data": {"value": object()}})

    def test_decode_round_trip(self):
        """Test decoding reverses encoding."""
        packet = {"pattern": "order.order.created", "data": {"eventId": "e-1"}}
        assert decode_packet(encode_packet(packet)) == packet


@pytest.mark.unit
class TestInMemoryTransport:
    """Test in-process delivery."""

    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers(self, broker):
        """Test events fan out to every subscriber."""
        publisher = InMemoryTransport(broker)
        consumer = InMemoryTransport(broker)
        await publisher.connect()
        await consumer.connect()

        received_a, received_b = [], []

        async def handler_a(data):
            received_a.append(data)

        async def handler_b(data):
            received_b.append(data)

        await consumer.subscribe("order.order.created", handler_a)
        await consumer.subscribe("order.order.created", handler_b)

        await publisher.publish("order.order.created", {"eventId": "e-1"})
        await broker.drain()

        assert received_a == [{"eventId": "e-1"}]
        assert received_b == [{"eventId": "e-1"}]
        assert broker.published_patterns() == ["order.order.created"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self, broker, caplog):
        """Test one failing subscriber does not affect the publisher."""
        transport = InMemoryTransport(broker)
        await transport.connect()

        async def broken(data):
            raise RuntimeError("boom")

        await transport.subscribe("order.order.created", broken)
        await transport.publish("order.order.created", {})
        await broker.drain()

        assert "Subscriber for order.order.created failed" in caplog.text

    @pytest.mark.asyncio
    async def test_request_reply(self, broker):
        """Test requests reach the responder and return its result."""
        transport = InMemoryTransport(broker)
        await transport.connect()

        async def responder(data):
            return {"echo": data["value"]}

        await transport.serve("payout.process", responder)

        assert await transport.request("payout.process", {"value": 3}) == {"echo": 3}

    @pytest.mark.asyncio
    async def test_responder_error(self, broker):
        """Test responder failures surface as remote errors."""
        transport = InMemoryTransport(broker)
        await transport.connect()

        async def responder(data):
            raise ValueError("insufficient balance")

        await transport.serve("payout.process", responder)

        with pytest.raises(RemoteServiceError) as exc_info:
            await transport.request("payout.process", {})
        assert exc_info.value.remote_error == "insufficient balance"

    @pytest.mark.asyncio
    async def test_request_without_responder_waits(self, broker):
        """Test nobody answering leaves the request pending."""
        transport = InMemoryTransport(broker)
        await transport.connect()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(transport.request("payout.process", {}), timeout=0.05)

    @pytest.mark.asyncio
    async def test_outage(self, broker):
        """Test go_down drops connections and blocks reconnects until come_up."""
        transport = InMemoryTransport(broker)
        lost = []
        transport.set_disconnect_callback(lost.append)
        await transport.connect()

        broker.go_down()

        assert not transport.is_connected
        assert len(lost) == 1
        with pytest.raises(BrokerConnectionError):
            await transport.publish("order.order.created", {})
        with pytest.raises(BrokerConnectionError):
            await transport.connect()

        broker.come_up()
        await transport.connect()
        assert transport.is_connected
        assert transport.connect_calls == 3

    @pytest.mark.asyncio
    async def test_close(self, broker):
        """Test closed transports refuse to publish."""
        transport = InMemoryTransport(broker)
        await transport.connect()
        await transport.close()

        with pytest.raises(BrokerConnectionError):
            await transport.publish("order.order.created", {})
        assert transport.describe() == {"name": "memory", "connected": False}
