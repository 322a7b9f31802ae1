"""
Tests for request/response calls.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from marketplace_events.connection import ConnectionManager
from marketplace_events.contracts.payloads import PayoutProcessedPayload
from marketplace_events.exceptions import (
    BrokerConnectionError,
    RemoteServiceError,
    RequestTimeoutError,
    RequestTransportError,
    TransportError,
)
from marketplace_events.requester import ServiceRequester

REQUESTS = "marketplace_events_requests_total"


@pytest.mark.unit
class TestSend:
    """Test successful requests."""

    @pytest.mark.asyncio
    async def test_send_returns_reply(self, requester, connection, transport, metrics):
        """Test the responder's result is returned."""
        await connection.connect()

        async def responder(data):
            return {"payoutId": data["payoutId"], "status": "processed"}

        await transport.serve("payout.process", responder)

        result = await requester.send("payout.process", {"payoutId": "p-1"})

        assert result == {"payoutId": "p-1", "status": "processed"}
        assert metrics.sample(REQUESTS, pattern="payout.process", outcome="success") == 1

    @pytest.mark.asyncio
    async def test_send_model_payload(self, requester, connection, transport):
        """Test pydantic payloads are sent in wire form."""
        await connection.connect()
        received = []

        async def responder(data):
            received.append(data)
            return True

        await transport.serve("payment.payout.process", responder)
        payload = PayoutProcessedPayload(payout_id="p-1", seller_id="s-1", amount=10.0, currency="EUR")

        await requester.send("payment.payout.process", payload)

        assert received[0]["payoutId"] == "p-1"
        assert received[0]["sellerId"] == "s-1"

    def test_invalid_default_timeout(self, transport):
        """Test the default timeout must be positive."""
        with pytest.raises(ValueError):
            ServiceRequester(ConnectionManager(transport), default_timeout=0)


@pytest.mark.unit
class TestSendFailures:
    """Test that send failures propagate."""

    @pytest.mark.asyncio
    async def test_timeout(self, requester, connection, metrics):
        """Test a silent responder raises RequestTimeoutError."""
        await connection.connect()

        with pytest.raises(RequestTimeoutError) as exc_info:
            await requester.send("payout.process", {"payoutId": "p-1"}, timeout=0.05)

        assert exc_info.value.pattern == "payout.process"
        assert exc_info.value.timeout_seconds == 0.05
        assert metrics.sample(REQUESTS, pattern="payout.process", outcome="timeout") == 1

    @pytest.mark.asyncio
    async def test_default_timeout_used(self, connection):
        """Test the configured default applies when no timeout is given."""
        requester = ServiceRequester(connection, default_timeout=0.05)
        await connection.connect()

        with pytest.raises(RequestTimeoutError) as exc_info:
            await requester.send("payout.process", {})

        assert exc_info.value.timeout_seconds == 0.05

    @pytest.mark.asyncio
    async def test_remote_error(self, requester, connection, transport, metrics):
        """Test responder errors raise RemoteServiceError."""
        await connection.connect()

        async def responder(data):
            raise ValueError("seller not verified")

        await transport.serve("payout.process", responder)

        with pytest.raises(RemoteServiceError) as exc_info:
            await requester.send("payout.process", {})

        assert exc_info.value.pattern == "payout.process"
        assert exc_info.value.remote_error == "seller not verified"
        assert metrics.sample(REQUESTS, pattern="payout.process", outcome="remote_error") == 1

    @pytest.mark.asyncio
    async def test_not_connected(self, requester):
        """Test sending without a connection raises immediately."""
        with pytest.raises(RequestTransportError):
            await requester.send("payout.process", {})

    @pytest.mark.asyncio
    async def test_connection_lost(self, requester, connection, transport):
        """Test a lost connection raises and starts reconnection."""
        await connection.connect()
        transport.request = AsyncMock(side_effect=BrokerConnectionError("socket closed"))

        with pytest.raises(RequestTransportError):
            await requester.send("payout.process", {})

        assert not connection.is_ready()
        assert connection.reconnecting

    @pytest.mark.asyncio
    async def test_transport_error(self, requester, connection, transport):
        """Test write failures raise RequestTransportError without dropping the connection."""
        await connection.connect()
        transport.request = AsyncMock(side_effect=TransportError("READONLY replica"))

        with pytest.raises(RequestTransportError):
            await requester.send("payout.process", {})

        assert connection.is_ready()

    @pytest.mark.asyncio
    async def test_no_retry(self, requester, connection, transport):
        """Test a timed out request is attempted exactly once."""
        await connection.connect()
        calls = []

        async def never_answers(pattern, data):
            calls.append(pattern)
            await asyncio.sleep(10)

        transport.request = never_answers

        with pytest.raises(RequestTimeoutError):
            await requester.send("payout.process", {}, timeout=0.05)

        assert calls == ["payout.process"]
