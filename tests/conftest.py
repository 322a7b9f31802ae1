"""
Global pytest configuration and fixtures for event bus testing.

Behaviour tests run against the in-memory broker; the Redis transport is
covered with a mocked ``redis.asyncio`` client in its own module.
"""

import logging
import uuid
from typing import Any

import pytest
import pytest_asyncio

from marketplace_events.config import EventBusSettings
from marketplace_events.connection import ConnectionManager, ReconnectPolicy
from marketplace_events.contracts.payloads import OrderCreatedPayload, OrderItem
from marketplace_events.identity import ServiceIdentity
from marketplace_events.observability.logging import LIBRARY_LOGGER_NAME
from marketplace_events.observability.metrics import EventBusMetrics
from marketplace_events.publisher import EventPublisher
from marketplace_events.requester import ServiceRequester
from marketplace_events.transport.memory import InMemoryBroker, InMemoryTransport

TEST_SERVICE_NAME = "order-service"
TEST_REDIS_URL = "redis://localhost:6379/15"

# Short delays so reconnect scenarios finish quickly
FAST_RETRY_DELAY = 0.01


@pytest.fixture(autouse=True)
def restore_library_logger():
    """Undo handler changes made by configure_logging() so caplog keeps working."""
    library_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    handlers = list(library_logger.handlers)
    level = library_logger.level
    propagate = library_logger.propagate
    yield
    library_logger.handlers[:] = handlers
    library_logger.setLevel(level)
    library_logger.propagate = propagate


@pytest.fixture
def test_settings() -> EventBusSettings:
    """Provide settings isolated from the environment and any .env file."""
    return EventBusSettings(
        _env_file=None,
        service_name=TEST_SERVICE_NAME,
        redis_url=TEST_REDIS_URL,
        retry_attempts=5,
        retry_delay=FAST_RETRY_DELAY,
        health_check_interval=0,
        request_timeout=1.0,
    )


@pytest.fixture
def identity() -> ServiceIdentity:
    return ServiceIdentity(service_name=TEST_SERVICE_NAME, broker_url=TEST_REDIS_URL)


@pytest.fixture
def metrics() -> EventBusMetrics:
    return EventBusMetrics(TEST_SERVICE_NAME)


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def transport(broker) -> InMemoryTransport:
    return InMemoryTransport(broker)


@pytest_asyncio.fixture
async def connection(transport, metrics):
    """Provide a connection manager with fast retries; closed after the test."""
    manager = ConnectionManager(
        transport,
        ReconnectPolicy(max_attempts=5, delay=FAST_RETRY_DELAY),
        health_check_interval=0,
        metrics=metrics,
        name=TEST_SERVICE_NAME,
    )
    yield manager
    await manager.close()


@pytest.fixture
def publisher(connection, identity, metrics) -> EventPublisher:
    return EventPublisher(connection, identity, metrics=metrics)


@pytest.fixture
def requester(connection, metrics) -> ServiceRequester:
    return ServiceRequester(connection, default_timeout=1.0, metrics=metrics)


@pytest.fixture
def test_correlation_id() -> str:
    """Generate a unique correlation ID for tracing."""
    return f"corr-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def order_payload() -> OrderCreatedPayload:
    """Provide a valid order.order.created payload."""
    return OrderCreatedPayload(
        order_id="ord-1001",
        order_number="MP-1001",
        user_id="usr-42",
        user_email="buyer@example.com",
        seller_id="sel-7",
        items=[OrderItem(product_id="prd-1", product_name="Lamp", quantity=2, price=19.5)],
        total=39.0,
        currency="EUR",
    )


@pytest.fixture
def order_payload_wire() -> dict[str, Any]:
    """The order payload as it appears on the wire."""
    return {
        "orderId": "ord-1001",
        "orderNumber": "MP-1001",
        "userId": "usr-42",
        "userEmail": "buyer@example.com",
        "sellerId": "sel-7",
        "items": [{"productId": "prd-1", "productName": "Lamp", "quantity": 2, "price": 19.5}],
        "total": 39.0,
        "currency": "EUR",
    }
