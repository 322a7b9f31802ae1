"""
Tests for the contract registry and the marketplace catalog.
"""

import pytest
from pydantic import BaseModel

from marketplace_events.contracts import (
    ALL_EVENT_GROUPS,
    EVENT_REGISTRY,
    ContractRegistry,
    EventPayload,
    OpenPayload,
    OrderEvents,
    PaymentEvents,
    build_default_registry,
    build_envelope,
    register_marketplace_events,
    validate_pattern_name,
)
from marketplace_events.contracts.payloads import OrderCreatedPayload, PaymentCompletedPayload
from marketplace_events.exceptions import (
    InvalidPatternError,
    PatternConflictError,
    PayloadValidationError,
    UnknownPatternError,
)


class WidgetCreated(EventPayload):
    widget_id: str
    name: str


class WidgetCreatedCopy(EventPayload):
    """Same shape, different class."""

    widget_id: str
    name: str


class WidgetCreatedV2(EventPayload):
    widget_id: str
    label: str


@pytest.mark.unit
class TestPatternNames:
    """Test the {domain}.{entity}.{action} convention."""

    @pytest.mark.parametrize(
        "pattern",
        ["order.order.created", "auth.user.logged_in", "payment.payout.processed"],
    )
    def test_valid_names(self, pattern):
        """Test conventional names are accepted."""
        assert validate_pattern_name(pattern) == pattern

    @pytest.mark.parametrize(
        "pattern",
        ["order.created", "Order.Order.Created", "order.order.created.v2", "", "order..created"],
    )
    def test_invalid_names(self, pattern):
        """Test malformed names are refused."""
        with pytest.raises(InvalidPatternError):
            validate_pattern_name(pattern)


@pytest.mark.unit
class TestContractRegistry:
    """Test registration and lookup."""

    def test_register_and_get(self):
        """Test a registered pattern can be looked up."""
        registry = ContractRegistry()
        registry.register_pattern("catalog.widget.created", WidgetCreated, "A widget was created")

        contract = registry.get("catalog.widget.created")

        assert contract.payload_model is WidgetCreated
        assert contract.domain == "catalog"
        assert contract.description == "A widget was created"
        assert "catalog.widget.created" in registry
        assert len(registry) == 1

    def test_same_shape_is_idempotent(self):
        """Test registering the same shape twice is a no-op."""
        registry = ContractRegistry()
        first = registry.register_pattern("catalog.widget.created", WidgetCreated)

        assert registry.register_pattern("catalog.widget.created", WidgetCreated) is first
        assert registry.register_pattern("catalog.widget.created", WidgetCreatedCopy) is first
        assert len(registry) == 1

    def test_different_shape_conflicts(self):
        """Test a pattern cannot be reused for a different payload shape."""
        registry = ContractRegistry()
        registry.register_pattern("catalog.widget.created", WidgetCreated)

        with pytest.raises(PatternConflictError) as exc_info:
            registry.register_pattern("catalog.widget.created", WidgetCreatedV2)

        assert exc_info.value.pattern == "catalog.widget.created"
        assert registry.get("catalog.widget.created").payload_model is WidgetCreated

    def test_invalid_pattern_not_registered(self):
        """Test naming violations fail registration."""
        registry = ContractRegistry()
        with pytest.raises(InvalidPatternError):
            registry.register_pattern("widget-created", WidgetCreated)
        assert len(registry) == 0

    def test_payload_model_must_be_pydantic(self):
        """Test only pydantic model classes can be registered."""
        registry = ContractRegistry()
        with pytest.raises(TypeError):
            registry.register_pattern("catalog.widget.created", dict)

    def test_contract_decorator(self):
        """Test the decorator form registers the model with its docstring."""
        registry = ContractRegistry()

        @registry.contract("catalog.widget.archived")
        class WidgetArchived(EventPayload):
            """Widget moved to the archive."""

            widget_id: str

        assert registry.get("catalog.widget.archived").payload_model is WidgetArchived
        assert registry.get("catalog.widget.archived").description == "Widget moved to the archive."

    def test_unknown_pattern(self):
        """Test lookups of unregistered patterns raise."""
        with pytest.raises(UnknownPatternError):
            ContractRegistry().get("catalog.widget.created")

    def test_patterns_by_domain(self):
        """Test listing patterns filtered by domain."""
        registry = ContractRegistry()
        registry.register_pattern("catalog.widget.created", WidgetCreated)
        registry.register_pattern("billing.invoice.created", OpenPayload)

        assert registry.patterns() == ["billing.invoice.created", "catalog.widget.created"]
        assert registry.patterns("catalog") == ["catalog.widget.created"]
        assert registry.domains() == ["billing", "catalog"]
        assert [contract.pattern for contract in registry] == registry.patterns()

    def test_validate_payload(self):
        """Test payload validation returns the wire form."""
        registry = ContractRegistry()
        registry.register_pattern("catalog.widget.created", WidgetCreated)

        assert registry.validate_payload("catalog.widget.created", {"widgetId": "w-1", "name": "Cog"}) == {
            "widgetId": "w-1",
            "name": "Cog",
        }
        with pytest.raises(PayloadValidationError):
            registry.validate_payload("catalog.widget.created", {"widgetId": "w-1", "colour": "red"})

    def test_parse_payload(self, order_payload):
        """Test consumers get typed payloads from envelopes."""
        envelope = build_envelope(OrderEvents.CREATED, order_payload, "order-service")

        parsed = EVENT_REGISTRY.parse_payload(envelope)

        assert isinstance(parsed, OrderCreatedPayload)
        assert parsed.order_id == "ord-1001"


@pytest.mark.unit
class TestMarketplaceCatalog:
    """Test the default marketplace catalog."""

    def test_every_catalog_member_registered(self):
        """Test all enum groups end up in the default registry."""
        members = [member for group in ALL_EVENT_GROUPS for member in group]

        assert all(member in EVENT_REGISTRY for member in members)
        assert len(EVENT_REGISTRY) == len({member.value for member in members})

    def test_pattern_strings_unique(self):
        """Test no pattern string is shared by two catalog entries."""
        values = [member.value for group in ALL_EVENT_GROUPS for member in group]
        assert len(values) == len(set(values))

    def test_known_payload_models(self):
        """Test pinned payload shapes."""
        assert EVENT_REGISTRY.get(OrderEvents.CREATED).payload_model is OrderCreatedPayload
        assert EVENT_REGISTRY.get(PaymentEvents.COMPLETED).payload_model is PaymentCompletedPayload
        assert EVENT_REGISTRY.get(OrderEvents.COMPLETED).payload_model is OpenPayload

    def test_open_payload_accepts_any_fields(self):
        """Test patterns without a pinned shape accept arbitrary payloads."""
        payload = EVENT_REGISTRY.validate_payload(OrderEvents.COMPLETED, {"orderId": "o-1", "anything": 1})
        assert payload == {"orderId": "o-1", "anything": 1}

    def test_catalog_registration_is_repeatable(self):
        """Test re-registering the catalog into a populated registry is a no-op."""
        registry = build_default_registry()
        size = len(registry)

        register_marketplace_events(registry)
        assert len(registry) == size

    def test_all_payload_models_are_pydantic(self):
        """Test every registered payload model is a pydantic model."""
        assert all(issubclass(contract.payload_model, BaseModel) for contract in EVENT_REGISTRY)
