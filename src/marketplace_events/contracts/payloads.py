"""
Event Payload Models

One model per event pattern. Attribute names are snake_case in Python and
camelCase on the wire, matching the payloads produced by the Node services.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventPayload(BaseModel):
    """Base class for typed event payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class OpenPayload(EventPayload):
    """Payload for patterns whose shape is not pinned down yet; accepts any fields."""

    model_config = ConfigDict(extra="allow")


# Auth

class UserRegisteredPayload(EventPayload):
    user_id: str
    email: str
    role: str
    first_name: str | None = None
    last_name: str | None = None


class UserLoggedInPayload(EventPayload):
    user_id: str
    email: str
    ip_address: str | None = None
    user_agent: str | None = None


class TenantCreatedPayload(EventPayload):
    tenant_id: str
    name: str
    subdomain: str
    domain: str | None = None


# User

class UserCreatedPayload(EventPayload):
    user_id: str
    email: str
    role: str


class UserUpdatedPayload(EventPayload):
    user_id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class UserAddressChangedPayload(EventPayload):
    user_id: str
    address_id: str
    action: Literal["created", "updated", "deleted"]


# Product

class ProductCreatedPayload(EventPayload):
    product_id: str
    seller_id: str
    name: str
    slug: str
    price: float
    currency: str
    status: str


class ProductUpdatedPayload(EventPayload):
    product_id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class ProductDeletedPayload(EventPayload):
    product_id: str
    seller_id: str


class ProductPriceChangedPayload(EventPayload):
    product_id: str
    old_price: float
    new_price: float
    currency: str


# Order

class OrderItem(EventPayload):
    product_id: str
    product_name: str | None = None
    quantity: int = Field(ge=1)
    price: float


class OrderCreatedPayload(EventPayload):
    order_id: str
    order_number: str
    user_id: str
    user_email: str
    seller_id: str
    items: list[OrderItem]
    total: float
    currency: str


class OrderStatusChangedPayload(EventPayload):
    order_id: str
    order_number: str
    old_status: str
    new_status: str
    user_id: str


class OrderCancelledPayload(EventPayload):
    order_id: str
    order_number: str
    user_id: str
    reason: str | None = None


class ReturnItem(EventPayload):
    product_id: str
    quantity: int = Field(ge=1)
    reason: str


class ReturnRequestedPayload(EventPayload):
    return_id: str
    order_id: str
    user_id: str
    items: list[ReturnItem]


# Payment

class PaymentCompletedPayload(EventPayload):
    payment_id: str
    order_id: str
    user_id: str
    amount: float
    currency: str
    provider: str


class PaymentFailedPayload(EventPayload):
    payment_id: str
    order_id: str
    user_id: str
    amount: float
    currency: str
    reason: str


class RefundIssuedPayload(EventPayload):
    refund_id: str
    payment_id: str
    order_id: str
    amount: float
    currency: str


class PayoutProcessedPayload(EventPayload):
    payout_id: str
    seller_id: str
    amount: float
    currency: str


# Inventory and shipping

class StockReservedPayload(EventPayload):
    product_id: str
    quantity: int
    order_id: str
    warehouse_id: str | None = None


class StockChangedPayload(EventPayload):
    product_id: str
    warehouse_id: str | None = None
    previous_quantity: int
    new_quantity: int
    reason: str


class ShipmentShippedPayload(EventPayload):
    shipment_id: str
    order_id: str
    tracking_number: str
    carrier: str


class ShipmentDeliveredPayload(EventPayload):
    shipment_id: str
    order_id: str
    delivered_at: str


# Seller

class SellerApprovedPayload(EventPayload):
    seller_id: str
    user_id: str
    store_name: str


class SubmissionCreatedPayload(EventPayload):
    submission_id: str
    seller_id: str
    product_name: str


class ReviewCreatedPayload(EventPayload):
    review_id: str
    product_id: str
    user_id: str
    rating: int = Field(ge=1, le=5)


# Influencer

class ReferralTrackedPayload(EventPayload):
    referral_id: str
    influencer_id: str
    order_id: str
    amount: float


class CommissionEarnedPayload(EventPayload):
    commission_id: str
    influencer_id: str
    order_id: str
    amount: float
    currency: str


# Notification

class NotificationSentPayload(EventPayload):
    notification_id: str
    user_id: str
    type: str
    channel: Literal["in_app", "email", "push", "whatsapp"]


# Content and marketing

class PromotionCreatedPayload(EventPayload):
    promotion_id: str
    code: str | None = None
    discount_type: str
    discount_value: float
    starts_at: str
    expires_at: str | None = None


# Admin

class ActivityLoggedPayload(EventPayload):
    activity_id: str
    user_id: str
    action: str
    resource: str
    resource_id: str
    metadata: dict[str, Any] | None = None
