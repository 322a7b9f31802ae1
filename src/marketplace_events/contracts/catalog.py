"""
Marketplace Event Catalog

Every event pattern the marketplace services agree on, grouped by domain.
Pattern strings are stable once published: an incompatible payload change
gets a new pattern name, never an in-place edit.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from . import payloads as p
from .registry import ContractRegistry


class AuthEvents(str, Enum):
    USER_REGISTERED = "auth.user.registered"
    USER_LOGGED_IN = "auth.user.logged_in"
    USER_LOGGED_OUT = "auth.user.logged_out"
    PASSWORD_RESET = "auth.user.password_reset"
    TENANT_CREATED = "auth.tenant.created"


class UserEvents(str, Enum):
    CREATED = "user.user.created"
    UPDATED = "user.user.updated"
    DELETED = "user.user.deleted"
    ADDRESS_CHANGED = "user.address.changed"
    ROLE_CHANGED = "user.user.role_changed"


class ProductEvents(str, Enum):
    CREATED = "product.product.created"
    UPDATED = "product.product.updated"
    DELETED = "product.product.deleted"
    PRICE_CHANGED = "product.product.price_changed"
    STATUS_CHANGED = "product.product.status_changed"
    STOCK_CHANGED = "product.product.stock_changed"


class OrderEvents(str, Enum):
    CREATED = "order.order.created"
    STATUS_CHANGED = "order.order.status_changed"
    CANCELLED = "order.order.cancelled"
    COMPLETED = "order.order.completed"
    ITEM_RETURNED = "order.item.returned"
    RETURN_REQUESTED = "order.return.requested"
    RETURN_APPROVED = "order.return.approved"


class PaymentEvents(str, Enum):
    COMPLETED = "payment.payment.completed"
    FAILED = "payment.payment.failed"
    REFUND_ISSUED = "payment.refund.issued"
    PAYOUT_PROCESSED = "payment.payout.processed"


class InventoryEvents(str, Enum):
    RESERVED = "inventory.stock.reserved"
    RELEASED = "inventory.stock.released"
    STOCK_CHANGED = "inventory.stock.changed"
    LOW_STOCK = "inventory.stock.low"


class ShippingEvents(str, Enum):
    SHIPPED = "shipping.shipment.shipped"
    DELIVERED = "shipping.shipment.delivered"
    TRACKING_UPDATED = "shipping.shipment.tracking_updated"


class SellerEvents(str, Enum):
    APPROVED = "seller.seller.approved"
    SUSPENDED = "seller.seller.suspended"
    SUBMISSION_CREATED = "seller.submission.created"
    SUBMISSION_APPROVED = "seller.submission.approved"
    SUBMISSION_REJECTED = "seller.submission.rejected"
    REVIEW_CREATED = "seller.review.created"


class InfluencerEvents(str, Enum):
    REFERRAL_TRACKED = "influencer.referral.tracked"
    COMMISSION_EARNED = "influencer.commission.earned"
    PAYOUT_REQUESTED = "influencer.payout.requested"
    CAMPAIGN_STARTED = "influencer.campaign.started"


class NotificationEvents(str, Enum):
    SENT = "notification.notification.sent"
    READ = "notification.notification.read"
    EMAIL_QUEUED = "notification.email.queued"


class ContentEvents(str, Enum):
    CMS_PAGE_PUBLISHED = "content.cms.published"
    PROMOTION_CREATED = "content.promotion.created"
    PROMOTION_EXPIRED = "content.promotion.expired"


class AdminEvents(str, Enum):
    ACTIVITY_LOGGED = "admin.activity.logged"
    WEBHOOK_DISPATCHED = "admin.webhook.dispatched"


ALL_EVENT_GROUPS: tuple[type[Enum], ...] = (
    AuthEvents,
    UserEvents,
    ProductEvents,
    OrderEvents,
    PaymentEvents,
    InventoryEvents,
    ShippingEvents,
    SellerEvents,
    InfluencerEvents,
    NotificationEvents,
    ContentEvents,
    AdminEvents,
)

# Patterns with a pinned payload shape; the rest carry OpenPayload
PAYLOAD_MODELS: dict[Enum, type[BaseModel]] = {
    AuthEvents.USER_REGISTERED: p.UserRegisteredPayload,
    AuthEvents.USER_LOGGED_IN: p.UserLoggedInPayload,
    AuthEvents.TENANT_CREATED: p.TenantCreatedPayload,
    UserEvents.CREATED: p.UserCreatedPayload,
    UserEvents.UPDATED: p.UserUpdatedPayload,
    UserEvents.ADDRESS_CHANGED: p.UserAddressChangedPayload,
    ProductEvents.CREATED: p.ProductCreatedPayload,
    ProductEvents.UPDATED: p.ProductUpdatedPayload,
    ProductEvents.DELETED: p.ProductDeletedPayload,
    ProductEvents.PRICE_CHANGED: p.ProductPriceChangedPayload,
    OrderEvents.CREATED: p.OrderCreatedPayload,
    OrderEvents.STATUS_CHANGED: p.OrderStatusChangedPayload,
    OrderEvents.CANCELLED: p.OrderCancelledPayload,
    OrderEvents.RETURN_REQUESTED: p.ReturnRequestedPayload,
    PaymentEvents.COMPLETED: p.PaymentCompletedPayload,
    PaymentEvents.FAILED: p.PaymentFailedPayload,
    PaymentEvents.REFUND_ISSUED: p.RefundIssuedPayload,
    PaymentEvents.PAYOUT_PROCESSED: p.PayoutProcessedPayload,
    InventoryEvents.RESERVED: p.StockReservedPayload,
    InventoryEvents.STOCK_CHANGED: p.StockChangedPayload,
    ShippingEvents.SHIPPED: p.ShipmentShippedPayload,
    ShippingEvents.DELIVERED: p.ShipmentDeliveredPayload,
    SellerEvents.APPROVED: p.SellerApprovedPayload,
    SellerEvents.SUBMISSION_CREATED: p.SubmissionCreatedPayload,
    SellerEvents.REVIEW_CREATED: p.ReviewCreatedPayload,
    InfluencerEvents.REFERRAL_TRACKED: p.ReferralTrackedPayload,
    InfluencerEvents.COMMISSION_EARNED: p.CommissionEarnedPayload,
    NotificationEvents.SENT: p.NotificationSentPayload,
    ContentEvents.PROMOTION_CREATED: p.PromotionCreatedPayload,
    AdminEvents.ACTIVITY_LOGGED: p.ActivityLoggedPayload,
}


def register_marketplace_events(registry: ContractRegistry) -> ContractRegistry:
    """Register the full marketplace catalog into ``registry``."""
    for group in ALL_EVENT_GROUPS:
        for member in group:
            registry.register_pattern(member, PAYLOAD_MODELS.get(member, p.OpenPayload))
    return registry


def build_default_registry() -> ContractRegistry:
    return register_marketplace_events(ContractRegistry())


# Process-wide catalog, populated at import
EVENT_REGISTRY = build_default_registry()
