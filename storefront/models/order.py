"""Order model type definitions for database operations."""

from datetime import datetime, timezone
from enum import Enum
from typing import TypedDict


class OrderStatus(str, Enum):
    """Order status values matching the database enum."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Every permitted status change. Anything not listed is rejected.
ALLOWED_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset(
    {
        (OrderStatus.PENDING, OrderStatus.PROCESSING),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    }
)


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    """Check whether the transition table allows current -> target."""
    return (OrderStatus(current), OrderStatus(target)) in ALLOWED_TRANSITIONS


class FulfillmentStep(str, Enum):
    """Warehouse checklist steps, in the order they must be completed."""

    VERIFY = "verify"
    PREPARE = "prepare"
    PACKAGE = "package"
    SHIP = "ship"


FULFILLMENT_SEQUENCE: tuple[FulfillmentStep, ...] = (
    FulfillmentStep.VERIFY,
    FulfillmentStep.PREPARE,
    FulfillmentStep.PACKAGE,
    FulfillmentStep.SHIP,
)


class CustomerInfo(TypedDict):
    """Customer identity captured at checkout."""

    name: str
    email: str
    phone: str | None


class ShippingAddress(TypedDict):
    """Destination address stored on the order."""

    street: str
    city: str
    state: str
    zip: str
    country: str


class OrderItem(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the items JSONB array. The unit price is frozen
    at checkout and never recomputed from the catalog.
    """

    product_id: str
    product_name: str
    size: str
    color: str
    sku: str | None
    quantity: int
    unit_price_cents: int


class StatusHistoryEntry(TypedDict):
    """One append-only entry of the status history."""

    status: str
    timestamp: str
    note: str | None
    actor: str


class RefundRecord(TypedDict):
    """Refund issued by the payment gateway for an order."""

    id: str
    amount_cents: int
    created_at: str


class Order(TypedDict):
    """Order table row representation.

    Maps directly to the orders table schema.
    """

    id: str
    order_number: str
    customer: CustomerInfo
    shipping_address: ShippingAddress
    items: list[OrderItem]
    currency: str
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    total_cents: int
    tax_descriptor: str | None
    shipping_carrier: str
    shipping_service: str
    status: str
    status_history: list[StatusHistoryEntry]
    tracking_number: str | None
    payment_provider: str
    charge_id: str | None
    checkout_attempt_id: str | None
    refund: RefundRecord | None
    fulfillment_steps: list[str]
    version: int
    created_at: str
    updated_at: str


def utc_now_iso() -> str:
    """Current UTC time in ISO-8601 form, as stored in timestamp columns."""
    return datetime.now(timezone.utc).isoformat()


def history_entry(status: OrderStatus | str, actor: str, note: str | None = None) -> StatusHistoryEntry:
    """Build a status history entry stamped with the current time."""
    return {
        "status": OrderStatus(status).value,
        "timestamp": utc_now_iso(),
        "note": note,
        "actor": actor,
    }
