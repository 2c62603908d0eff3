"""Order Pydantic schemas for admin and customer endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.models.order import OrderStatus
from storefront.schemas.common import AddressSchema


class OrderItemSchema(BaseModel):
    """A line item frozen at checkout."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: str
    size: str
    color: str = ""
    sku: str | None = None
    quantity: int
    unit_price_cents: int


class StatusHistorySchema(BaseModel):
    """One entry of the status history."""

    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    timestamp: datetime
    note: str | None = None
    actor: str


class RefundSchema(BaseModel):
    """Refund recorded against an order."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Gateway refund id")
    amount_cents: int
    created_at: datetime


class CustomerInfoSchema(BaseModel):
    """Customer identity stored on the order."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str
    phone: str | None = None


class OrderResponse(BaseModel):
    """Full order projection for admins."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order id")
    order_number: str = Field(description="Human-readable order number")
    customer: CustomerInfoSchema
    shipping_address: AddressSchema
    items: list[OrderItemSchema]
    currency: str
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    total_cents: int
    tax_descriptor: str | None = None
    shipping_carrier: str
    shipping_service: str
    status: OrderStatus
    status_history: list[StatusHistorySchema]
    tracking_number: str | None = None
    payment_provider: str
    charge_id: str | None = None
    refund: RefundSchema | None = None
    fulfillment_steps: list[str] = Field(default_factory=list)
    version: int
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    """Page of orders, newest first."""

    orders: list[OrderResponse]
    limit: int
    offset: int


class OrderUpdateRequest(BaseModel):
    """Schema for PATCH /admin/orders/{id}."""

    status: OrderStatus | None = Field(default=None, description="New status")
    tracking_number: str | None = Field(default=None, description="Tracking number to record")
    note: str | None = Field(default=None, max_length=500, description="Note for the status history")


class CancelRequest(BaseModel):
    """Schema for cancelling an order."""

    reason: str | None = Field(default=None, max_length=500, description="Shown to the customer")


class CancellationResponse(BaseModel):
    """Outcome of a cancellation."""

    order: OrderResponse
    refund_id: str | None = Field(default=None, description="Gateway refund id, when the refund succeeded")
    refund_error: str | None = Field(default=None, description="Why the refund failed; retry later")
    email_sent: bool


class RefundRetryRequest(BaseModel):
    """Schema for retrying a refund."""

    note: str | None = Field(
        default=None,
        max_length=500,
        description="Logged with the retry. The gateway receives the original cancellation reason.",
    )


class ShipRequest(BaseModel):
    """Schema for shipping an order."""

    tracking_number: str = Field(description="Carrier tracking number")
    carrier: str | None = Field(default=None, description="Carrier actually used, if it differs from the quote")


class TrackOrderRequest(BaseModel):
    """Customer order lookup."""

    email: EmailStr = Field(description="Email used at checkout")
    identifier: str = Field(min_length=1, description="Order number or tracking number")


class TrackOrderResponse(BaseModel):
    """What a customer may see about their order."""

    model_config = ConfigDict(from_attributes=True)

    order_number: str
    status: OrderStatus
    status_history: list[StatusHistorySchema]
    items: list[OrderItemSchema]
    currency: str
    total_cents: int
    shipping_carrier: str
    shipping_service: str
    tracking_number: str | None = None
    created_at: datetime
