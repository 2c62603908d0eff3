"""Checkout Pydantic schemas for API request/response models."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.schemas.common import AddressSchema


class CustomerSchema(BaseModel):
    """Customer identity for the order."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(min_length=1, description="Customer full name")
    email: EmailStr = Field(description="Email for confirmation and tracking")
    phone: str | None = Field(default=None, description="Contact phone")


class CartItemSchema(BaseModel):
    """A cart line as submitted by the client."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(min_length=1, description="Product identifier")
    size: str = Field(min_length=1, description="Size of the variant")
    color: str | None = Field(default=None, description="Color of the variant, omitted for size-only products")
    quantity: int = Field(description="Units ordered")
    unit_price_cents: int | None = Field(
        default=None,
        description="Price the client displayed, in order currency minor units; checked against the catalog",
    )


class ShippingSelectionSchema(BaseModel):
    """Carrier service the customer picked from a quote."""

    model_config = ConfigDict(from_attributes=True)

    carrier: str = Field(description="Carrier name, e.g. USPS")
    service: str = Field(description="Service code, e.g. usps_priority")


class CheckoutRequest(BaseModel):
    """Schema for POST /checkout.

    The money fields are the totals the customer was shown. The server
    recomputes every figure and rejects the request if any differ.
    """

    model_config = ConfigDict(from_attributes=True)

    checkout_attempt_id: str | None = Field(
        default=None,
        max_length=36,
        description="Client-generated id reused on retries so the charge is never duplicated",
    )
    customer: CustomerSchema
    shipping_address: AddressSchema
    items: list[CartItemSchema] = Field(default_factory=list)
    shipping_option: ShippingSelectionSchema | None = None
    payment_token: str = Field(min_length=1, description="Tokenized payment method from the provider SDK")
    subtotal_cents: int = Field(description="Displayed subtotal")
    shipping_cents: int = Field(description="Displayed shipping cost")
    tax_cents: int = Field(description="Displayed tax")
    total_cents: int = Field(description="Displayed total")


class CheckoutResponse(BaseModel):
    """Schema for a completed checkout."""

    model_config = ConfigDict(from_attributes=True)

    order_id: str = Field(description="Created order id")
    order_number: str = Field(description="Human-readable order number")
    status: str = Field(description="Order status")
    currency: str = Field(description="Currency charged")
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    total_cents: int
    confirmation_sent: bool = Field(description="Whether the confirmation email went out")


class PaymentConfigResponse(BaseModel):
    """Public values the browser needs to tokenize a card."""

    provider: str = Field(description="Active payment provider")
    publishable_key: str | None = Field(default=None, description="Stripe publishable key")
    application_id: str | None = Field(default=None, description="Square application id")
    location_id: str | None = Field(default=None, description="Square location id")
    environment: str | None = Field(default=None, description="Square environment")
