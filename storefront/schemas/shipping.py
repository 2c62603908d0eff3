"""Shipping quote and tax schemas."""

from pydantic import BaseModel, ConfigDict, Field

from storefront.schemas.common import AddressSchema


class QuoteItemSchema(BaseModel):
    """Cart line as far as shipping is concerned."""

    quantity: int = Field(ge=0, description="Units of this line")
    weight_lb: float | None = Field(default=None, gt=0, description="Per-unit weight, defaults to 1 lb")


class ShippingQuoteRequest(BaseModel):
    """Schema for POST /shipping/quote."""

    address: AddressSchema
    items: list[QuoteItemSchema] = Field(default_factory=list)


class ShippingOptionSchema(BaseModel):
    """One carrier service the customer can pick."""

    model_config = ConfigDict(from_attributes=True)

    carrier: str
    service: str
    service_name: str
    cost_cents: int = Field(description="Cost in the destination currency")
    currency: str
    estimated_days_min: int
    estimated_days_max: int


class ShippingQuoteResponse(BaseModel):
    """Options cheapest first. Empty with a reason when nothing can be quoted."""

    options: list[ShippingOptionSchema] = Field(default_factory=list)
    default_option: ShippingOptionSchema | None = Field(default=None, description="Preselected cheapest option")
    reason: str | None = Field(
        default=None,
        description="incomplete_address, empty_cart or unsupported_destination",
    )


class TaxCalculateRequest(BaseModel):
    """Schema for POST /tax/calculate. Amounts are in the destination currency."""

    subtotal_cents: int = Field(ge=0)
    shipping_cents: int = Field(default=0, ge=0)
    country: str = Field(min_length=2, max_length=2)
    state: str | None = None


class TaxResponse(BaseModel):
    """Tax owed on subtotal plus shipping."""

    tax_cents: int
    currency: str
    rate_descriptor: str | None = Field(default=None, description="e.g. HST (13%)")
    rate_percent: float
