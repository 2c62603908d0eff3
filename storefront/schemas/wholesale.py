"""Wholesale quote schemas."""

from pydantic import BaseModel, Field


class WholesaleLineSchema(BaseModel):
    """Requested units of one variant."""

    product_id: str = Field(min_length=1)
    size: str = ""
    color: str | None = None
    quantity: int


class WholesaleQuoteRequest(BaseModel):
    """Schema for POST /wholesale/quote."""

    items: list[WholesaleLineSchema] = Field(default_factory=list)


class WholesaleQuotedLine(BaseModel):
    """A line priced at the catalog unit price."""

    product_id: str
    product_name: str
    size: str
    color: str = ""
    quantity: int
    unit_price_cents: int
    line_total_cents: int


class WholesaleQuoteResponse(BaseModel):
    """Priced wholesale request, USD cents."""

    items: list[WholesaleQuotedLine]
    total_quantity: int
    subtotal_cents: int
    discount_percent: int = Field(description="30, 40 or 50")
    discount_cents: int
    total_cents: int
