"""Inventory and in-person sale schemas."""

from pydantic import BaseModel, ConfigDict, Field


class InventoryEntrySchema(BaseModel):
    """Stock for one variant."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    size: str
    color: str = ""
    sku: str | None = None
    stock_quantity: int


class InventoryResponse(BaseModel):
    """Every variant of a product."""

    product_id: str
    entries: list[InventoryEntrySchema]


class PhysicalSaleLine(BaseModel):
    """Units of one size sold in person."""

    size: str = Field(min_length=1)
    quantity: int = Field(description="Units sold, at least 1")


class PhysicalSaleRequest(BaseModel):
    """Schema for POST /admin/products/{id}/physical-sale."""

    items: list[PhysicalSaleLine] = Field(default_factory=list)
    color: str | None = Field(default=None, description="Color shared by every line")


class PhysicalSaleItem(BaseModel):
    """Stock left after the sale for one variant."""

    size: str
    color: str = ""
    quantity: int
    remaining_stock: int


class PhysicalSaleResponse(BaseModel):
    """Result of an in-person sale."""

    product_id: str
    product_name: str
    items: list[PhysicalSaleItem]
    total_quantity: int
    total_amount_cents: int
