"""Inventory model type definitions for database operations."""

from typing import NamedTuple, TypedDict


class VariantKey(NamedTuple):
    """A (product, size, color) combination with its own stock count.

    Size-only products are the degenerate case with an empty color.
    """

    product_id: str
    size: str
    color: str = ""

    @classmethod
    def of(cls, product_id: str, size: str, color: str | None = None) -> "VariantKey":
        """Normalize raw request values into a key."""
        return cls(str(product_id), size.strip(), (color or "").strip())

    def describe(self) -> str:
        """Short human label used in error messages."""
        if self.color:
            return f"{self.product_id} (size {self.size}, color {self.color})"
        return f"{self.product_id} (size {self.size})"


class InventoryEntry(TypedDict):
    """Inventory table row representation."""

    product_id: str
    size: str
    color: str
    sku: str | None
    stock_quantity: int


class PhysicalSale(TypedDict):
    """Physical sales table row, one per in-person sale line."""

    product_id: str
    product_name: str
    size: str
    color: str
    quantity: int
    unit_price_cents: int
    total_cents: int
    sold_by: str | None


class Product(TypedDict):
    """Subset of the catalog product row the checkout needs."""

    id: str
    name: str
    price_cents: int
    active: bool
