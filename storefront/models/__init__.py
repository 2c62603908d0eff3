"""Database model type definitions.

TypedDict and enum definitions describing rows stored in Supabase.
"""

from storefront.models.inventory import InventoryEntry, PhysicalSale, Product, VariantKey
from storefront.models.order import (
    ALLOWED_TRANSITIONS,
    FULFILLMENT_SEQUENCE,
    CustomerInfo,
    FulfillmentStep,
    Order,
    OrderItem,
    OrderStatus,
    RefundRecord,
    ShippingAddress,
    StatusHistoryEntry,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "FULFILLMENT_SEQUENCE",
    "CustomerInfo",
    "FulfillmentStep",
    "InventoryEntry",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PhysicalSale",
    "Product",
    "RefundRecord",
    "ShippingAddress",
    "StatusHistoryEntry",
    "VariantKey",
]
