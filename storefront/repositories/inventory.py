"""Stock storage with atomic conditional decrement and increment.

Two backends share one contract: Supabase, where the conditional update runs
inside Postgres functions (see supabase/migrations), and an in-memory store
guarded by a lock for local runs and tests. Neither exposes a read-then-write
path for stock changes.
"""

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any

from supabase import Client

from storefront.models.inventory import InventoryEntry, PhysicalSale, Product, VariantKey

logger = logging.getLogger(__name__)


class InventoryStore(ABC):
    """Storage contract for per-variant stock."""

    @abstractmethod
    def decrement_if_available(self, key: VariantKey, quantity: int) -> int | None:
        """Subtract quantity only if stock >= quantity, as one operation.

        Returns:
            int | None: New stock, or None when the condition did not match
            (including an unknown variant).
        """

    @abstractmethod
    def increment(self, key: VariantKey, quantity: int) -> int | None:
        """Add quantity back. Returns new stock, or None for an unknown variant."""

    @abstractmethod
    def get_entry(self, key: VariantKey) -> InventoryEntry | None:
        """Read a single variant."""

    @abstractmethod
    def list_entries(self, product_id: str) -> list[InventoryEntry]:
        """Read every variant of a product."""

    @abstractmethod
    def get_product(self, product_id: str) -> Product | None:
        """Read the catalog fields the checkout relies on."""

    @abstractmethod
    def record_physical_sale(self, sale: PhysicalSale) -> None:
        """Append an in-person sale record."""


class SupabaseInventoryStore(InventoryStore):
    """Inventory backed by the Supabase inventory table and RPC functions."""

    def __init__(self, client: Client) -> None:
        self.client = client

    @staticmethod
    def _rpc_params(key: VariantKey, quantity: int) -> dict[str, Any]:
        return {
            "p_product_id": key.product_id,
            "p_size": key.size,
            "p_color": key.color,
            "p_quantity": quantity,
        }

    def decrement_if_available(self, key: VariantKey, quantity: int) -> int | None:
        response = self.client.rpc("decrement_stock_if_available", self._rpc_params(key, quantity)).execute()
        return response.data if response.data is not None else None

    def increment(self, key: VariantKey, quantity: int) -> int | None:
        response = self.client.rpc("increment_stock", self._rpc_params(key, quantity)).execute()
        return response.data if response.data is not None else None

    def get_entry(self, key: VariantKey) -> InventoryEntry | None:
        response = (
            self.client.table("inventory")
            .select("product_id, size, color, sku, stock_quantity")
            .eq("product_id", key.product_id)
            .eq("size", key.size)
            .eq("color", key.color)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def list_entries(self, product_id: str) -> list[InventoryEntry]:
        response = (
            self.client.table("inventory")
            .select("product_id, size, color, sku, stock_quantity")
            .eq("product_id", product_id)
            .order("size")
            .execute()
        )
        return response.data or []

    def get_product(self, product_id: str) -> Product | None:
        response = (
            self.client.table("products")
            .select("id, name, price_cents, active")
            .eq("id", product_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def record_physical_sale(self, sale: PhysicalSale) -> None:
        self.client.table("physical_sales").insert(dict(sale)).execute()


class InMemoryInventoryStore(InventoryStore):
    """Thread-safe in-memory inventory.

    The lock makes each check-and-decrement indivisible, mirroring the
    conditional UPDATE the Supabase backend runs.
    """

    def __init__(self) -> None:
        self._stock: dict[VariantKey, InventoryEntry] = {}
        self._products: dict[str, Product] = {}
        self._lock = Lock()
        self.physical_sales: list[PhysicalSale] = []

    def add_product(self, product_id: str, name: str, price_cents: int, active: bool = True) -> None:
        """Register a catalog product."""
        self._products[product_id] = {
            "id": product_id,
            "name": name,
            "price_cents": price_cents,
            "active": active,
        }

    def set_stock(self, key: VariantKey, quantity: int, sku: str | None = None) -> None:
        """Create or overwrite a variant row (catalog authoring)."""
        if quantity < 0:
            raise ValueError("Stock cannot be negative")
        with self._lock:
            self._stock[key] = {
                "product_id": key.product_id,
                "size": key.size,
                "color": key.color,
                "sku": sku,
                "stock_quantity": quantity,
            }

    def decrement_if_available(self, key: VariantKey, quantity: int) -> int | None:
        with self._lock:
            entry = self._stock.get(key)
            if entry is None or entry["stock_quantity"] < quantity:
                return None
            entry["stock_quantity"] -= quantity
            return entry["stock_quantity"]

    def increment(self, key: VariantKey, quantity: int) -> int | None:
        with self._lock:
            entry = self._stock.get(key)
            if entry is None:
                return None
            entry["stock_quantity"] += quantity
            return entry["stock_quantity"]

    def get_entry(self, key: VariantKey) -> InventoryEntry | None:
        with self._lock:
            entry = self._stock.get(key)
            return dict(entry) if entry else None

    def list_entries(self, product_id: str) -> list[InventoryEntry]:
        with self._lock:
            return [dict(entry) for key, entry in self._stock.items() if key.product_id == product_id]

    def get_product(self, product_id: str) -> Product | None:
        product = self._products.get(product_id)
        return dict(product) if product else None

    def record_physical_sale(self, sale: PhysicalSale) -> None:
        self.physical_sales.append(sale)
