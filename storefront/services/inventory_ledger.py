"""Inventory ledger: the only path that changes stock.

Decrements are conditional at the storage layer, so two buyers racing for
the last unit can never both succeed. Releases are plain increments; making
them happen once per cancellation is the order lifecycle's job.
"""

import logging
from collections import OrderedDict
from typing import Any, NamedTuple

from storefront.core.errors import InventoryUnavailableError, NotFoundError, ValidationError
from storefront.core.storage import get_inventory_store
from storefront.models.inventory import InventoryEntry, VariantKey
from storefront.repositories.inventory import InventoryStore

logger = logging.getLogger(__name__)


class StockLine(NamedTuple):
    """A quantity of one variant."""

    key: VariantKey
    quantity: int


def _unavailable_detail(index: int, line: StockLine, available: int | None) -> dict[str, Any]:
    msg = (
        f"Only {available} left of {line.key.describe()}"
        if available
        else f"{line.key.describe()} is out of stock"
    )
    return {"loc": ["items", str(index), "quantity"], "msg": msg, "type": "inventory_unavailable"}


class InventoryLedger:
    """Service for atomic stock reservation, release and admin adjustments."""

    def __init__(self, store: InventoryStore | None = None) -> None:
        """Initialize the ledger.

        Args:
            store: Optional inventory store for testing.
        """
        self.store = store or get_inventory_store()

    async def reserve_and_decrement(self, key: VariantKey, quantity: int) -> int:
        """Take quantity out of stock if, and only if, that much is available.

        Returns:
            int: Stock remaining after the decrement.

        Raises:
            ValidationError: If quantity is not a positive integer.
            InventoryUnavailableError: If stock is insufficient or the variant is unknown.
        """
        if quantity <= 0:
            raise ValidationError.for_field(["quantity"], "Quantity must be at least 1")

        new_stock = self.store.decrement_if_available(key, quantity)
        if new_stock is None:
            entry = self.store.get_entry(key)
            available = entry["stock_quantity"] if entry else None
            logger.info("Reservation refused for %s x%d (available: %s)", key.describe(), quantity, available)
            raise InventoryUnavailableError(
                message=f"Insufficient stock for {key.describe()}",
                details=[_unavailable_detail(0, StockLine(key, quantity), available)],
            )

        logger.debug("Reserved %s x%d, %d left", key.describe(), quantity, new_stock)
        return new_stock

    async def release(self, key: VariantKey, quantity: int) -> int | None:
        """Return quantity to stock.

        Returns:
            int | None: New stock, or None if the variant no longer exists.
        """
        new_stock = self.store.increment(key, quantity)
        if new_stock is None:
            logger.warning("Could not release %s x%d: variant not found", key.describe(), quantity)
        return new_stock

    async def reserve_batch(self, lines: list[StockLine]) -> None:
        """Reserve every line or none of them.

        On the first line that cannot be reserved, every line reserved so far
        in this batch is released and InventoryUnavailableError is raised.
        """
        reserved: list[StockLine] = []
        for index, line in enumerate(lines):
            try:
                await self.reserve_and_decrement(line.key, line.quantity)
            except InventoryUnavailableError as e:
                await self.release_all(reserved)
                for detail in e.details or []:
                    detail["loc"] = ["items", str(index), "quantity"]
                raise
            reserved.append(line)

    async def release_all(self, lines: list[StockLine]) -> None:
        """Release each line, continuing past individual failures."""
        for line in lines:
            try:
                await self.release(line.key, line.quantity)
            except Exception as e:
                logger.error("Failed to release %s x%d: %s", line.key.describe(), line.quantity, str(e))

    async def get_stock(self, product_id: str) -> list[InventoryEntry]:
        """List every variant of a product with its stock.

        Raises:
            NotFoundError: If the product does not exist.
        """
        if self.store.get_product(product_id) is None:
            raise NotFoundError(f"Product {product_id} not found")
        return self.store.list_entries(product_id)

    async def adjust(
        self,
        product_id: str,
        lines: list[tuple[str, int]],
        color: str | None = None,
        sold_by: str | None = None,
    ) -> dict[str, Any]:
        """Record an in-person sale and deduct its stock.

        Every size is checked against its own current stock before anything
        is applied. Lines repeating a size are combined first. If a concurrent
        checkout takes the stock between the check and the decrement, lines
        already applied are rolled back.

        Args:
            product_id: Product sold.
            lines: (size, quantity) pairs.
            color: Color shared by every line, empty for size-only products.
            sold_by: Identifier of the admin recording the sale.

        Returns:
            dict: ``items`` with per-size remaining stock, ``total_quantity``,
            ``total_amount_cents`` and ``product_name``.

        Raises:
            NotFoundError: If the product does not exist.
            ValidationError: If a line is malformed or the variant has no inventory row.
            InventoryUnavailableError: If any size lacks stock.
        """
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if not lines:
            raise ValidationError.for_field(["items"], "At least one item is required")

        aggregated: OrderedDict[VariantKey, int] = OrderedDict()
        # Errors point at the first submitted line for each size
        first_index: dict[VariantKey, int] = {}
        for index, (size, quantity) in enumerate(lines):
            if not size or not size.strip():
                raise ValidationError.for_field(["items", index, "size"], "Size is required")
            if quantity <= 0:
                raise ValidationError.for_field(["items", index, "quantity"], "Quantity must be at least 1")
            key = VariantKey.of(product_id, size, color)
            aggregated[key] = aggregated.get(key, 0) + quantity
            first_index.setdefault(key, index)

        details = []
        for key, quantity in aggregated.items():
            entry = self.store.get_entry(key)
            if entry is None:
                raise ValidationError.for_field(
                    ["items", first_index[key], "size"],
                    f"No inventory entry for {key.describe()}",
                )
            if entry["stock_quantity"] < quantity:
                details.append(_unavailable_detail(first_index[key], StockLine(key, quantity), entry["stock_quantity"]))
        if details:
            raise InventoryUnavailableError(message="Insufficient stock for in-person sale", details=details)

        applied: list[StockLine] = []
        remaining: dict[VariantKey, int] = {}
        for key, quantity in aggregated.items():
            new_stock = self.store.decrement_if_available(key, quantity)
            if new_stock is None:
                await self.release_all(applied)
                raise InventoryUnavailableError(
                    message=f"Stock for {key.describe()} changed while recording the sale",
                    details=[_unavailable_detail(first_index[key], StockLine(key, quantity), None)],
                )
            applied.append(StockLine(key, quantity))
            remaining[key] = new_stock

        unit_price = product["price_cents"]
        items = []
        for key, quantity in aggregated.items():
            items.append({
                "size": key.size,
                "color": key.color,
                "quantity": quantity,
                "remaining_stock": remaining[key],
            })
            try:
                self.store.record_physical_sale({
                    "product_id": product_id,
                    "product_name": product["name"],
                    "size": key.size,
                    "color": key.color,
                    "quantity": quantity,
                    "unit_price_cents": unit_price,
                    "total_cents": unit_price * quantity,
                    "sold_by": sold_by,
                })
            except Exception as e:
                logger.error("Failed to record physical sale for %s: %s", key.describe(), str(e))

        total_quantity = sum(aggregated.values())
        logger.info("Physical sale recorded for %s: %d unit(s)", product_id, total_quantity)
        return {
            "product_name": product["name"],
            "items": items,
            "total_quantity": total_quantity,
            "total_amount_cents": unit_price * total_quantity,
        }
