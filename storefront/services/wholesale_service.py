"""Wholesale volume discounts."""

import logging
from decimal import Decimal
from typing import Any

from storefront.core.currency import round_cents
from storefront.core.errors import NotFoundError, ValidationError
from storefront.core.storage import get_inventory_store
from storefront.repositories.inventory import InventoryStore

logger = logging.getLogger(__name__)

WHOLESALE_MINIMUM_QUANTITY = 12

# (minimum total quantity, discount percent), highest tier first
DISCOUNT_TIERS: tuple[tuple[int, int], ...] = (
    (48, 50),
    (24, 40),
    (12, 30),
)


def wholesale_discount(total_quantity: int) -> int:
    """Discount percent for a wholesale order of total_quantity units. 0 means not eligible."""
    for minimum, percent in DISCOUNT_TIERS:
        if total_quantity >= minimum:
            return percent
    return 0


class WholesaleService:
    """Prices wholesale requests from catalog prices."""

    def __init__(self, store: InventoryStore | None = None) -> None:
        self.store = store or get_inventory_store()

    async def quote(self, lines: list[dict[str, Any]]) -> dict[str, Any]:
        """Price a wholesale request.

        Unit prices are frozen from the catalog. The discount applies to the
        whole subtotal based on the combined quantity.

        Args:
            lines: Dicts with ``product_id``, ``size``, ``color`` and ``quantity``.

        Returns:
            dict: Priced lines, ``total_quantity``, ``subtotal_cents``,
            ``discount_percent``, ``discount_cents`` and ``total_cents``.

        Raises:
            ValidationError: If the combined quantity is under the wholesale minimum.
            NotFoundError: If a product does not exist.
        """
        if not lines:
            raise ValidationError.for_field(["items"], "At least one item is required")

        total_quantity = sum(line["quantity"] for line in lines)
        percent = wholesale_discount(total_quantity)
        if percent == 0:
            raise ValidationError.for_field(
                ["items"],
                f"Wholesale orders require at least {WHOLESALE_MINIMUM_QUANTITY} units",
            )

        priced = []
        for index, line in enumerate(lines):
            if line["quantity"] <= 0:
                raise ValidationError.for_field(["items", index, "quantity"], "Quantity must be at least 1")
            product = self.store.get_product(line["product_id"])
            if product is None or not product.get("active", True):
                raise NotFoundError(f"Product {line['product_id']} not found")
            priced.append({
                "product_id": line["product_id"],
                "product_name": product["name"],
                "size": line.get("size", ""),
                "color": line.get("color") or "",
                "quantity": line["quantity"],
                "unit_price_cents": product["price_cents"],
                "line_total_cents": product["price_cents"] * line["quantity"],
            })

        subtotal = sum(line["line_total_cents"] for line in priced)
        discount = round_cents(Decimal(subtotal * percent) / 100)
        logger.info("Wholesale quote: %d units, %d%% discount", total_quantity, percent)
        return {
            "items": priced,
            "total_quantity": total_quantity,
            "subtotal_cents": subtotal,
            "discount_percent": percent,
            "discount_cents": discount,
            "total_cents": subtotal - discount,
        }
