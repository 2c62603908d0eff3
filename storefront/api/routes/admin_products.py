"""Admin inventory routes."""

from fastapi import APIRouter

from storefront.api.deps import AdminUser, Ledger
from storefront.schemas.inventory import (
    InventoryEntrySchema,
    InventoryResponse,
    PhysicalSaleRequest,
    PhysicalSaleResponse,
)

router = APIRouter(prefix="/admin/products", tags=["admin"])


@router.get(
    "/{product_id}/inventory",
    response_model=InventoryResponse,
    summary="Variant stock",
    responses={404: {"description": "Product not found"}},
)
async def get_inventory(product_id: str, admin: AdminUser, ledger: Ledger) -> InventoryResponse:
    """List stock for every size and color of a product."""
    entries = await ledger.get_stock(product_id)
    return InventoryResponse(
        product_id=product_id,
        entries=[InventoryEntrySchema.model_validate(entry) for entry in entries],
    )


@router.post(
    "/{product_id}/physical-sale",
    response_model=PhysicalSaleResponse,
    summary="Record in-person sale",
    description="Deducts stock for sizes sold in person. Either every line is applied or none.",
    responses={
        404: {"description": "Product not found"},
        409: {"description": "Insufficient stock for one or more sizes"},
    },
)
async def record_physical_sale(
    product_id: str,
    data: PhysicalSaleRequest,
    admin: AdminUser,
    ledger: Ledger,
) -> PhysicalSaleResponse:
    """Record an in-person sale.

    Args:
        product_id: Product sold.
        data: Sizes, quantities and the shared color.
        admin: Authenticated admin, recorded as the seller.
        ledger: Inventory ledger.

    Returns:
        PhysicalSaleResponse: Remaining stock per size and the sale total.
    """
    result = await ledger.adjust(
        product_id,
        [(line.size, line.quantity) for line in data.items],
        color=data.color,
        sold_by=admin.actor,
    )
    return PhysicalSaleResponse(product_id=product_id, **result)
