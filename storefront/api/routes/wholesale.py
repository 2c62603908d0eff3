"""Wholesale pricing route."""

from fastapi import APIRouter

from storefront.api.deps import Wholesale
from storefront.schemas.wholesale import WholesaleQuoteRequest, WholesaleQuoteResponse

router = APIRouter(prefix="/wholesale", tags=["wholesale"])


@router.post(
    "/quote",
    response_model=WholesaleQuoteResponse,
    summary="Quote a wholesale order",
    description="Applies the volume discount (30/40/50%) to orders of 12 units or more.",
)
async def quote_wholesale(data: WholesaleQuoteRequest, service: Wholesale) -> WholesaleQuoteResponse:
    """Price a wholesale request from catalog prices."""
    quote = await service.quote([line.model_dump() for line in data.items])
    return WholesaleQuoteResponse.model_validate(quote)
