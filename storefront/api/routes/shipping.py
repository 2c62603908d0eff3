"""Shipping quote and tax API routes."""

from fastapi import APIRouter

from storefront.api.deps import ShippingProvider, Taxes
from storefront.core.currency import currency_for_country
from storefront.schemas.shipping import (
    ShippingOptionSchema,
    ShippingQuoteRequest,
    ShippingQuoteResponse,
    TaxCalculateRequest,
    TaxResponse,
)

router = APIRouter(tags=["shipping"])


@router.post(
    "/shipping/quote",
    response_model=ShippingQuoteResponse,
    summary="Quote shipping options",
    description="Returns every carrier service that can reach the address, cheapest first.",
)
async def quote_shipping(data: ShippingQuoteRequest, provider: ShippingProvider) -> ShippingQuoteResponse:
    """Quote shipping for a cart.

    An address that cannot be quoted yields an empty list and a reason
    rather than an error, so the checkout page can explain it.
    """
    quote = await provider.quote(
        data.address.model_dump(),
        [item.quantity for item in data.items],
        [item.weight_lb for item in data.items],
    )
    options = [ShippingOptionSchema.model_validate(option) for option in quote.options]
    return ShippingQuoteResponse(
        options=options,
        default_option=options[0] if options else None,
        reason=quote.reason,
    )


@router.post(
    "/tax/calculate",
    response_model=TaxResponse,
    summary="Calculate tax",
    description="Tax on subtotal plus shipping for the destination country and state.",
)
async def calculate_tax(data: TaxCalculateRequest, calculator: Taxes) -> TaxResponse:
    """Compute tax in the destination currency."""
    country = data.country.strip().upper()
    currency = currency_for_country(country)
    result = calculator.compute(data.subtotal_cents, data.shipping_cents, country, data.state, currency)
    return TaxResponse(
        tax_cents=result.tax_cents,
        currency=currency,
        rate_descriptor=result.rate_descriptor,
        rate_percent=float(result.rate_percent),
    )
