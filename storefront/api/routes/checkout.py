"""Checkout API routes."""

import logging

from fastapi import APIRouter, status

from storefront.api.deps import Checkout, CheckoutRateLimit, Gateway
from storefront.schemas.checkout import CheckoutRequest, CheckoutResponse, PaymentConfigResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit checkout",
    description="Re-validates the cart, reserves stock, charges the payment token and creates a pending order.",
    responses={
        402: {"description": "Payment declined"},
        409: {"description": "Insufficient stock"},
        422: {"description": "Invalid cart, address or totals"},
        429: {"description": "Too many checkout attempts"},
        503: {"description": "Payment provider unavailable; safe to retry with the same attempt id"},
    },
)
async def submit_checkout(
    data: CheckoutRequest,
    orchestrator: Checkout,
    _rate_limit: CheckoutRateLimit,
) -> CheckoutResponse:
    """Turn a cart into a paid order.

    Args:
        data: Cart, customer, address, selected shipping and displayed totals.
        orchestrator: Checkout orchestrator.

    Returns:
        CheckoutResponse: The created order summary.
    """
    result = await orchestrator.submit(data)
    order = result.order
    return CheckoutResponse(
        order_id=order["id"],
        order_number=order["order_number"],
        status=order["status"],
        currency=order["currency"],
        subtotal_cents=order["subtotal_cents"],
        shipping_cents=order["shipping_cents"],
        tax_cents=order["tax_cents"],
        total_cents=order["total_cents"],
        confirmation_sent=result.confirmation_sent,
    )


@router.get(
    "/payments/config",
    response_model=PaymentConfigResponse,
    summary="Payment tokenization config",
    description="Public values the browser SDK needs to tokenize a card.",
)
async def payment_config(gateway: Gateway) -> PaymentConfigResponse:
    """Return the active provider and its public keys."""
    return PaymentConfigResponse(**gateway.client_config())
