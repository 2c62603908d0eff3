"""Webhook API routes for Stripe and Square callbacks."""

import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

from storefront.api.deps import Lifecycle
from storefront.core import square, stripe
from storefront.core.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives Stripe events. Requires a valid signature.",
)
async def stripe_webhook(request: Request, lifecycle: Lifecycle) -> dict[str, str]:
    """Handle Stripe webhook events.

    Handles:
    - charge.refunded: attaches the refund to the order if it has none,
      reconciling cancellations whose refund call failed or was issued
      from the Stripe dashboard.

    Args:
        request: FastAPI request object for reading raw body and headers.
        lifecycle: Order lifecycle manager.

    Returns:
        dict: Acknowledgment message.

    Raises:
        HTTPException: 400 if signature is missing or invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        stripe.verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.error("Invalid webhook signature: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event = json.loads(payload)
    event_type = event.get("type", "")
    logger.info("Processing Stripe webhook event: %s", event_type)

    if event_type == "charge.refunded":
        charge = event.get("data", {}).get("object", {})
        charge_id = charge.get("payment_intent") or charge.get("id")
        refunds = (charge.get("refunds") or {}).get("data") or []
        if charge_id and refunds:
            await lifecycle.record_external_refund(
                charge_id,
                refunds[0]["id"],
                charge.get("amount_refunded") or refunds[0].get("amount", 0),
            )
        else:
            logger.warning("charge.refunded event %s without payment intent or refund data", event.get("id"))

    else:
        # Acknowledge so Stripe stops retrying
        logger.debug("Unhandled webhook event type: %s", event_type)

    return {"status": "received"}


@router.post(
    "/square",
    status_code=status.HTTP_200_OK,
    summary="Handle Square webhooks",
    description="Receives Square notifications. Requires a valid x-square-hmacsha256-signature.",
)
async def square_webhook(request: Request, lifecycle: Lifecycle) -> dict[str, str]:
    """Handle Square webhook events.

    Handles refund.created and refund.updated: a COMPLETED refund is attached
    to the order paid by its payment, if the order has none.
    """
    payload = await request.body()

    signature = request.headers.get("x-square-hmacsha256-signature")
    if not signature:
        logger.error("Missing Square signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing x-square-hmacsha256-signature header",
        )

    notification_url = get_settings().square_webhook_url or str(request.url)
    try:
        square.verify_webhook_signature(payload, signature, notification_url)
    except ValueError as e:
        logger.error("Invalid Square webhook signature: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event = json.loads(payload)
    event_type = event.get("type", "")
    logger.info("Processing Square webhook event: %s", event_type)

    if event_type in ("refund.created", "refund.updated"):
        refund = ((event.get("data") or {}).get("object") or {}).get("refund") or {}
        if refund.get("status") != "COMPLETED":
            logger.debug("Square refund %s is %s", refund.get("id"), refund.get("status"))
        elif refund.get("payment_id") and refund.get("id"):
            await lifecycle.record_external_refund(
                refund["payment_id"],
                refund["id"],
                (refund.get("amount_money") or {}).get("amount", 0),
            )
        else:
            logger.warning("%s event %s without payment or refund id", event_type, event.get("event_id"))

    else:
        logger.debug("Unhandled Square webhook event type: %s", event_type)

    return {"status": "received"}
