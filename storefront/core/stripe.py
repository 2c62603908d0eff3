"""Stripe client configuration and the Stripe payment gateway."""

import asyncio
import logging
from typing import Any

import stripe

from storefront.core.config import Settings, get_settings
from storefront.core.errors import PaymentDeclinedError, PaymentNetworkError, RefundFailedError
from storefront.core.payments import ChargeResult, PaymentGateway, RefundResult

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Configure Stripe SDK with API key from settings.

    This should be called once at application startup.
    If Stripe keys are not configured, Stripe operations will fail with clear errors.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    else:
        logger.warning("Stripe secret key not configured. Stripe payments will not work.")


def get_stripe() -> Any:
    """Get the configured Stripe module.

    Stripe SDK uses module-level configuration, so this returns the stripe
    module itself. Ensure configure_stripe() has been called first.
    """
    return stripe


def verify_webhook_signature(payload: bytes, sig_header: str) -> dict[str, Any]:
    """Verify a Stripe webhook signature and return the parsed event.

    Raises:
        ValueError: If the signature or payload is invalid.
    """
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        raise ValueError("Stripe webhook secret not configured")
    try:
        return get_stripe().Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Invalid signature: {e}") from e


class StripeGateway(PaymentGateway):
    """Charges through a confirmed PaymentIntent built from a PaymentMethod token."""

    name = "stripe"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.stripe = get_stripe()

    async def charge(
        self,
        token: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ChargeResult:
        try:
            intent = await asyncio.to_thread(
                self.stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency.lower(),
                payment_method=token,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            logger.info("Stripe card declined: %s", e.user_message or str(e))
            raise PaymentDeclinedError(
                message=e.user_message or "Your card was declined",
                decline_code=getattr(e, "code", None),
            ) from e
        except stripe.InvalidRequestError as e:
            logger.warning("Stripe rejected payment request: %s", str(e))
            raise PaymentDeclinedError(message="The payment details were not accepted") from e
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.error("Stripe unreachable: %s", str(e))
            raise PaymentNetworkError() from e
        except stripe.StripeError as e:
            logger.error("Stripe error during charge: %s", str(e))
            raise PaymentNetworkError() from e

        if intent.status != "succeeded":
            logger.info("PaymentIntent %s ended in status %s", intent.id, intent.status)
            raise PaymentDeclinedError(
                message="Your payment could not be completed. Please try another card.",
                decline_code=intent.status,
            )

        return ChargeResult(charge_id=intent.id, amount_cents=intent.amount, currency=currency.upper())

    async def refund(
        self,
        charge_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        try:
            refund = await asyncio.to_thread(
                self.stripe.Refund.create,
                payment_intent=charge_id,
                amount=amount_cents,
                reason="requested_by_customer",
                metadata={"note": reason} if reason else {},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for %s: %s", charge_id, str(e))
            raise RefundFailedError(str(e)) from e

        if refund.status == "failed":
            raise RefundFailedError(f"Refund {refund.id} failed")

        return RefundResult(refund_id=refund.id, amount_cents=refund.amount)

    def client_config(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "publishable_key": self.settings.stripe_publishable_key,
        }
