"""Square payment gateway over the Payments and Refunds REST API."""

import base64
import hashlib
import hmac
import logging
from typing import Any

import httpx

from storefront.core.config import Settings, get_settings
from storefront.core.errors import PaymentDeclinedError, PaymentNetworkError, RefundFailedError
from storefront.core.payments import ChargeResult, PaymentGateway, RefundResult

logger = logging.getLogger(__name__)

SQUARE_PRODUCTION_URL = "https://connect.squareup.com"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com"


def verify_webhook_signature(payload: bytes, signature: str, notification_url: str) -> None:
    """Check Square's ``x-square-hmacsha256-signature`` header.

    Square signs the notification URL followed by the raw body with the
    subscription's signature key (HMAC-SHA256, base64).

    Raises:
        ValueError: If the key is not configured or the signature does not match.
    """
    key = get_settings().square_webhook_signature_key
    if not key:
        raise ValueError("Square webhook signature key not configured")
    digest = hmac.new(key.encode(), notification_url.encode() + payload, hashlib.sha256).digest()
    if not hmac.compare_digest(base64.b64encode(digest).decode(), signature):
        raise ValueError("Signature does not match")


# Error categories that mean the request itself was refused, not that Square was unreachable
DECLINE_CATEGORIES = {"PAYMENT_METHOD_ERROR", "INVALID_REQUEST_ERROR"}


class SquareGateway(PaymentGateway):
    """Charges a Web Payments SDK source id through POST /v2/payments."""

    name = "square"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def base_url(self) -> str:
        if self.settings.square_environment == "production":
            return SQUARE_PRODUCTION_URL
        return SQUARE_SANDBOX_URL

    def _headers(self) -> dict[str, str]:
        return {
            "Square-Version": self.settings.square_api_version,
            "Authorization": f"Bearer {self.settings.square_access_token}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.settings.payment_timeout_seconds,
            transport=self._transport,
        )

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        async with self._client() as client:
            return await client.post(path, json=body)

    @staticmethod
    def _first_error(response: httpx.Response) -> dict[str, Any]:
        try:
            errors = response.json().get("errors") or []
        except ValueError:
            errors = []
        return errors[0] if errors else {}

    async def charge(
        self,
        token: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ChargeResult:
        if not self.settings.square_access_token or not self.settings.square_location_id:
            logger.error("Square credentials not configured")
            raise PaymentNetworkError("Payment provider is not configured")

        body: dict[str, Any] = {
            "source_id": token,
            "idempotency_key": idempotency_key,
            "amount_money": {"amount": amount_cents, "currency": currency.upper()},
            "location_id": self.settings.square_location_id,
            "autocomplete": True,
        }
        if metadata and metadata.get("checkout_attempt_id"):
            body["reference_id"] = metadata["checkout_attempt_id"][:40]
        if metadata and metadata.get("email"):
            body["buyer_email_address"] = metadata["email"]

        try:
            response = await self._post("/v2/payments", body)
        except httpx.HTTPError as e:
            logger.error("Square unreachable: %s", str(e))
            raise PaymentNetworkError() from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.error("Square returned %d for payment", response.status_code)
            raise PaymentNetworkError()

        if response.is_error:
            error = self._first_error(response)
            logger.info("Square declined payment: %s %s", error.get("code"), error.get("detail"))
            if error.get("category") in DECLINE_CATEGORIES or response.status_code in (400, 402):
                raise PaymentDeclinedError(
                    message=error.get("detail") or "Your card was declined",
                    decline_code=error.get("code"),
                )
            raise PaymentNetworkError()

        payment = response.json().get("payment", {})
        if payment.get("status") not in ("COMPLETED", "APPROVED"):
            raise PaymentDeclinedError(
                message="Your payment could not be completed. Please try another card.",
                decline_code=payment.get("status"),
            )

        return ChargeResult(
            charge_id=payment["id"],
            amount_cents=payment["amount_money"]["amount"],
            currency=payment["amount_money"]["currency"],
        )

    async def refund(
        self,
        charge_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        currency = await self._payment_currency(charge_id)
        body: dict[str, Any] = {
            "idempotency_key": idempotency_key,
            "payment_id": charge_id,
            "amount_money": {"amount": amount_cents, "currency": currency},
        }
        if reason:
            body["reason"] = reason[:192]

        try:
            response = await self._post("/v2/refunds", body)
        except httpx.HTTPError as e:
            logger.error("Square refund request failed for %s: %s", charge_id, str(e))
            raise RefundFailedError(str(e)) from e

        if response.is_error:
            error = self._first_error(response)
            raise RefundFailedError(error.get("detail") or f"Square returned {response.status_code}")

        refund = response.json().get("refund", {})
        if refund.get("status") in ("REJECTED", "FAILED"):
            raise RefundFailedError(f"Refund {refund.get('id')} {refund.get('status')}")

        return RefundResult(refund_id=refund["id"], amount_cents=refund["amount_money"]["amount"])

    async def _payment_currency(self, payment_id: str) -> str:
        """Look up the currency a payment was taken in; refunds must match it."""
        try:
            async with self._client() as client:
                response = await client.get(f"/v2/payments/{payment_id}")
        except httpx.HTTPError as e:
            raise RefundFailedError(str(e)) from e
        if response.is_error:
            raise RefundFailedError(f"Payment {payment_id} not found at Square")
        return response.json()["payment"]["amount_money"]["currency"]

    def client_config(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "application_id": self.settings.square_application_id,
            "location_id": self.settings.square_location_id,
            "environment": self.settings.square_environment,
        }
