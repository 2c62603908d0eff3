"""Unit tests for the Square payment gateway."""

import base64
import hashlib
import hmac
import json
from collections.abc import Callable
from unittest.mock import patch

import httpx
import pytest

from storefront.core.config import Settings
from storefront.core.errors import PaymentDeclinedError, PaymentNetworkError, RefundFailedError
from storefront.core.square import SquareGateway, verify_webhook_signature


def square_settings(**overrides: str) -> Settings:
    values = {
        "payment_provider": "square",
        "square_access_token": "EAAA-test",
        "square_location_id": "LOC123",
        "square_application_id": "sandbox-sq0idb-app",
        **overrides,
    }
    return Settings(**values)


def gateway_with(handler: Callable[[httpx.Request], httpx.Response], **overrides: str) -> SquareGateway:
    return SquareGateway(square_settings(**overrides), transport=httpx.MockTransport(handler))


def payment_body(status: str = "COMPLETED", amount: int = 5900, currency: str = "USD") -> dict:
    return {"payment": {"id": "sq_pay_1", "status": status, "amount_money": {"amount": amount, "currency": currency}}}


class TestCharge:
    """Tests for POST /v2/payments."""

    @pytest.mark.asyncio
    async def test_successful_charge(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=payment_body(currency="CAD", amount=7965))

        gateway = gateway_with(handler)
        result = await gateway.charge(
            "cnon:card-nonce-ok", 7965, "cad", "attempt-1", {"checkout_attempt_id": "attempt-1", "email": "ada@example.com"}
        )

        assert result.charge_id == "sq_pay_1"
        assert result.amount_cents == 7965
        assert result.currency == "CAD"

        request = seen[0]
        assert request.url.host == "connect.squareupsandbox.com"
        assert request.url.path == "/v2/payments"
        assert request.headers["Authorization"] == "Bearer EAAA-test"
        body = json.loads(request.content)
        assert body["source_id"] == "cnon:card-nonce-ok"
        assert body["idempotency_key"] == "attempt-1"
        assert body["amount_money"] == {"amount": 7965, "currency": "CAD"}
        assert body["location_id"] == "LOC123"
        assert body["reference_id"] == "attempt-1"
        assert body["buyer_email_address"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_production_base_url(self) -> None:
        gateway = SquareGateway(square_settings(square_environment="production"))

        assert gateway.base_url == "https://connect.squareup.com"

    @pytest.mark.asyncio
    async def test_card_declined(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={"errors": [{"category": "PAYMENT_METHOD_ERROR", "code": "CARD_DECLINED", "detail": "Card declined."}]},
            )

        with pytest.raises(PaymentDeclinedError) as exc_info:
            await gateway_with(handler).charge("cnon:card-nonce-declined", 5900, "USD", "attempt-1")

        assert exc_info.value.decline_code == "CARD_DECLINED"
        assert exc_info.value.message == "Card declined."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_server_errors_are_network_errors(self, status_code: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, json={"errors": []})

        with pytest.raises(PaymentNetworkError):
            await gateway_with(handler).charge("cnon:ok", 5900, "USD", "attempt-1")

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(PaymentNetworkError):
            await gateway_with(handler).charge("cnon:ok", 5900, "USD", "attempt-1")

    @pytest.mark.asyncio
    async def test_unfinished_payment_is_declined(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payment_body(status="FAILED"))

        with pytest.raises(PaymentDeclinedError) as exc_info:
            await gateway_with(handler).charge("cnon:ok", 5900, "USD", "attempt-1")

        assert exc_info.value.decline_code == "FAILED"

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(PaymentNetworkError):
            await gateway_with(handler, square_access_token="").charge("cnon:ok", 5900, "USD", "attempt-1")


class TestRefund:
    """Tests for POST /v2/refunds."""

    @pytest.mark.asyncio
    async def test_refund_uses_payment_currency(self) -> None:
        refund_bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                assert request.url.path == "/v2/payments/sq_pay_1"
                return httpx.Response(200, json=payment_body(currency="MXN", amount=103250))
            refund_bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"refund": {"id": "sq_ref_1", "status": "PENDING", "amount_money": {"amount": 103250, "currency": "MXN"}}},
            )

        result = await gateway_with(handler).refund("sq_pay_1", 103250, "refund-order-1", reason="Customer request")

        assert result.refund_id == "sq_ref_1"
        assert result.amount_cents == 103250
        assert refund_bodies[0]["amount_money"] == {"amount": 103250, "currency": "MXN"}
        assert refund_bodies[0]["payment_id"] == "sq_pay_1"
        assert refund_bodies[0]["reason"] == "Customer request"

    @pytest.mark.asyncio
    async def test_rejected_refund(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=payment_body())
            return httpx.Response(
                200,
                json={"refund": {"id": "sq_ref_1", "status": "REJECTED", "amount_money": {"amount": 5900, "currency": "USD"}}},
            )

        with pytest.raises(RefundFailedError):
            await gateway_with(handler).refund("sq_pay_1", 5900, "refund-order-1")

    @pytest.mark.asyncio
    async def test_unknown_payment(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"errors": [{"code": "NOT_FOUND"}]})

        with pytest.raises(RefundFailedError):
            await gateway_with(handler).refund("sq_missing", 5900, "refund-order-1")


def test_client_config() -> None:
    gateway = SquareGateway(square_settings())

    assert gateway.client_config() == {
        "provider": "square",
        "application_id": "sandbox-sq0idb-app",
        "location_id": "LOC123",
        "environment": "sandbox",
    }


class TestWebhookSignature:
    """Tests for verify_webhook_signature."""

    URL = "https://shop.example.com/api/v1/webhooks/square"
    SETTINGS = "storefront.core.square.get_settings"

    def _sign(self, body: bytes, key: str = "sig-key") -> str:
        return base64.b64encode(hmac.new(key.encode(), self.URL.encode() + body, hashlib.sha256).digest()).decode()

    def test_accepts_signature_over_url_and_body(self) -> None:
        body = b'{"type": "refund.updated"}'

        with patch(self.SETTINGS, return_value=square_settings(square_webhook_signature_key="sig-key")):
            verify_webhook_signature(body, self._sign(body), self.URL)

    def test_rejects_signature_for_other_url(self) -> None:
        body = b'{"type": "refund.updated"}'

        with patch(self.SETTINGS, return_value=square_settings(square_webhook_signature_key="sig-key")):
            with pytest.raises(ValueError):
                verify_webhook_signature(body, self._sign(body), "https://other.example.com/hook")

    def test_requires_configured_key(self) -> None:
        body = b"{}"

        with patch(self.SETTINGS, return_value=square_settings(square_webhook_signature_key="")):
            with pytest.raises(ValueError, match="not configured"):
                verify_webhook_signature(body, self._sign(body), self.URL)
