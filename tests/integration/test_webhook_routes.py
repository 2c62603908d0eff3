"""Integration tests for Stripe webhook route."""

import base64
import hashlib
import hmac
import json
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient

WEBHOOK_SECRET = "whsec_test_webhook_secret"
SQUARE_SIGNATURE_KEY = "test_square_signature_key"
SQUARE_WEBHOOK_URL = "https://shop.example.com/api/v1/webhooks/square"


def sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    """Build a Stripe-Signature header for the payload."""
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def refund_event(payment_intent: str, refund_id: str = "re_dashboard", amount: int = 5000) -> str:
    return json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "charge.refunded",
        "data": {
            "object": {
                "id": "ch_1",
                "object": "charge",
                "payment_intent": payment_intent,
                "amount_refunded": amount,
                "refunds": {"data": [{"id": refund_id, "amount": amount}]},
            }
        },
    })


def post_event(client: TestClient, payload: str, signature: str | None = None) -> Any:
    headers = {"Content-Type": "application/json", "Stripe-Signature": signature or sign(payload)}
    return client.post("/api/v1/webhooks/stripe", content=payload, headers=headers)


class TestStripeWebhook:
    """Tests for POST /api/v1/webhooks/stripe."""

    def test_missing_signature_returns_400(self, client: TestClient) -> None:
        response = client.post("/api/v1/webhooks/stripe", content="{}", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"] == "http_error"
        assert response.json()["message"] == "Missing Stripe-Signature header"

    def test_bad_signature_returns_400(self, client: TestClient) -> None:
        payload = refund_event("pi_1")

        response = post_event(client, payload, sign(payload, secret="whsec_wrong"))

        assert response.status_code == 400

    def test_unhandled_event_is_acknowledged(self, client: TestClient) -> None:
        payload = json.dumps({"id": "evt_2", "object": "event", "type": "customer.created", "data": {"object": {}}})

        response = post_event(client, payload)

        assert response.status_code == 200
        assert response.json() == {"status": "received"}

    @pytest.mark.asyncio
    async def test_refund_is_attached_to_cancelled_order(
        self, client: TestClient, place_order: Any, gateway: Any, lifecycle: Any
    ) -> None:
        order = await place_order()
        gateway.fail_refunds = True
        await lifecycle.cancel(order["id"], actor="admin")

        response = post_event(client, refund_event(order["charge_id"], amount=order["total_cents"]))

        assert response.status_code == 200
        updated = await lifecycle.get_order(order["id"])
        assert updated["refund"]["id"] == "re_dashboard"
        assert updated["refund"]["amount_cents"] == order["total_cents"]

    @pytest.mark.asyncio
    async def test_existing_refund_is_kept(
        self, client: TestClient, place_order: Any, lifecycle: Any
    ) -> None:
        order = await place_order()
        await lifecycle.cancel(order["id"], actor="admin")

        response = post_event(client, refund_event(order["charge_id"], refund_id="re_other"))

        assert response.status_code == 200
        assert (await lifecycle.get_order(order["id"]))["refund"]["id"] == "re_1"

    def test_unknown_charge_is_acknowledged(self, client: TestClient) -> None:
        response = post_event(client, refund_event("pi_unknown"))

        assert response.status_code == 200


def square_sign(payload: str, key: str = SQUARE_SIGNATURE_KEY) -> str:
    digest = hmac.new(key.encode(), (SQUARE_WEBHOOK_URL + payload).encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def square_refund_event(payment_id: str, status: str = "COMPLETED", amount: int = 5000) -> str:
    return json.dumps({
        "merchant_id": "M1",
        "type": "refund.updated",
        "event_id": "evt_sq_1",
        "data": {
            "type": "refund",
            "id": "sq_refund_1",
            "object": {
                "refund": {
                    "id": "sq_refund_1",
                    "payment_id": payment_id,
                    "status": status,
                    "amount_money": {"amount": amount, "currency": "USD"},
                }
            },
        },
    })


def post_square_event(client: TestClient, payload: str, signature: str | None = None) -> Any:
    headers = {"Content-Type": "application/json", "x-square-hmacsha256-signature": signature or square_sign(payload)}
    return client.post("/api/v1/webhooks/square", content=payload, headers=headers)


class TestSquareWebhook:
    """Tests for POST /api/v1/webhooks/square."""

    def test_missing_signature_returns_400(self, client: TestClient) -> None:
        response = client.post("/api/v1/webhooks/square", content="{}", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing x-square-hmacsha256-signature header"

    def test_bad_signature_returns_400(self, client: TestClient) -> None:
        payload = square_refund_event("pi_1")

        response = post_square_event(client, payload, square_sign(payload, key="wrong_key"))

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid signature"

    @pytest.mark.asyncio
    async def test_completed_refund_is_attached_to_cancelled_order(
        self, client: TestClient, place_order: Any, gateway: Any, lifecycle: Any
    ) -> None:
        order = await place_order()
        gateway.fail_refunds = True
        await lifecycle.cancel(order["id"], actor="admin")

        response = post_square_event(client, square_refund_event(order["charge_id"], amount=order["total_cents"]))

        assert response.status_code == 200
        assert response.json() == {"status": "received"}
        refund = (await lifecycle.get_order(order["id"]))["refund"]
        assert refund["id"] == "sq_refund_1"
        assert refund["amount_cents"] == order["total_cents"]

    @pytest.mark.asyncio
    async def test_pending_refund_is_not_recorded(
        self, client: TestClient, place_order: Any, gateway: Any, lifecycle: Any
    ) -> None:
        order = await place_order()
        gateway.fail_refunds = True
        await lifecycle.cancel(order["id"], actor="admin")

        response = post_square_event(client, square_refund_event(order["charge_id"], status="PENDING"))

        assert response.status_code == 200
        assert (await lifecycle.get_order(order["id"]))["refund"] is None

    def test_payment_event_is_acknowledged(self, client: TestClient) -> None:
        payload = json.dumps({"type": "payment.updated", "event_id": "evt_sq_2", "data": {"object": {"payment": {}}}})

        response = post_square_event(client, payload)

        assert response.status_code == 200
