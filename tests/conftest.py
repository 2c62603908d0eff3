"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jwt.algorithms import ECAlgorithm

# Signing key for test JWTs; the public half is what the app verifies against
TEST_SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("PAYMENT_PROVIDER", "stripe")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["SUPABASE_SIGNING_KEY_JWK"] = ECAlgorithm.to_jwk(TEST_SIGNING_KEY.public_key())
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("SQUARE_WEBHOOK_SIGNATURE_KEY", "test_square_signature_key")
os.environ.setdefault("SQUARE_WEBHOOK_URL", "https://shop.example.com/api/v1/webhooks/square")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("ADMIN_ALERT_EMAIL", "ops@example.com")

from storefront.core.errors import PaymentDeclinedError, PaymentNetworkError, RefundFailedError  # noqa: E402
from storefront.core.payments import ChargeResult, PaymentGateway, RefundResult  # noqa: E402
from storefront.models.inventory import VariantKey  # noqa: E402
from storefront.repositories.inventory import InMemoryInventoryStore  # noqa: E402
from storefront.repositories.orders import InMemoryOrderRepository  # noqa: E402
from storefront.services.checkout_service import CheckoutOrchestrator  # noqa: E402
from storefront.services.email_service import EmailService  # noqa: E402
from storefront.services.fulfillment_service import FulfillmentWorkflow  # noqa: E402
from storefront.services.inventory_ledger import InventoryLedger  # noqa: E402
from storefront.services.order_service import OrderLifecycleManager  # noqa: E402
from storefront.services.shipping_service import ShippingRateProvider  # noqa: E402
from storefront.services.tax_service import TaxCalculator  # noqa: E402
from storefront.services.wholesale_service import WholesaleService  # noqa: E402

TEE = "tee-classic"
HOODIE = "hoodie-zip"


def create_test_token(
    sub: str = "550e8400-e29b-41d4-a716-446655440000",
    email: str | None = "admin@example.com",
    role: str | None = "admin",
    exp_offset: int = 3600,
    key: Any = None,
) -> str:
    """Create a Supabase-style ES256 JWT with the storefront role in app_metadata.

    Args:
        sub: Subject (user ID).
        email: User email.
        role: Storefront role, or None for a plain customer.
        exp_offset: Seconds from now for expiration (negative for expired).
        key: Signing key, defaults to the key the app trusts.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "app_metadata": {"role": role} if role else {},
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test-project.supabase.co/auth/v1",
    }
    return jwt.encode(payload, key or TEST_SIGNING_KEY, algorithm="ES256")


class FakeGateway(PaymentGateway):
    """In-process gateway that records calls and honors idempotency keys."""

    name = "stripe"

    def __init__(self) -> None:
        self.charges: dict[str, ChargeResult] = {}
        self.refunds: dict[str, RefundResult] = {}
        # Parameters first sent under each idempotency key
        self.requests: dict[str, tuple[Any, ...]] = {}
        self.charge_calls = 0
        self.refund_calls = 0
        self.decline = False
        self.network_error = False
        self.fail_refunds = False
        self.charge_delay = 0.0
        # The gateway acts on the request but the response never arrives
        self.lose_charge_response = False
        self.lose_refund_response = False

    async def charge(
        self,
        token: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ChargeResult:
        self.charge_calls += 1
        if self.charge_delay:
            import asyncio

            await asyncio.sleep(self.charge_delay)
        if self.decline:
            raise PaymentDeclinedError("Your card was declined.", decline_code="card_declined")
        if self.network_error:
            raise PaymentNetworkError()
        if not self._same_request(idempotency_key, (token, amount_cents, currency, sorted((metadata or {}).items()))):
            raise PaymentNetworkError("Idempotency key reused with different parameters")
        if idempotency_key not in self.charges:
            self.charges[idempotency_key] = ChargeResult(
                charge_id=f"pi_{len(self.charges) + 1}",
                amount_cents=amount_cents,
                currency=currency,
            )
        if self.lose_charge_response:
            raise PaymentNetworkError()
        return self.charges[idempotency_key]

    async def refund(
        self,
        charge_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        self.refund_calls += 1
        if self.fail_refunds:
            raise RefundFailedError("Refund declined by provider")
        if not self._same_request(idempotency_key, (charge_id, amount_cents, reason)):
            raise RefundFailedError("Idempotency key reused with different parameters")
        if idempotency_key not in self.refunds:
            self.refunds[idempotency_key] = RefundResult(
                refund_id=f"re_{len(self.refunds) + 1}",
                amount_cents=amount_cents,
            )
        if self.lose_refund_response:
            raise RefundFailedError("Connection reset")
        return self.refunds[idempotency_key]

    def _same_request(self, idempotency_key: str, params: tuple[Any, ...]) -> bool:
        """Like the real gateways, a reused key must carry the original parameters."""
        return self.requests.setdefault(idempotency_key, params) == params

    def client_config(self) -> dict[str, Any]:
        return {"provider": self.name, "publishable_key": "pk_test_fake"}


@pytest.fixture
def inventory_store() -> InMemoryInventoryStore:
    """In-memory catalog with a size-only tee and a colored hoodie."""
    store = InMemoryInventoryStore()
    store.add_product(TEE, "Classic Tee", 2500)
    store.add_product(HOODIE, "Zip Hoodie", 6000)
    store.add_product("retired-cap", "Retired Cap", 1500, active=False)
    for size, quantity in (("S", 5), ("M", 10), ("L", 1)):
        store.set_stock(VariantKey(TEE, size), quantity, sku=f"TEE-{size}")
    for size, color, quantity in (("M", "black", 3), ("M", "grey", 0), ("L", "black", 8)):
        store.set_stock(VariantKey(HOODIE, size, color), quantity, sku=f"HOOD-{size}-{color.upper()}")
    return store


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def ledger(inventory_store: InMemoryInventoryStore) -> InventoryLedger:
    return InventoryLedger(store=inventory_store)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def email_service() -> MagicMock:
    """Email service whose sends always succeed."""
    service = MagicMock(spec=EmailService)
    for name in (
        "send_order_confirmation",
        "send_cancellation_notice",
        "send_shipping_notification",
        "send_admin_alert",
    ):
        setattr(service, name, AsyncMock(return_value={"success": True, "email_id": "email_123"}))
    return service


@pytest.fixture
def shipping_provider() -> ShippingRateProvider:
    return ShippingRateProvider()


@pytest.fixture
def lifecycle(
    order_repository: InMemoryOrderRepository,
    ledger: InventoryLedger,
    gateway: FakeGateway,
    email_service: MagicMock,
) -> OrderLifecycleManager:
    return OrderLifecycleManager(
        repository=order_repository,
        ledger=ledger,
        gateway=gateway,
        email_service=email_service,
    )


@pytest.fixture
def workflow(lifecycle: OrderLifecycleManager) -> FulfillmentWorkflow:
    return FulfillmentWorkflow(lifecycle=lifecycle)


@pytest.fixture
def orchestrator(
    ledger: InventoryLedger,
    shipping_provider: ShippingRateProvider,
    gateway: FakeGateway,
    order_repository: InMemoryOrderRepository,
    email_service: MagicMock,
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        ledger=ledger,
        shipping=shipping_provider,
        tax=TaxCalculator(),
        gateway=gateway,
        repository=order_repository,
        email_service=email_service,
    )


@pytest.fixture
def us_address() -> dict[str, str]:
    return {"street": "350 5th Ave", "city": "New York", "state": "NY", "zip": "10118", "country": "US"}


@pytest.fixture
def place_order(orchestrator: CheckoutOrchestrator, us_address: dict[str, str]) -> Any:
    """Async factory running a real checkout and returning the persisted order.

    Defaults to two medium tees shipped to New York with the cheapest option.
    """
    from storefront.schemas.checkout import CheckoutRequest

    async def _place(
        items: list[dict[str, Any]] | None = None,
        attempt_id: str = "attempt-1",
    ) -> dict[str, Any]:
        items = items or [{"product_id": TEE, "size": "M", "quantity": 2}]
        priced = []
        for item in items:
            product = orchestrator.ledger.store.get_product(item["product_id"])
            priced.append({**item, "unit_price_cents": product["price_cents"]})
        quote = await orchestrator.shipping.quote(us_address, [item["quantity"] for item in items])
        option = quote.default_option
        subtotal = sum(i["unit_price_cents"] * i["quantity"] for i in priced)
        tax = orchestrator.tax.compute(subtotal, option.cost_cents, "US", us_address["state"], "USD")
        request = CheckoutRequest.model_validate({
            "checkout_attempt_id": attempt_id,
            "customer": {"name": "Ada Lovelace", "email": "ada@example.com"},
            "shipping_address": us_address,
            "items": priced,
            "shipping_option": {"carrier": option.carrier, "service": option.service},
            "payment_token": "pm_card_visa",
            "subtotal_cents": subtotal,
            "shipping_cents": option.cost_cents,
            "tax_cents": tax.tax_cents,
            "total_cents": subtotal + option.cost_cents + tax.tax_cents,
        })
        return (await orchestrator.submit(request)).order

    return _place


@pytest.fixture
def client(
    inventory_store: InMemoryInventoryStore,
    ledger: InventoryLedger,
    shipping_provider: ShippingRateProvider,
    gateway: FakeGateway,
    lifecycle: OrderLifecycleManager,
    workflow: FulfillmentWorkflow,
    orchestrator: CheckoutOrchestrator,
) -> Generator[TestClient, None, None]:
    """Provide a test client wired to the in-memory services above.

    Yields:
        TestClient: FastAPI test client.
    """
    from storefront.api import deps
    from storefront.core.rate_limiter import get_rate_limiter
    from storefront.main import app

    app.dependency_overrides.update({
        deps.get_inventory_ledger: lambda: ledger,
        deps.get_shipping_provider: lambda: shipping_provider,
        deps.get_gateway: lambda: gateway,
        deps.get_lifecycle_manager: lambda: lifecycle,
        deps.get_fulfillment_workflow: lambda: workflow,
        deps.get_checkout_orchestrator: lambda: orchestrator,
        deps.get_wholesale_service: lambda: WholesaleService(store=inventory_store),
    })
    get_rate_limiter().reset()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def token_factory() -> Any:
    """Expose create_test_token to test modules."""
    return create_test_token


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_test_token()}"}


@pytest.fixture
def signing_key() -> Any:
    """Private key the app trusts for test JWTs."""
    return TEST_SIGNING_KEY
