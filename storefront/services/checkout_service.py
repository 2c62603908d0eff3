"""Checkout orchestration: cart to durable, paid order.

There is no transaction spanning stock, payment and the order row, so the
steps run in an order that keeps every failure recoverable:

1. Return the order a previous submission of the same attempt already produced.
2. Re-validate the cart against the catalog, a fresh shipping quote and tax.
3. Reserve stock for every line (all or nothing).
4. Charge under a timeout. On failure, release the stock.
5. Insert the order. On failure, refund, release and alert an admin.
6. Send the confirmation email (best-effort).

A resubmission sends the gateway exactly what the first submission sent
under the same idempotency key, so it gets the original charge back.
"""

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from storefront.core.config import get_settings
from storefront.core.currency import SUPPORTED_COUNTRIES, convert_from_usd, currency_for_country
from storefront.core.errors import (
    InternalError,
    PaymentDeclinedError,
    PaymentNetworkError,
    ValidationError,
)
from storefront.core.payments import PaymentGateway, get_payment_gateway
from storefront.core.storage import get_order_repository
from storefront.models.inventory import VariantKey
from storefront.models.order import Order, OrderItem, OrderStatus, ShippingAddress, history_entry, utc_now_iso
from storefront.repositories.orders import OrderRepository
from storefront.schemas.checkout import CheckoutRequest
from storefront.services.email_service import EmailService
from storefront.services.inventory_ledger import InventoryLedger, StockLine
from storefront.services.order_service import refund_idempotency_key
from storefront.services.shipping_service import ShippingOption, ShippingRateProvider
from storefront.services.tax_service import TaxCalculator

logger = logging.getLogger(__name__)

CUSTOMER_ACTOR = "customer"

# Orders get a uuid5 of their checkout attempt id, so resubmissions map to one row
ORDER_ID_NAMESPACE = uuid.UUID("6f1c2a9e-3b7d-4e58-9a41-0c2d8e7f5b13")


def generate_order_number(now: datetime | None = None) -> str:
    """Human-readable order number, e.g. ORD-20240131-9F2C1A."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def charge_idempotency_key(checkout_attempt_id: str) -> str:
    """Gateway idempotency key for a checkout attempt. Retries reuse it."""
    return f"checkout-{checkout_attempt_id}"


def order_id_for_attempt(checkout_attempt_id: str) -> str:
    return str(uuid.uuid5(ORDER_ID_NAMESPACE, checkout_attempt_id))


def _normalize_address(address: ShippingAddress | dict[str, Any]) -> ShippingAddress:
    return {
        "street": str(address.get("street") or "").strip(),
        "city": str(address.get("city") or "").strip(),
        "state": str(address.get("state") or "").strip().upper(),
        "zip": str(address.get("zip") or "").strip().upper(),
        "country": str(address.get("country") or "").strip().upper(),
    }


@dataclass(frozen=True)
class CartLine:
    """One variant in the cart."""

    product_id: str
    size: str
    quantity: int
    unit_price_cents: int
    color: str = ""


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable cart state as seen by the checkout page.

    Any change produces a new snapshot. Changing the address or the items
    drops the selected shipping option, because its price no longer applies
    and must be re-quoted.
    """

    items: tuple[CartLine, ...] = ()
    address: ShippingAddress | None = None
    shipping_option: ShippingOption | None = None

    @property
    def subtotal_cents(self) -> int:
        return sum(line.unit_price_cents * line.quantity for line in self.items)

    @property
    def needs_shipping_quote(self) -> bool:
        return self.shipping_option is None

    def with_items(self, items: list[CartLine] | tuple[CartLine, ...]) -> "CartSnapshot":
        items = tuple(items)
        if items == self.items:
            return self
        return replace(self, items=items, shipping_option=None)

    def with_address(self, address: ShippingAddress | dict[str, Any]) -> "CartSnapshot":
        normalized = _normalize_address(address)
        if normalized == self.address:
            return self
        return replace(self, address=normalized, shipping_option=None)

    def with_shipping_option(self, option: ShippingOption | None) -> "CartSnapshot":
        return replace(self, shipping_option=option)


@dataclass(frozen=True)
class CheckoutResult:
    """A committed order and whether the customer was emailed."""

    order: Order
    confirmation_sent: bool


@dataclass
class _PricedCart:
    currency: str
    items: list[OrderItem]
    lines: list[StockLine]
    subtotal_cents: int
    shipping: ShippingOption
    tax_cents: int
    tax_descriptor: str | None

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.shipping.cost_cents + self.tax_cents


class CheckoutOrchestrator:
    """Service turning a checkout request into a paid order."""

    def __init__(
        self,
        ledger: InventoryLedger | None = None,
        shipping: ShippingRateProvider | None = None,
        tax: TaxCalculator | None = None,
        gateway: PaymentGateway | None = None,
        repository: OrderRepository | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize checkout orchestrator.

        Every collaborator is optional so tests can substitute fakes.
        """
        self.settings = get_settings()
        self.ledger = ledger or InventoryLedger()
        self.shipping = shipping or ShippingRateProvider()
        self.tax = tax or TaxCalculator()
        self._gateway = gateway
        self.repository = repository or get_order_repository()
        self.email_service = email_service or EmailService()

    @property
    def gateway(self) -> PaymentGateway:
        """Get payment gateway."""
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    async def price(self, request: CheckoutRequest) -> _PricedCart:
        """Recompute every figure of the request from authoritative sources.

        Raises:
            ValidationError: If the cart, address or selection is invalid or
                any client figure differs from the server's.
        """
        if not request.items:
            raise ValidationError.for_field(["items"], "Your cart is empty")

        address = _normalize_address(request.shipping_address.model_dump())
        missing = ShippingRateProvider.missing_address_fields(address)
        if missing:
            raise ValidationError(
                message="Shipping address is incomplete",
                details=[
                    {"loc": ["shipping_address", name], "msg": "Field required", "type": "missing"}
                    for name in missing
                ],
            )
        if address["country"] not in SUPPORTED_COUNTRIES:
            raise ValidationError.for_field(
                ["shipping_address", "country"],
                f"We do not ship to {address['country']}",
            )
        if request.shipping_option is None:
            raise ValidationError.for_field(["shipping_option"], "Select a shipping option")

        for name in ("subtotal_cents", "shipping_cents", "tax_cents", "total_cents"):
            if getattr(request, name) < 0:
                raise ValidationError.for_field([name], "Amount cannot be negative")

        currency = currency_for_country(address["country"])
        items: list[OrderItem] = []
        lines: list[StockLine] = []
        for index, item in enumerate(request.items):
            if item.quantity <= 0:
                raise ValidationError.for_field(["items", index, "quantity"], "Quantity must be at least 1")
            if item.unit_price_cents is not None and item.unit_price_cents < 0:
                raise ValidationError.for_field(["items", index, "unit_price_cents"], "Price cannot be negative")

            product = self.ledger.store.get_product(item.product_id)
            if product is None or not product.get("active", True):
                raise ValidationError.for_field(
                    ["items", index, "product_id"],
                    "This product is no longer available",
                )

            unit_price = convert_from_usd(product["price_cents"], currency, self.settings.exchange_rates)
            if item.unit_price_cents is not None and item.unit_price_cents != unit_price:
                raise ValidationError.for_field(
                    ["items", index, "unit_price_cents"],
                    f"The price of {product['name']} has changed to {unit_price}",
                    type_="price_changed",
                )

            key = VariantKey.of(item.product_id, item.size, item.color)
            entry = self.ledger.store.get_entry(key)
            items.append({
                "product_id": key.product_id,
                "product_name": product["name"],
                "size": key.size,
                "color": key.color,
                "sku": entry.get("sku") if entry else None,
                "quantity": item.quantity,
                "unit_price_cents": unit_price,
            })
            lines.append(StockLine(key, item.quantity))

        subtotal = sum(i["unit_price_cents"] * i["quantity"] for i in items)

        quote = await self.shipping.quote(address, [i["quantity"] for i in items])
        option = self.shipping.find_option(
            quote,
            request.shipping_option.carrier,
            request.shipping_option.service,
        )
        if option is None:
            raise ValidationError.for_field(
                ["shipping_option"],
                "The selected shipping option is no longer available. Please choose again.",
            )

        tax = self.tax.compute(subtotal, option.cost_cents, address["country"], address["state"], currency)

        priced = _PricedCart(
            currency=currency,
            items=items,
            lines=lines,
            subtotal_cents=subtotal,
            shipping=option,
            tax_cents=tax.tax_cents,
            tax_descriptor=tax.rate_descriptor,
        )

        mismatches = [
            {
                "loc": [name],
                "msg": f"Expected {expected}, got {getattr(request, name)}",
                "type": "amount_mismatch",
            }
            for name, expected in (
                ("subtotal_cents", priced.subtotal_cents),
                ("shipping_cents", priced.shipping.cost_cents),
                ("tax_cents", priced.tax_cents),
                ("total_cents", priced.total_cents),
            )
            if getattr(request, name) != expected
        ]
        if mismatches:
            raise ValidationError(message="Order totals have changed. Please review your order.", details=mismatches)

        return priced

    async def submit(self, request: CheckoutRequest) -> CheckoutResult:
        """Run the checkout.

        Returns:
            CheckoutResult: The persisted pending order.

        Raises:
            ValidationError: Nothing was reserved or charged.
            InventoryUnavailableError: Nothing was reserved or charged.
            PaymentDeclinedError: Stock was released; no order exists.
            PaymentNetworkError: Stock was released; retry with the same attempt id.
            InternalError: The charge was refunded and stock released.
        """
        attempt_id = request.checkout_attempt_id or str(uuid.uuid4())
        customer_email = str(request.customer.email).strip().lower()

        if request.checkout_attempt_id:
            existing = self.repository.find_by_attempt_id(attempt_id)
            if existing and existing["customer"]["email"] == customer_email:
                logger.info("Attempt %s already produced order %s", attempt_id, existing["order_number"])
                return CheckoutResult(order=existing, confirmation_sent=False)

        priced = await self.price(request)
        order_id = order_id_for_attempt(attempt_id)
        order_number = generate_order_number()

        await self.ledger.reserve_batch(priced.lines)

        try:
            charge = await asyncio.wait_for(
                self.gateway.charge(
                    request.payment_token,
                    priced.total_cents,
                    priced.currency,
                    idempotency_key=charge_idempotency_key(attempt_id),
                    metadata={"checkout_attempt_id": attempt_id, "email": customer_email},
                ),
                timeout=self.settings.payment_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            await self.ledger.release_all(priced.lines)
            logger.warning("Charge timed out for attempt %s", attempt_id)
            raise PaymentNetworkError("Payment timed out. You can safely try again.") from e
        except (PaymentDeclinedError, PaymentNetworkError):
            await self.ledger.release_all(priced.lines)
            raise
        except Exception as e:
            await self.ledger.release_all(priced.lines)
            logger.error("Unexpected charge failure for attempt %s: %s", attempt_id, str(e))
            raise PaymentNetworkError() from e

        # A concurrent submission of this attempt may have saved the order first
        existing = self.repository.find_by_charge_id(charge.charge_id)
        if existing:
            await self.ledger.release_all(priced.lines)
            logger.info("Attempt %s already produced order %s", attempt_id, existing["order_number"])
            return CheckoutResult(order=existing, confirmation_sent=False)

        now = utc_now_iso()
        order: Order = {
            "id": order_id,
            "order_number": order_number,
            "customer": {
                "name": request.customer.name.strip(),
                "email": customer_email,
                "phone": request.customer.phone,
            },
            "shipping_address": _normalize_address(request.shipping_address.model_dump()),
            "items": priced.items,
            "currency": priced.currency,
            "subtotal_cents": priced.subtotal_cents,
            "shipping_cents": priced.shipping.cost_cents,
            "tax_cents": priced.tax_cents,
            "total_cents": priced.total_cents,
            "tax_descriptor": priced.tax_descriptor,
            "shipping_carrier": priced.shipping.carrier,
            "shipping_service": priced.shipping.service,
            "status": OrderStatus.PENDING.value,
            "status_history": [history_entry(OrderStatus.PENDING, CUSTOMER_ACTOR, "Order received")],
            "tracking_number": None,
            "payment_provider": self.gateway.name,
            "charge_id": charge.charge_id,
            "checkout_attempt_id": attempt_id,
            "refund": None,
            "fulfillment_steps": [],
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }

        try:
            order = self.repository.insert(order)
        except Exception as e:
            existing = self._saved_order_for(charge.charge_id)
            if existing:
                await self.ledger.release_all(priced.lines)
                return CheckoutResult(order=existing, confirmation_sent=False)
            await self._compensate_unsaved_order(order, priced, e)

        logger.info(
            "Order %s created: %d %s via %s",
            order_number,
            priced.total_cents,
            priced.currency,
            self.gateway.name,
        )

        email_result = await self.email_service.send_order_confirmation(order)
        return CheckoutResult(order=order, confirmation_sent=email_result.get("success", False))

    def _saved_order_for(self, charge_id: str) -> Order | None:
        """Order a concurrent submission saved for this charge, if the lookup works at all."""
        try:
            return self.repository.find_by_charge_id(charge_id)
        except Exception as e:
            logger.warning("Could not look up order for charge %s: %s", charge_id, str(e))
            return None

    async def _compensate_unsaved_order(self, order: Order, priced: _PricedCart, cause: Exception) -> None:
        """Undo a charge whose order could not be saved, then raise InternalError."""
        refund_id = None
        refund_error = None
        try:
            refund = await self.gateway.refund(
                order["charge_id"],
                order["total_cents"],
                idempotency_key=refund_idempotency_key(order["id"]),
                reason="Order could not be saved",
            )
            refund_id = refund.refund_id
        except Exception as e:
            refund_error = str(e)

        await self.ledger.release_all(priced.lines)

        logger.critical(
            "Order %s charged (%s) but not saved: %s. Refund: %s",
            order["order_number"],
            order["charge_id"],
            str(cause),
            refund_id or f"FAILED ({refund_error})",
        )
        await self.email_service.send_admin_alert(
            f"Checkout failed after charge for {order['order_number']}",
            {
                "order_id": order["id"],
                "order_number": order["order_number"],
                "customer_email": order["customer"]["email"],
                "charge_id": order["charge_id"],
                "amount": f"{order['total_cents']} {order['currency']}",
                "error": str(cause),
                "refund_id": refund_id,
                "refund_error": refund_error,
            },
        )

        if refund_error:
            raise InternalError(
                "We could not complete your order. Any charge will be refunded; our team has been notified."
            ) from cause
        raise InternalError() from cause
