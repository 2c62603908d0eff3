"""Order lifecycle: status transitions, cancellation and refunds.

Every mutation re-reads the order, evaluates its guard against that fresh
state and writes back with a compare-and-swap on ``version``. A lost race
is retried, so two admins cancelling at once produce exactly one release
of stock and one refund.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import status as http_status
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from storefront.core.errors import (
    AlreadyCancelledError,
    AlreadyDeliveredError,
    APIError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    RefundFailedError,
    ValidationError,
)
from storefront.core.payments import PaymentGateway, get_payment_gateway
from storefront.core.storage import get_order_repository
from storefront.models.inventory import VariantKey
from storefront.models.order import Order, OrderStatus, can_transition, history_entry, utc_now_iso
from storefront.repositories.orders import OrderRepository
from storefront.services.email_service import EmailService
from storefront.services.inventory_ledger import InventoryLedger, StockLine

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 5


def refund_idempotency_key(order_id: str) -> str:
    """Gateway idempotency key shared by every refund attempt for an order."""
    return f"refund-{order_id}"


def cancellation_reason(order: Order) -> str | None:
    """Note recorded when the order was cancelled.

    Every refund request for the order sends this, so a retried request
    matches the original one under the shared idempotency key.
    """
    for entry in reversed(order["status_history"]):
        if entry["status"] == OrderStatus.CANCELLED.value:
            return entry.get("note")
    return None


def order_stock_lines(order: Order) -> list[StockLine]:
    """Stock held by an order, one line per item."""
    return [
        StockLine(VariantKey.of(item["product_id"], item["size"], item["color"]), item["quantity"])
        for item in order["items"]
    ]


@dataclass(frozen=True)
class CancellationResult:
    """Outcome of a cancellation. The order is cancelled even when the refund failed."""

    order: Order
    refund_id: str | None
    refund_error: str | None
    email_sent: bool


class OrderLifecycleManager:
    """Service owning every order mutation after checkout."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        ledger: InventoryLedger | None = None,
        gateway: PaymentGateway | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize the lifecycle manager.

        Args:
            repository: Optional order repository for testing.
            ledger: Optional inventory ledger for testing.
            gateway: Optional payment gateway for testing.
            email_service: Optional email service for testing.
        """
        self.repository = repository or get_order_repository()
        self.ledger = ledger or InventoryLedger()
        self._gateway = gateway
        self.email_service = email_service or EmailService()

    @property
    def gateway(self) -> PaymentGateway:
        """Get payment gateway."""
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    @retry(
        retry=retry_if_exception_type(ConcurrentModificationError),
        stop=stop_after_attempt(MAX_CAS_ATTEMPTS),
        wait=wait_random(min=0, max=0.05),
        reraise=True,
    )
    async def mutate(self, order_id: str, build_changes: Callable[[Order], dict[str, Any]]) -> Order:
        """Apply build_changes to the freshest order state with compare-and-swap.

        build_changes runs on every attempt and may raise to abort.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        changes = build_changes(order)
        updated = self.repository.compare_and_swap(order_id, order["version"], changes)
        if updated is None:
            logger.info("Order %s changed concurrently (version %d), retrying", order_id, order["version"])
            raise ConcurrentModificationError(order_id)
        return updated

    async def get_order(self, order_id: str) -> Order:
        """Get an order by id.

        Raises:
            NotFoundError: If no such order exists.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(self, status_filter: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        """List orders newest first, optionally filtered by status."""
        if status_filter is not None:
            status_filter = OrderStatus(status_filter).value
        return self.repository.list(status=status_filter, limit=limit, offset=offset)

    async def track_order(self, email: str, identifier: str) -> Order:
        """Find a customer's order by order number or tracking number.

        Raises:
            NotFoundError: If nothing matches both the email and the identifier.
        """
        order = self.repository.find_by_email(email.strip(), identifier.strip())
        if order is None:
            raise NotFoundError("No order matches that email and order or tracking number")
        return order

    async def transition(
        self,
        order_id: str,
        target: OrderStatus | str,
        actor: str,
        note: str | None = None,
        extra_changes: dict[str, Any] | None = None,
    ) -> Order:
        """Move an order to target status if the transition table allows it.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidTransitionError: If current -> target is not permitted.
        """
        target = OrderStatus(target)

        def build_changes(order: Order) -> dict[str, Any]:
            if not can_transition(order["status"], target):
                raise InvalidTransitionError(order["status"], target.value)
            return {
                **(extra_changes or {}),
                "status": target.value,
                "status_history": [*order["status_history"], history_entry(target, actor, note)],
            }

        order = await self.mutate(order_id, build_changes)
        logger.info("Order %s -> %s by %s", order["order_number"], target.value, actor)
        return order

    async def set_tracking_number(self, order_id: str, tracking_number: str) -> Order:
        """Record or correct a tracking number without changing status."""
        tracking_number = tracking_number.strip()
        if not tracking_number:
            raise ValidationError.for_field(["tracking_number"], "Tracking number cannot be blank")

        def build_changes(order: Order) -> dict[str, Any]:
            if order["status"] == OrderStatus.CANCELLED.value:
                raise InvalidTransitionError(
                    order["status"],
                    order["status"],
                    message="Cannot set a tracking number on a cancelled order",
                )
            return {"tracking_number": tracking_number}

        return await self.mutate(order_id, build_changes)

    async def update_order(
        self,
        order_id: str,
        actor: str,
        status: OrderStatus | str | None = None,
        tracking_number: str | None = None,
        note: str | None = None,
    ) -> Order:
        """Admin update of status and/or tracking number.

        Shipping goes through the fulfillment checklist and cancelling through
        cancel(), so their side effects always run.
        """
        if status is None and tracking_number is None:
            raise ValidationError.for_field(["body"], "Provide a status or a tracking number")

        if status is None:
            return await self.set_tracking_number(order_id, tracking_number)

        target = OrderStatus(status)
        if target == OrderStatus.CANCELLED:
            return (await self.cancel(order_id, actor=actor, reason=note)).order

        if target == OrderStatus.SHIPPED:
            from storefront.services.fulfillment_service import FulfillmentWorkflow

            workflow = FulfillmentWorkflow(lifecycle=self)
            return await workflow.ship(order_id, tracking_number or "", actor=actor)

        order = await self.transition(order_id, target, actor, note)
        if tracking_number is not None:
            order = await self.set_tracking_number(order_id, tracking_number)
        return order

    async def cancel(self, order_id: str, actor: str, reason: str | None = None) -> CancellationResult:
        """Cancel an order, release its stock and refund its charge.

        The status change is claimed first. Only the caller whose
        compare-and-swap wins goes on to release stock and refund, so a
        second cancellation fails with AlreadyCancelledError and has no
        side effects. A refund failure does not undo the cancellation; it is
        reported in the result for reconciliation.

        Raises:
            NotFoundError: If the order does not exist.
            AlreadyDeliveredError: If the order was delivered.
            AlreadyCancelledError: If the order is already cancelled.
            InvalidTransitionError: If the order has shipped.
        """

        def build_changes(order: Order) -> dict[str, Any]:
            current = OrderStatus(order["status"])
            if current == OrderStatus.DELIVERED:
                raise AlreadyDeliveredError(order_id)
            if current == OrderStatus.CANCELLED:
                raise AlreadyCancelledError(order_id)
            if not can_transition(current, OrderStatus.CANCELLED):
                raise InvalidTransitionError(
                    current.value,
                    OrderStatus.CANCELLED.value,
                    message="Shipped orders cannot be cancelled",
                )
            return {
                "status": OrderStatus.CANCELLED.value,
                "status_history": [
                    *order["status_history"],
                    history_entry(OrderStatus.CANCELLED, actor, reason),
                ],
            }

        order = await self.mutate(order_id, build_changes)
        logger.info("Order %s cancelled by %s", order["order_number"], actor)

        await self.ledger.release_all(order_stock_lines(order))

        refund_id = None
        refund_error = None
        if order.get("charge_id"):
            try:
                order = await self._refund(order)
                refund_id = order["refund"]["id"]
            except RefundFailedError as e:
                refund_error = str(e) or "Refund failed"
                logger.error(
                    "Refund failed for cancelled order %s (charge %s): %s",
                    order["order_number"],
                    order["charge_id"],
                    refund_error,
                )

        email_result = await self.email_service.send_cancellation_notice(
            order, reason=reason, refund_issued=refund_id is not None
        )

        return CancellationResult(
            order=order,
            refund_id=refund_id,
            refund_error=refund_error,
            email_sent=email_result.get("success", False),
        )

    async def _refund(self, order: Order) -> Order:
        """Refund the full charge and attach the refund record."""
        if order.get("payment_provider") and order["payment_provider"] != self.gateway.name:
            raise RefundFailedError(
                f"Order was paid with {order['payment_provider']}, active provider is {self.gateway.name}"
            )

        result = await self.gateway.refund(
            order["charge_id"],
            order["total_cents"],
            idempotency_key=refund_idempotency_key(order["id"]),
            reason=cancellation_reason(order),
        )
        return await self._attach_refund(order["id"], result.refund_id, result.amount_cents)

    async def _attach_refund(self, order_id: str, refund_id: str, amount_cents: int) -> Order:
        def build_changes(order: Order) -> dict[str, Any]:
            if order.get("refund"):
                return {}
            return {"refund": {"id": refund_id, "amount_cents": amount_cents, "created_at": utc_now_iso()}}

        return await self.mutate(order_id, build_changes)

    async def retry_refund(self, order_id: str, note: str | None = None) -> Order:
        """Re-issue the refund for a cancelled order that has none recorded.

        Sends the same key and parameters as the original attempt, so the
        gateway never refunds twice. ``note`` is only logged. An order that
        already has a refund is returned unchanged.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidTransitionError: If the order is not cancelled or was never charged.
            APIError: 502 if the gateway refuses the refund again.
        """
        order = await self.get_order(order_id)
        if order.get("refund"):
            return order
        if order["status"] != OrderStatus.CANCELLED.value:
            raise InvalidTransitionError(
                order["status"],
                "refunded",
                message="Only cancelled orders can be refunded",
            )
        if not order.get("charge_id"):
            raise InvalidTransitionError(order["status"], "refunded", message="Order has no charge to refund")

        if note:
            logger.info("Refund retry note for order %s: %s", order["order_number"], note)
        try:
            return await self._refund(order)
        except RefundFailedError as e:
            logger.error("Refund retry failed for order %s: %s", order["order_number"], str(e))
            raise APIError(
                message=f"Refund failed: {e}",
                status_code=http_status.HTTP_502_BAD_GATEWAY,
                error_type="refund_failed",
            ) from e

    async def record_external_refund(self, charge_id: str, refund_id: str, amount_cents: int) -> Order | None:
        """Attach a refund reported by the gateway, if the order lacks one.

        Returns:
            Order | None: The order, or None if no order used that charge.
        """
        order = self.repository.find_by_charge_id(charge_id)
        if order is None:
            logger.warning("Refund %s for unknown charge %s", refund_id, charge_id)
            return None
        if order.get("refund"):
            return order
        logger.info("Recording external refund %s for order %s", refund_id, order["order_number"])
        return await self._attach_refund(order["id"], refund_id, amount_cents)
