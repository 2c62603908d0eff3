"""Warehouse fulfillment checklist.

The checklist (verify, prepare, package, ship) is advisory progress stored
on the order; it never replaces the order status. Completing ``verify``
starts processing and completing ``ship`` marks the order shipped.
"""

import logging
from typing import Any

from storefront.core.errors import InvalidTransitionError, ValidationError
from storefront.models.order import (
    FULFILLMENT_SEQUENCE,
    FulfillmentStep,
    Order,
    OrderStatus,
    history_entry,
)
from storefront.services.email_service import EmailService
from storefront.services.order_service import OrderLifecycleManager

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)


def next_step(order: Order) -> FulfillmentStep | None:
    """First checklist step not yet completed, or None when all are done."""
    done = set(order.get("fulfillment_steps") or [])
    for step in FULFILLMENT_SEQUENCE:
        if step.value not in done:
            return step
    return None


class FulfillmentWorkflow:
    """Service driving an order through the warehouse checklist."""

    def __init__(
        self,
        lifecycle: OrderLifecycleManager | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        self.lifecycle = lifecycle or OrderLifecycleManager()
        self.email_service = email_service or self.lifecycle.email_service

    async def complete_step(self, order_id: str, step: FulfillmentStep | str, actor: str) -> Order:
        """Mark a checklist step done.

        Steps must be completed in order. ``ship`` needs a tracking number
        and goes through ship().

        Raises:
            ValidationError: If the step is out of order or is ``ship``.
            InvalidTransitionError: If the order is not pending or processing.
        """
        step = FulfillmentStep(step)
        if step == FulfillmentStep.SHIP:
            raise ValidationError.for_field(["step"], "Use the ship action with a tracking number")

        def build_changes(order: Order) -> dict[str, Any]:
            if order["status"] not in ACTIVE_STATUSES:
                raise InvalidTransitionError(
                    order["status"],
                    order["status"],
                    message=f"Cannot fulfill an order that is {order['status']}",
                )
            steps = list(order.get("fulfillment_steps") or [])
            if step.value in steps:
                return {}
            expected = next_step(order)
            if expected != step:
                raise ValidationError.for_field(
                    ["step"],
                    f"Complete '{expected.value}' before '{step.value}'",
                )

            changes: dict[str, Any] = {"fulfillment_steps": [*steps, step.value]}
            if step == FulfillmentStep.VERIFY and order["status"] == OrderStatus.PENDING.value:
                changes["status"] = OrderStatus.PROCESSING.value
                changes["status_history"] = [
                    *order["status_history"],
                    history_entry(OrderStatus.PROCESSING, actor, "Order verified"),
                ]
            return changes

        order = await self.lifecycle.mutate(order_id, build_changes)
        logger.info("Order %s: %s completed by %s", order["order_number"], step.value, actor)
        return order

    async def ship(
        self,
        order_id: str,
        tracking_number: str,
        actor: str,
        carrier: str | None = None,
    ) -> Order:
        """Mark an order shipped with its tracking number and notify the customer.

        Raises:
            ValidationError: If the tracking number is blank or checklist steps are missing.
            InvalidTransitionError: If the order is not processing.
        """
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError.for_field(["tracking_number"], "Tracking number is required to ship")

        def build_changes(order: Order) -> dict[str, Any]:
            if order["status"] != OrderStatus.PROCESSING.value:
                raise InvalidTransitionError(order["status"], OrderStatus.SHIPPED.value)
            steps = list(order.get("fulfillment_steps") or [])
            missing = [s.value for s in FULFILLMENT_SEQUENCE[:-1] if s.value not in steps]
            if missing:
                raise ValidationError.for_field(
                    ["step"],
                    f"Complete {', '.join(missing)} before shipping",
                )
            changes: dict[str, Any] = {
                "status": OrderStatus.SHIPPED.value,
                "tracking_number": tracking_number,
                "fulfillment_steps": [*steps, FulfillmentStep.SHIP.value],
                "status_history": [
                    *order["status_history"],
                    history_entry(OrderStatus.SHIPPED, actor, f"Tracking {tracking_number}"),
                ],
            }
            if carrier:
                changes["shipping_carrier"] = carrier
            return changes

        order = await self.lifecycle.mutate(order_id, build_changes)
        logger.info("Order %s shipped by %s, tracking %s", order["order_number"], actor, tracking_number)

        await self.email_service.send_shipping_notification(order)
        return order

    async def mark_delivered(self, order_id: str, actor: str) -> Order:
        """Record delivery of a shipped order."""
        return await self.lifecycle.transition(order_id, OrderStatus.DELIVERED, actor, "Delivered")
