"""Admin order management routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query

from storefront.api.deps import AdminUser, Fulfillment, Lifecycle
from storefront.models.order import FulfillmentStep, OrderStatus
from storefront.schemas.order import (
    CancellationResponse,
    CancelRequest,
    OrderListResponse,
    OrderResponse,
    OrderUpdateRequest,
    RefundRetryRequest,
    ShipRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Orders newest first, optionally filtered by status.",
)
async def list_orders(
    admin: AdminUser,
    lifecycle: Lifecycle,
    status: Annotated[OrderStatus | None, Query(description="Only orders in this status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> OrderListResponse:
    """List orders for the admin dashboard."""
    orders = await lifecycle.list_orders(status.value if status else None, limit=limit, offset=offset)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    responses={404: {"description": "Order not found"}},
)
async def get_order(order_id: str, admin: AdminUser, lifecycle: Lifecycle) -> OrderResponse:
    """Return the full order projection."""
    return OrderResponse.model_validate(await lifecycle.get_order(order_id))


@router.patch(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Update order",
    description="Change status and/or tracking number. Shipping and cancelling run their usual side effects.",
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Transition not allowed"},
    },
)
async def update_order(
    order_id: str,
    data: OrderUpdateRequest,
    admin: AdminUser,
    lifecycle: Lifecycle,
) -> OrderResponse:
    """Apply an admin status or tracking update.

    Args:
        order_id: Order to update.
        data: New status, tracking number and history note.
        admin: Authenticated admin, recorded as the actor.
        lifecycle: Order lifecycle manager.

    Returns:
        OrderResponse: The updated order.
    """
    order = await lifecycle.update_order(
        order_id,
        actor=admin.actor,
        status=data.status,
        tracking_number=data.tracking_number,
        note=data.note,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=CancellationResponse,
    summary="Cancel order",
    description="Cancels the order, releases its stock and refunds the charge.",
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Already cancelled, delivered or shipped"},
    },
)
async def cancel_order(
    order_id: str,
    admin: AdminUser,
    lifecycle: Lifecycle,
    data: CancelRequest | None = None,
) -> CancellationResponse:
    """Cancel an order.

    A refund failure does not fail the request: the order stays cancelled
    and ``refund_error`` says why, so the refund can be retried.
    """
    result = await lifecycle.cancel(order_id, actor=admin.actor, reason=data.reason if data else None)
    return CancellationResponse(
        order=OrderResponse.model_validate(result.order),
        refund_id=result.refund_id,
        refund_error=result.refund_error,
        email_sent=result.email_sent,
    )


@router.post(
    "/{order_id}/refund",
    response_model=OrderResponse,
    summary="Retry refund",
    description="Re-issues the refund of a cancelled order that has none recorded.",
    responses={
        409: {"description": "Order is not cancelled or was never charged"},
        502: {"description": "Payment provider refused the refund"},
    },
)
async def retry_refund(
    order_id: str,
    admin: AdminUser,
    lifecycle: Lifecycle,
    data: RefundRetryRequest | None = None,
) -> OrderResponse:
    """Retry the refund of a cancelled order."""
    logger.info("Refund retry for order %s requested by %s", order_id, admin.actor)
    order = await lifecycle.retry_refund(order_id, note=data.note if data else None)
    return OrderResponse.model_validate(order)


# Declared before /fulfillment/{step} so "ship" is not taken for a step name
@router.post(
    "/{order_id}/fulfillment/ship",
    response_model=OrderResponse,
    summary="Ship order",
    description="Marks a fully packed order shipped with its tracking number and emails the customer.",
)
async def ship_order(
    order_id: str,
    data: ShipRequest,
    admin: AdminUser,
    workflow: Fulfillment,
) -> OrderResponse:
    """Ship an order."""
    order = await workflow.ship(order_id, data.tracking_number, actor=admin.actor, carrier=data.carrier)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/fulfillment/{step}",
    response_model=OrderResponse,
    summary="Complete fulfillment step",
    description="Completes verify, prepare or package. Steps must be done in order.",
)
async def complete_step(
    order_id: str,
    step: FulfillmentStep,
    admin: AdminUser,
    workflow: Fulfillment,
) -> OrderResponse:
    """Tick a checklist step."""
    order = await workflow.complete_step(order_id, step, actor=admin.actor)
    return OrderResponse.model_validate(order)
