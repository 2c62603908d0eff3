"""Customer order tracking route."""

from fastapi import APIRouter

from storefront.api.deps import Lifecycle
from storefront.schemas.order import TrackOrderRequest, TrackOrderResponse

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/track",
    response_model=TrackOrderResponse,
    summary="Track an order",
    description="Look up an order by the checkout email plus its order number or tracking number.",
    responses={404: {"description": "No matching order"}},
)
async def track_order(data: TrackOrderRequest, lifecycle: Lifecycle) -> TrackOrderResponse:
    """Return the customer-visible view of an order.

    Raises:
        NotFoundError: 404 if the email and identifier match nothing.
    """
    order = await lifecycle.track_order(str(data.email), data.identifier)
    return TrackOrderResponse.model_validate(order)
