"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, Request

from storefront.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from storefront.core.config import get_settings
from storefront.core.errors import AuthenticationError, AuthorizationError, RateLimitError
from storefront.core.payments import PaymentGateway, get_payment_gateway
from storefront.core.rate_limiter import get_rate_limiter
from storefront.schemas.auth import UserContext
from storefront.services.checkout_service import CheckoutOrchestrator
from storefront.services.fulfillment_service import FulfillmentWorkflow
from storefront.services.inventory_ledger import InventoryLedger
from storefront.services.order_service import OrderLifecycleManager
from storefront.services.shipping_service import ShippingRateProvider
from storefront.services.tax_service import TaxCalculator
from storefront.services.wholesale_service import WholesaleService


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        AuthenticationError: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    try:
        payload = decode_jwt(parts[1])
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise AuthenticationError("Token has expired") from e
        raise AuthenticationError(e.message) from e


async def require_admin(
    user: Annotated[UserContext, Depends(get_current_user)],
) -> UserContext:
    """Require a user whose role is one of ADMIN_ROLES.

    Raises:
        AuthorizationError: 403 if the user is not an admin or subadmin.
    """
    if user.role not in get_settings().admin_roles_list:
        raise AuthorizationError("Admin access required")
    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AdminUser = Annotated[UserContext, Depends(require_admin)]


def client_ip(request: Request) -> str:
    """Best-effort client address, honoring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def check_checkout_rate_limit(request: Request) -> None:
    """Limit checkout submissions per client IP.

    Raises:
        RateLimitError: If the client has exceeded the rate limit.
    """
    settings = get_settings()
    limiter = get_rate_limiter()

    allowed, _remaining, retry_after = await limiter.check_and_increment(
        f"checkout:{client_ip(request)}",
        max_requests=settings.checkout_rate_limit_requests,
        window_seconds=settings.checkout_rate_limit_window_seconds,
    )

    if not allowed:
        raise RateLimitError(
            message="Too many checkout attempts. Please wait before trying again.",
            retry_after=retry_after,
            limit=settings.checkout_rate_limit_requests,
        )


CheckoutRateLimit = Annotated[None, Depends(check_checkout_rate_limit)]


# Service providers, overridable through app.dependency_overrides


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def get_inventory_ledger() -> InventoryLedger:
    return InventoryLedger()


def get_shipping_provider() -> ShippingRateProvider:
    return ShippingRateProvider()


def get_tax_calculator() -> TaxCalculator:
    return TaxCalculator()


def get_wholesale_service() -> WholesaleService:
    return WholesaleService()


def get_lifecycle_manager(
    ledger: Annotated[InventoryLedger, Depends(get_inventory_ledger)],
) -> OrderLifecycleManager:
    return OrderLifecycleManager(ledger=ledger)


def get_fulfillment_workflow(
    lifecycle: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
) -> FulfillmentWorkflow:
    return FulfillmentWorkflow(lifecycle=lifecycle)


def get_checkout_orchestrator(
    ledger: Annotated[InventoryLedger, Depends(get_inventory_ledger)],
    shipping: Annotated[ShippingRateProvider, Depends(get_shipping_provider)],
    tax: Annotated[TaxCalculator, Depends(get_tax_calculator)],
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(ledger=ledger, shipping=shipping, tax=tax)


Ledger = Annotated[InventoryLedger, Depends(get_inventory_ledger)]
ShippingProvider = Annotated[ShippingRateProvider, Depends(get_shipping_provider)]
Taxes = Annotated[TaxCalculator, Depends(get_tax_calculator)]
Wholesale = Annotated[WholesaleService, Depends(get_wholesale_service)]
Lifecycle = Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)]
Fulfillment = Annotated[FulfillmentWorkflow, Depends(get_fulfillment_workflow)]
Checkout = Annotated[CheckoutOrchestrator, Depends(get_checkout_orchestrator)]
Gateway = Annotated[PaymentGateway, Depends(get_gateway)]
