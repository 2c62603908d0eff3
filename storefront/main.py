"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.api.middleware.error_handler import (
    error_handler_middleware,
    http_exception_handler,
    validation_exception_handler,
)
from storefront.api.routes import (
    admin_orders,
    admin_products,
    checkout,
    health,
    orders,
    shipping,
    webhooks,
    wholesale,
)
from storefront.core.config import get_settings
from storefront.core.rate_limiter import init_rate_limiter, shutdown_rate_limiter
from storefront.core.stripe import configure_stripe

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure the payment SDK and the checkout limiter for the life of the process."""
    settings = get_settings()
    logger.info(
        "Starting %s in %s mode (storage=%s, payments=%s)",
        settings.app_name,
        settings.app_env,
        settings.storage_backend,
        settings.payment_provider,
    )

    if settings.payment_provider == "stripe":
        configure_stripe()
        logger.info("Stripe SDK configured")

    await init_rate_limiter()
    logger.info("Rate limiter initialized")

    yield
    await shutdown_rate_limiter()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    """Build the app with the standard error envelope and all versioned routes."""
    settings = get_settings()

    app = FastAPI(
        title="Storefront API",
        description="Checkout, order lifecycle and inventory for a US/CA/MX apparel storefront",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Outermost, so every failure leaves in the standard error body
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Probes stay unversioned
    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")

    # Storefront routes
    api_v1_router.include_router(checkout.router)
    api_v1_router.include_router(shipping.router)
    api_v1_router.include_router(orders.router)
    api_v1_router.include_router(wholesale.router)

    # Admin routes
    api_v1_router.include_router(admin_orders.router)
    api_v1_router.include_router(admin_products.router)

    # Webhook routes
    api_v1_router.include_router(webhooks.router)

    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
