"""Global error handling for consistent error responses.

Every failure leaves the API as ``ErrorResponse``: application errors from
the middleware, request validation and ``HTTPException`` from exception
handlers registered in ``create_app``.
"""

import logging
import time
import traceback
from typing import Any, Callable

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.core.errors import APIError, PaymentDeclinedError, RateLimitError
from storefront.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        error_type: Error category for client handling.
        message: Human-readable error description.
        status_code: HTTP status code.
        details: Optional field-level error details.
        request_id: Optional request ID for tracing.
        headers: Extra response headers.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def rate_limit_headers(error: RateLimitError) -> dict[str, str]:
    return {
        "Retry-After": str(error.retry_after),
        "X-RateLimit-Limit": str(error.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(time.time()) + error.retry_after),
    }


def api_error_response(error: APIError, request_id: str | None = None) -> JSONResponse:
    """Render an application error, adding what clients need to react to it."""
    details = error.details
    headers = None
    if isinstance(error, PaymentDeclinedError) and error.decline_code and not details:
        # Point the checkout form at the card field
        details = [{"loc": ["payment_token"], "msg": error.message, "type": error.decline_code}]
    if isinstance(error, RateLimitError):
        headers = rate_limit_headers(error)
    return create_error_response(
        error_type=error.error_type,
        message=error.message,
        status_code=error.status_code,
        details=details,
        request_id=request_id,
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body/query validation failures as validation_error with field paths."""
    details = [
        {
            # Drop the leading "body"/"query" segment so paths match service-level errors
            "loc": [str(part) for part in error["loc"][1:]] or [str(part) for part in error["loc"]],
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info("Request validation failed on %s: %d error(s)", request.url.path, len(details))
    return create_error_response(
        error_type="validation_error",
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details=details,
        request_id=request.headers.get("X-Request-ID"),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException (raised by routes or by routing itself, e.g. 404/405)."""
    logger.warning("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    return create_error_response(
        error_type="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
        request_id=request.headers.get("X-Request-ID"),
        headers=dict(exc.headers) if exc.headers else None,
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Logs full stack traces for unexpected errors while returning safe
    messages to clients.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        if e.status_code >= 500:
            log = logger.error
        elif isinstance(e, RateLimitError):
            log = logger.info
        else:
            log = logger.warning
        log(
            "API error on %s: %s - %s",
            request.url.path,
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return api_error_response(e, request_id)

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
