"""Application error taxonomy.

Every error a caller can observe derives from APIError, which carries the
HTTP status, a machine-readable ``error_type`` and optional field-level details.
The error handler middleware turns these into the standard error body.

Subclasses declare their status, type and default message as class attributes;
raise sites only pass what differs.
"""

from typing import Any

from fastapi import status


class APIError(Exception):
    """An error with a defined HTTP representation."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Unexpected error"

    def __init__(
        self,
        message: str | None = None,
        details: list[dict[str, Any]] | None = None,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
    ) -> None:
        """
        Args:
            message: Text shown to the caller. Falls back to ``default_message``.
            details: Field-level entries (``loc``, ``msg``, ``type``).
            status_code: Overrides the class status for one-off errors.
            error_type: Overrides the class error type for one-off errors.
        """
        self.message = message or self.default_message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        super().__init__(self.message)


class ValidationError(APIError):
    """Malformed or incomplete input. Raised before any side effect."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "validation_error"
    default_message = "Validation error"

    @classmethod
    def for_field(cls, loc: list[str | int], msg: str, type_: str = "value_error") -> "ValidationError":
        """Build a validation error pointing at a single field path."""
        return cls(message=msg, details=[{"loc": [str(part) for part in loc], "msg": msg, "type": type_}])


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class InventoryUnavailableError(APIError):
    """Insufficient stock for one or more lines. ``details`` names each short line."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "inventory_unavailable"
    default_message = "Insufficient stock"


class PaymentDeclinedError(APIError):
    """The gateway rejected the charge. The customer can retry with another card."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    error_type = "payment_declined"
    default_message = "Payment was declined"

    def __init__(self, message: str | None = None, decline_code: str | None = None) -> None:
        super().__init__(message)
        self.decline_code = decline_code


class PaymentNetworkError(APIError):
    """The gateway was unreachable or timed out. Safe to retry with the same attempt id."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "payment_network_error"
    default_message = "Payment provider unavailable"


class RefundFailedError(Exception):
    """The gateway did not confirm a refund."""


class InternalError(APIError):
    """Failure after side effects were applied; compensation has been attempted."""

    default_message = "We could not complete your order. You have not been charged."
    error_type = "internal_error"


class AlreadyCancelledError(APIError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "already_cancelled"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} is already cancelled")


class AlreadyDeliveredError(APIError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "already_delivered"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} has been delivered and cannot be cancelled")


class InvalidTransitionError(APIError):
    """Requested status change is not in the transition table."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "invalid_transition"

    def __init__(self, current: str, requested: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot change order status from {current} to {requested}")
        self.current = current
        self.requested = requested


class ConcurrentModificationError(Exception):
    """An order changed between read and compare-and-swap."""


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_error"
    default_message = "Authentication required"


class AuthorizationError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


class RateLimitError(APIError):
    """Too many requests from one client. Rendered with Retry-After headers."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_type = "rate_limit_exceeded"
    default_message = "Rate limit exceeded"

    def __init__(self, message: str | None = None, retry_after: int = 60, limit: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit
