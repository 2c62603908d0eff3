"""Payment gateway contract and provider selection.

The server never sees card data. The browser tokenizes with the provider's
SDK using ``client_config()`` and the checkout charges that token.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from storefront.core.config import get_settings


@dataclass(frozen=True)
class ChargeResult:
    """A captured charge."""

    charge_id: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class RefundResult:
    """A refund accepted by the gateway."""

    refund_id: str
    amount_cents: int


class PaymentGateway(ABC):
    """Provider-agnostic payment operations.

    Implementations translate provider failures into PaymentDeclinedError
    (the customer can retry with another card), PaymentNetworkError (the
    gateway could not be reached) and RefundFailedError.
    """

    name: str

    @abstractmethod
    async def charge(
        self,
        token: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> ChargeResult:
        """Charge a tokenized payment method.

        Repeating a call with the same idempotency_key never charges twice.
        """

    @abstractmethod
    async def refund(
        self,
        charge_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund a previous charge, in full or in part."""

    @abstractmethod
    def client_config(self) -> dict[str, Any]:
        """Public values the browser SDK needs to tokenize a card."""


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """Get cached gateway for the configured PAYMENT_PROVIDER."""
    settings = get_settings()
    if settings.payment_provider == "square":
        from storefront.core.square import SquareGateway

        return SquareGateway(settings)

    from storefront.core.stripe import StripeGateway

    return StripeGateway(settings)
