"""Shipping rate quotes from USPS and FedEx rate tables.

Each carrier is a rate source. Sources that can serve the destination are
queried concurrently, their options merged and sorted cheapest first, and
USD costs converted to the destination currency.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from storefront.core.config import Settings, get_settings
from storefront.core.currency import SUPPORTED_COUNTRIES, currency_for_country, round_cents
from storefront.models.order import ShippingAddress

logger = logging.getLogger(__name__)

DEFAULT_ITEM_WEIGHT_LB = 1.0
BOX_LENGTH_IN = 12
BOX_WIDTH_IN = 10
BOX_HEIGHT_IN = 6
MAX_HEIGHT_IN = 108
MIN_WEIGHT_LB = 0.1

# Countries USPS serves from a US origin
USPS_INTERNATIONAL_COUNTRIES = frozenset({
    "US", "CA", "MX",
    "GB", "FR", "DE", "IT", "ES", "NL", "BE", "CH", "AT", "SE", "NO", "DK", "FI",
    "AU", "NZ", "JP", "KR", "CN", "HK", "SG", "TW",
    "BR", "AR", "CL", "CO", "PE",
})

REQUIRED_ADDRESS_FIELDS = ("street", "city", "state", "zip", "country")


@dataclass(frozen=True)
class PackageProfile:
    """Weight and box dimensions of the whole shipment."""

    weight_lb: float
    length_in: int
    width_in: int
    height_in: int


@dataclass(frozen=True)
class ShippingOption:
    """One carrier service with its cost in the destination currency."""

    carrier: str
    service: str
    service_name: str
    cost_cents: int
    currency: str
    estimated_days_min: int
    estimated_days_max: int


@dataclass(frozen=True)
class ShippingQuote:
    """Options sorted by cost, or an empty list with the reason."""

    options: list[ShippingOption] = field(default_factory=list)
    reason: str | None = None

    @property
    def default_option(self) -> ShippingOption | None:
        """Cheapest option, preselected for the customer."""
        return self.options[0] if self.options else None


@dataclass(frozen=True)
class _TableRate:
    service: str
    service_name: str
    base_factor: Decimal
    min_days: int
    max_days: int


def package_profile(quantities: list[int], weights_lb: list[float | None] | None = None) -> PackageProfile:
    """Estimate the package for a cart.

    Items weigh 1 lb unless a weight is given and are stacked two per layer
    in a 12x10x6 box, capped at the 108 in carrier limit.
    """
    weights_lb = weights_lb or [None] * len(quantities)
    total_weight = sum((weight or DEFAULT_ITEM_WEIGHT_LB) * qty for qty, weight in zip(quantities, weights_lb))
    total_units = sum(quantities)
    height = BOX_HEIGHT_IN * math.ceil(total_units / 2)
    return PackageProfile(
        weight_lb=max(MIN_WEIGHT_LB, total_weight),
        length_in=BOX_LENGTH_IN,
        width_in=BOX_WIDTH_IN,
        height_in=min(height, MAX_HEIGHT_IN),
    )


def zone_multiplier(zip_code: str) -> Decimal:
    """Distance factor from the first three digits of the destination postal code."""
    try:
        prefix = int(zip_code.strip()[:3])
    except ValueError:
        return Decimal("1.3")
    if 100 <= prefix <= 199:
        return Decimal("1.0")
    if 900 <= prefix <= 999:
        return Decimal("1.5")
    if 600 <= prefix <= 699 or 300 <= prefix <= 399:
        return Decimal("1.2")
    return Decimal("1.3")


class CarrierRateSource(ABC):
    """A carrier that can price a shipment."""

    carrier: str

    @abstractmethod
    def can_deliver(self, origin_country: str, destination_country: str) -> bool:
        """Whether this carrier serves the route."""

    @abstractmethod
    async def rates(self, destination: ShippingAddress, package: PackageProfile) -> list[tuple[_TableRate, Decimal]]:
        """Services with their cost in USD."""


class TableRateSource(CarrierRateSource):
    """Prices services as (base * factor + weight * per_lb) * zone."""

    base_rate: Decimal
    per_lb: Decimal
    services: tuple[_TableRate, ...]

    async def rates(self, destination: ShippingAddress, package: PackageProfile) -> list[tuple[_TableRate, Decimal]]:
        weight_charge = Decimal(str(package.weight_lb)) * self.per_lb
        zone = zone_multiplier(destination["zip"])
        return [
            (service, (self.base_rate * service.base_factor + weight_charge) * zone)
            for service in self.services
        ]


class USPSRateSource(TableRateSource):
    carrier = "USPS"
    base_rate = Decimal("5")
    per_lb = Decimal("0.5")
    services = (
        _TableRate("usps_priority", "USPS Priority Mail", Decimal("1"), 2, 5),
        _TableRate("usps_priority_express", "USPS Priority Mail Express", Decimal("2"), 1, 2),
        _TableRate("usps_ground", "USPS Ground", Decimal("0.7"), 5, 10),
    )

    def can_deliver(self, origin_country: str, destination_country: str) -> bool:
        if origin_country == destination_country:
            return True
        return origin_country == "US" and destination_country in USPS_INTERNATIONAL_COUNTRIES


class FedExRateSource(TableRateSource):
    carrier = "FedEx"
    base_rate = Decimal("8")
    per_lb = Decimal("0.6")
    services = (
        _TableRate("fedex_ground", "FedEx Ground", Decimal("1"), 3, 7),
        _TableRate("fedex_2day", "FedEx 2Day", Decimal("2.5"), 2, 2),
        _TableRate("fedex_overnight", "FedEx Overnight", Decimal("4"), 1, 1),
    )

    def can_deliver(self, origin_country: str, destination_country: str) -> bool:
        return True


class ShippingRateProvider:
    """Service producing shipping quotes. Pure: no side effects."""

    def __init__(
        self,
        sources: list[CarrierRateSource] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.sources = sources if sources is not None else [USPSRateSource(), FedExRateSource()]
        self.settings = settings or get_settings()

    @staticmethod
    def missing_address_fields(address: ShippingAddress) -> list[str]:
        """Names of address fields that are absent or blank."""
        return [name for name in REQUIRED_ADDRESS_FIELDS if not str(address.get(name) or "").strip()]

    async def quote(
        self,
        address: ShippingAddress,
        quantities: list[int],
        weights_lb: list[float | None] | None = None,
    ) -> ShippingQuote:
        """Quote every service that can reach the address, cheapest first.

        Returns an empty quote with reason ``incomplete_address``,
        ``empty_cart`` or ``unsupported_destination`` instead of raising.
        """
        if self.missing_address_fields(address):
            return ShippingQuote(reason="incomplete_address")
        if not quantities or sum(quantities) <= 0:
            return ShippingQuote(reason="empty_cart")

        country = address["country"].strip().upper()
        if country not in SUPPORTED_COUNTRIES:
            return ShippingQuote(reason="unsupported_destination")

        origin_country = self.settings.shipping_origin_country
        sources = [s for s in self.sources if s.can_deliver(origin_country, country)]
        if not sources:
            return ShippingQuote(reason="unsupported_destination")

        package = package_profile(quantities, weights_lb)
        results = await asyncio.gather(
            *(source.rates(address, package) for source in sources),
            return_exceptions=True,
        )

        currency = currency_for_country(country)
        rate = Decimal(str(self.settings.exchange_rates[currency]))
        options: list[ShippingOption] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error("%s rate lookup failed: %s", source.carrier, str(result))
                continue
            for service, cost_usd in result:
                options.append(ShippingOption(
                    carrier=source.carrier,
                    service=service.service,
                    service_name=service.service_name,
                    cost_cents=round_cents(cost_usd * 100 * rate),
                    currency=currency,
                    estimated_days_min=service.min_days,
                    estimated_days_max=service.max_days,
                ))

        if not options:
            return ShippingQuote(reason="unsupported_destination")

        options.sort(key=lambda option: option.cost_cents)
        return ShippingQuote(options=options)

    @staticmethod
    def find_option(quote: ShippingQuote, carrier: str, service: str) -> ShippingOption | None:
        """Find a previously selected carrier/service in a fresh quote."""
        for option in quote.options:
            if option.carrier.lower() == carrier.lower() and option.service == service:
                return option
        return None
