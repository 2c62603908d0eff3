"""Destination currencies and USD conversion in minor units."""

from decimal import ROUND_HALF_UP, Decimal

from storefront.core.config import get_settings

SUPPORTED_COUNTRIES = ("US", "CA", "MX")

COUNTRY_CURRENCY = {
    "US": "USD",
    "CA": "CAD",
    "MX": "MXN",
}


def currency_for_country(country: str) -> str:
    """Currency an order shipped to country is charged in. Unknown countries fall back to USD."""
    return COUNTRY_CURRENCY.get(country.strip().upper(), "USD")


def round_cents(amount: Decimal) -> int:
    """Round a fractional cent amount half-up to whole cents."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def convert_from_usd(amount_cents: int, currency: str, rates: dict[str, float] | None = None) -> int:
    """Convert USD cents to the target currency's cents using configured rates."""
    rates = rates or get_settings().exchange_rates
    rate = Decimal(str(rates.get(currency.upper(), 1.0)))
    return round_cents(Decimal(amount_cents) * rate)
