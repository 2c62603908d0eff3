"""Sales tax by destination country and state/province."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from storefront.core.currency import round_cents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxRate:
    """A percentage rate and the name printed on receipts."""

    rate: Decimal
    name: str

    @property
    def descriptor(self) -> str:
        return f"{self.name} ({self.rate.normalize():f}%)"


@dataclass(frozen=True)
class TaxResult:
    """Tax owed on a subtotal plus shipping."""

    tax_cents: int
    rate_descriptor: str | None
    rate_percent: Decimal


def _rates(name: str, table: dict[str, str]) -> dict[str, TaxRate]:
    return {code: TaxRate(Decimal(rate), name) for code, rate in table.items()}


US_STATE_RATES = _rates(
    "Sales Tax",
    {
        "AL": "4.0", "AK": "0.0", "AZ": "5.6", "AR": "6.5", "CA": "7.25",
        "CO": "2.9", "CT": "6.35", "DE": "0.0", "FL": "6.0", "GA": "4.0",
        "HI": "4.17", "ID": "6.0", "IL": "6.25", "IN": "7.0", "IA": "6.0",
        "KS": "6.5", "KY": "6.0", "LA": "4.45", "ME": "5.5", "MD": "6.0",
        "MA": "6.25", "MI": "6.0", "MN": "6.875", "MS": "7.0", "MO": "4.225",
        "MT": "0.0", "NE": "5.5", "NV": "6.85", "NH": "0.0", "NJ": "6.625",
        "NM": "5.125", "NY": "4.0", "NC": "4.75", "ND": "5.0", "OH": "5.75",
        "OK": "4.5", "OR": "0.0", "PA": "6.0", "RI": "7.0", "SC": "6.0",
        "SD": "4.5", "TN": "7.0", "TX": "6.25", "UT": "6.1", "VT": "6.0",
        "VA": "5.3", "WA": "6.5", "WV": "6.0", "WI": "5.0", "WY": "4.0",
        "DC": "6.0",
    },
)

CA_PROVINCE_RATES = {
    **_rates("GST", {"AB": "5.0", "NT": "5.0", "NU": "5.0", "YT": "5.0"}),
    **_rates("GST + PST", {"BC": "12.0", "MB": "12.0", "SK": "11.0"}),
    **_rates("HST", {"NB": "15.0", "NL": "15.0", "NS": "15.0", "ON": "13.0", "PE": "15.0"}),
    **_rates("GST + QST", {"QC": "14.975"}),
}

MX_STATE_RATES = _rates(
    "IVA",
    {
        code: "16.0"
        for code in (
            "AGU", "BCN", "BCS", "CAM", "CHP", "CHH", "COA", "COL", "DIF", "DUR",
            "GUA", "GRO", "HID", "JAL", "MEX", "MIC", "MOR", "NAY", "NLE", "OAX",
            "PUE", "QUE", "ROO", "SLP", "SIN", "SON", "TAB", "TAM", "TLA", "VER",
            "YUC", "ZAC",
        )
    },
)

REGION_RATES: dict[str, dict[str, TaxRate]] = {
    "US": US_STATE_RATES,
    "CA": CA_PROVINCE_RATES,
    "MX": MX_STATE_RATES,
}

COUNTRY_DEFAULT_RATES: dict[str, TaxRate] = {
    "US": TaxRate(Decimal("6.0"), "Sales Tax"),
    "CA": TaxRate(Decimal("10.0"), "GST/HST"),
    "MX": TaxRate(Decimal("16.0"), "IVA"),
}


def get_tax_rate(country: str, state: str | None = None) -> TaxRate | None:
    """Look up the rate for a destination.

    A known country with an unknown or missing state gets the country default.
    Returns None for countries outside the table.
    """
    country = (country or "").strip().upper()
    if country not in COUNTRY_DEFAULT_RATES:
        return None
    region = (state or "").strip().upper()
    return REGION_RATES[country].get(region, COUNTRY_DEFAULT_RATES[country])


class TaxCalculator:
    """Computes tax on subtotal plus shipping. Pure; holds no state."""

    def compute(
        self,
        subtotal_cents: int,
        shipping_cents: int,
        country: str,
        state: str | None,
        currency: str,
    ) -> TaxResult:
        """Compute tax owed in the order currency.

        Both amounts are already in ``currency``; no conversion happens here.
        Rounding is half-up to the cent.
        """
        if subtotal_cents < 0 or shipping_cents < 0:
            raise ValueError("Amounts must be non-negative")

        tax_rate = get_tax_rate(country, state)
        if tax_rate is None:
            logger.debug("No tax rate for country %s; charging zero tax", country)
            return TaxResult(tax_cents=0, rate_descriptor=None, rate_percent=Decimal("0"))

        taxable = Decimal(subtotal_cents + shipping_cents)
        tax_cents = round_cents(taxable * tax_rate.rate / Decimal(100))
        return TaxResult(tax_cents=tax_cents, rate_descriptor=tax_rate.descriptor, rate_percent=tax_rate.rate)
