"""Unit tests for tax computation."""

from decimal import Decimal

import pytest

from storefront.services.tax_service import TaxCalculator, get_tax_rate


class TestGetTaxRate:
    """Tests for rate lookup."""

    def test_us_state_rate(self) -> None:
        rate = get_tax_rate("US", "CA")

        assert rate.rate == Decimal("7.25")
        assert rate.descriptor == "Sales Tax (7.25%)"

    def test_canadian_province_descriptor(self) -> None:
        assert get_tax_rate("CA", "ON").descriptor == "HST (13%)"
        assert get_tax_rate("CA", "QC").descriptor == "GST + QST (14.975%)"

    def test_mexican_state(self) -> None:
        assert get_tax_rate("MX", "JAL").descriptor == "IVA (16%)"

    @pytest.mark.parametrize(
        ("country", "state", "expected"),
        [
            ("US", None, "Sales Tax (6%)"),
            ("US", "ZZ", "Sales Tax (6%)"),
            ("CA", "", "GST/HST (10%)"),
            ("MX", "XYZ", "IVA (16%)"),
        ],
    )
    def test_unknown_state_uses_country_default(self, country: str, state: str | None, expected: str) -> None:
        assert get_tax_rate(country, state).descriptor == expected

    def test_lookup_is_case_insensitive(self) -> None:
        assert get_tax_rate("ca", " on ").rate == Decimal("13.0")

    def test_unknown_country(self) -> None:
        assert get_tax_rate("FR", "IDF") is None


class TestTaxCalculator:
    """Tests for TaxCalculator.compute."""

    def test_taxes_subtotal_plus_shipping(self) -> None:
        result = TaxCalculator().compute(5000, 1000, "CA", "ON", "CAD")

        assert result.tax_cents == 780
        assert result.rate_descriptor == "HST (13%)"

    def test_rounds_half_up(self) -> None:
        # 1000 * 6.875% = 68.75
        assert TaxCalculator().compute(1000, 0, "US", "MN", "USD").tax_cents == 69

    def test_zero_rate_state(self) -> None:
        result = TaxCalculator().compute(10000, 500, "US", "OR", "USD")

        assert result.tax_cents == 0
        assert result.rate_descriptor == "Sales Tax (0%)"

    def test_unknown_country_is_untaxed(self) -> None:
        result = TaxCalculator().compute(10000, 500, "DE", None, "USD")

        assert result.tax_cents == 0
        assert result.rate_descriptor is None

    def test_rejects_negative_amounts(self) -> None:
        with pytest.raises(ValueError):
            TaxCalculator().compute(-1, 0, "US", "NY", "USD")
