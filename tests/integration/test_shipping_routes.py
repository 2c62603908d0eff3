"""Integration tests for shipping quote and tax routes."""

from fastapi.testclient import TestClient


class TestShippingQuote:
    """Tests for POST /api/v1/shipping/quote."""

    def test_us_quote_is_sorted_cheapest_first(self, client: TestClient, us_address: dict[str, str]) -> None:
        response = client.post(
            "/api/v1/shipping/quote",
            json={"address": us_address, "items": [{"quantity": 2}]},
        )

        assert response.status_code == 200
        data = response.json()
        costs = [option["cost_cents"] for option in data["options"]]
        assert costs == sorted(costs)
        assert data["default_option"] == data["options"][0]
        assert {option["currency"] for option in data["options"]} == {"USD"}
        assert data["reason"] is None

    def test_canadian_quote_is_in_cad(self, client: TestClient) -> None:
        address = {"street": "1 King St W", "city": "Toronto", "state": "ON", "zip": "M5H 1A1", "country": "CA"}

        response = client.post("/api/v1/shipping/quote", json={"address": address, "items": [{"quantity": 1}]})

        assert response.status_code == 200
        assert {option["currency"] for option in response.json()["options"]} == {"CAD"}

    def test_unquotable_address_returns_reason(self, client: TestClient) -> None:
        address = {"street": "10 Downing St", "city": "London", "state": "", "zip": "SW1A 2AA", "country": "GB"}

        response = client.post("/api/v1/shipping/quote", json={"address": address, "items": [{"quantity": 1}]})

        assert response.status_code == 200
        data = response.json()
        assert data["options"] == []
        assert data["default_option"] is None
        assert data["reason"]

    def test_invalid_weight_is_rejected(self, client: TestClient, us_address: dict[str, str]) -> None:
        response = client.post(
            "/api/v1/shipping/quote",
            json={"address": us_address, "items": [{"quantity": 1, "weight_lb": 0}]},
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["loc"] == ["items", "0", "weight_lb"]


class TestTaxCalculate:
    """Tests for POST /api/v1/tax/calculate."""

    def test_ontario_hst(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/tax/calculate",
            json={"subtotal_cents": 10000, "shipping_cents": 1000, "country": "ca", "state": "ON"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "tax_cents": 1430,
            "currency": "CAD",
            "rate_descriptor": "HST (13%)",
            "rate_percent": 13.0,
        }

    def test_negative_subtotal_is_rejected(self, client: TestClient) -> None:
        response = client.post("/api/v1/tax/calculate", json={"subtotal_cents": -1, "country": "US", "state": "NY"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"
