"""Integration tests for wholesale quote route."""

from fastapi.testclient import TestClient


class TestWholesaleQuote:
    """Tests for POST /api/v1/wholesale/quote."""

    def test_two_dozen_gets_forty_percent(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/wholesale/quote",
            json={
                "items": [
                    {"product_id": "tee-classic", "size": "M", "quantity": 20},
                    {"product_id": "hoodie-zip", "size": "L", "color": "black", "quantity": 4},
                ]
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_quantity"] == 24
        assert data["subtotal_cents"] == 20 * 2500 + 4 * 6000
        assert data["discount_percent"] == 40
        assert data["discount_cents"] == 29600
        assert data["total_cents"] == 74000 - 29600
        assert data["items"][1]["product_name"] == "Zip Hoodie"

    def test_under_minimum_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/wholesale/quote",
            json={"items": [{"product_id": "tee-classic", "size": "M", "quantity": 11}]},
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["loc"] == ["items"]

    def test_unknown_product(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/wholesale/quote",
            json={"items": [{"product_id": "mystery", "size": "M", "quantity": 12}]},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
