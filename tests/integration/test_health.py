"""Integration tests for health check endpoints."""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_memory_backend_is_ready(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert [check["name"] for check in data["checks"]] == ["database"]

    def test_unreachable_database_returns_503(self, client: TestClient) -> None:
        settings = MagicMock(storage_backend="supabase")
        failing_client = MagicMock()
        failing_client.table.side_effect = ConnectionError("connection refused")

        with (
            patch("storefront.core.supabase.get_settings", return_value=settings),
            patch("storefront.core.supabase.get_supabase_client", return_value=failing_client),
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["checks"][0]["healthy"] is False
        assert "connection refused" in data["checks"][0]["error"]
