"""
Integration tests for status and catalog endpoints.

WHAT: Test /health, /llm/status, /languages, /pricing/stats and /market
WHY: Ensure HTTP layer correctly integrates with provider, DB and read-only services
HOW: Use TestClient with mocked LM Studio HTTP responses
"""

import pytest
import respx
import httpx
from fastapi.testclient import TestClient

from setu.llm.provider_factory import get_provider
from setu.main import app
from setu.services.pricing_learner import pricing_learner


@pytest.fixture
def client():
    """Create FastAPI test client with lifespan events."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def models_url():
    """LM Studio models endpoint of the configured provider."""
    return f"{get_provider().base_url}/models"


@pytest.mark.integration
class TestLLMStatusEndpoint:
    """Test /api/v1/llm/status endpoint."""

    @respx.mock
    def test_llm_status_available(self, client, models_url):
        """Test LLM status when provider is available."""
        respx.get(models_url).mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"id": "model-1"}, {"id": "model-2"}]}
            )
        )

        response = client.get("/api/v1/llm/status")

        assert response.status_code == 200
        data = response.json()
        assert data["llm"]["available"] is True
        assert data["llm"]["models"] == ["model-1", "model-2"]
        assert data["llm"]["error"] is None
        assert data["database"]["available"] is True

    @respx.mock
    def test_llm_status_unavailable(self, client, models_url):
        """Test LLM status when provider is down."""
        respx.get(models_url).mock(side_effect=httpx.ConnectError("connection refused"))

        response = client.get("/api/v1/llm/status")

        assert response.status_code == 200
        data = response.json()
        assert data["llm"]["available"] is False
        assert data["llm"]["error"] is not None
        assert data["database"]["available"] is True


@pytest.mark.integration
class TestHealthEndpoint:
    """Test /api/v1/health endpoint."""

    def test_health_all_healthy(self, client, mock_provider):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["llm"]["available"] is True
        assert data["components"]["database"]["available"] is True
        assert "version" in data

    def test_health_llm_down(self, client, mock_provider):
        """Test health is degraded (not failed) when the LLM is unreachable."""
        mock_provider.should_fail = True

        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["llm"]["available"] is False
        assert data["components"]["database"]["available"] is True

    def test_root(self, client):
        data = client.get("/").json()
        assert data["status"] == "running"
        assert data["app"]


@pytest.mark.integration
class TestCatalogEndpoints:
    """Test languages, pricing statistics and market estimates."""

    def test_languages(self, client):
        response = client.get("/api/v1/languages")

        assert response.status_code == 200
        languages = response.json()["languages"]
        assert len(languages) == 12
        assert languages[0]["code"] == "hi"
        assert languages[0]["speech_code"] == "hi-IN"
        assert languages[-1]["code"] == "en"
        assert all(language["greeting"] for language in languages)

    def test_pricing_stats(self, client):
        pricing_learner.update("onion", 1.1)
        try:
            response = client.get("/api/v1/pricing/stats")
        finally:
            pricing_learner.reset("onion")

        assert response.status_code == 200
        statistics = {s["commodity"]: s for s in response.json()["statistics"]}
        assert "tomato" in statistics
        assert statistics["onion"]["sample_count"] >= 1
        assert 0.8 <= statistics["onion"]["average_ratio"] <= 1.2

    def test_market_estimate_without_api_key(self, client):
        """Test market endpoint falls back to the static spread."""
        response = client.get("/api/v1/market/onion")

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "estimated"
        assert data["min_per_kg"] == 12
        assert data["max_per_kg"] == 25
        assert data["avg_per_kg"] == 18.5

    def test_market_estimate_unknown_commodity(self, client):
        data = client.get("/api/v1/market/dragonfruit").json()
        assert data["avg_per_kg"] == 25
        assert data["source"] == "estimated"
