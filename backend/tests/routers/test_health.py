# backend/tests/routers/test_health.py
"""
Tests for the root and health endpoints.

The market data check reads the singleton provider's circuit breaker, so
the singleton caches are cleared around every test.
"""

import pytest
from fastapi.testclient import TestClient

from portfolio_analytics.database import get_db
from portfolio_analytics.dependencies import clear_service_caches, get_market_data_provider
from portfolio_analytics.main import app


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    clear_service_caches()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    clear_service_caches()


class BrokenSession:
    """Session whose every query fails."""

    def execute(self, *args, **kwargs):
        raise RuntimeError("connection refused")


class TestRoot:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"


class TestHealth:

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["database"]["database"] == "sqlite"
        assert body["checks"]["market_data"]["provider"] == "yahoo"
        assert body["checks"]["market_data"]["circuit_breaker_state"] == "closed"

    def test_open_circuit_is_degraded_not_down(self, client):
        get_market_data_provider().circuit_breaker.force_open()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["market_data"]["status"] == "unhealthy"

    def test_database_down(self, client):
        app.dependency_overrides[get_db] = lambda: BrokenSession()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["checks"]["database"]["status"] == "unhealthy"


class TestProbes:

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "market_data": "healthy"}

    def test_readiness_ignores_open_circuit(self, client):
        get_market_data_provider().circuit_breaker.force_open()

        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["market_data"] == "unhealthy"

    def test_not_ready_without_database(self, client):
        app.dependency_overrides[get_db] = lambda: BrokenSession()

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"
