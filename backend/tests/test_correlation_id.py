# backend/tests/test_correlation_id.py
"""
Tests for request context: correlation IDs and the caller's user ID.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from portfolio_analytics.database import get_db
from portfolio_analytics.main import app
from portfolio_analytics.middleware.correlation import MAX_CORRELATION_ID_LENGTH
from portfolio_analytics.utils.context import (
    clear_correlation_id,
    clear_current_user_id,
    get_correlation_id,
    get_current_user_id,
    set_correlation_id,
    set_current_user_id,
)
from portfolio_analytics.utils.logging import NO_CORRELATION_ID, NO_USER, RequestContextFilter


class TestContextVars:

    def test_correlation_id_defaults_to_none(self):
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_clear_correlation_id(self):
        set_correlation_id("trace-123")
        assert get_correlation_id() == "trace-123"

        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_clear_user_id(self):
        set_current_user_id(7)
        assert get_current_user_id() == 7

        clear_current_user_id()
        assert get_current_user_id() is None


class TestCorrelationIdMiddleware:

    @pytest.fixture
    def client(self, db):
        def override_get_db():
            yield db

        app.dependency_overrides[get_db] = override_get_db
        with TestClient(app) as c:
            yield c
        app.dependency_overrides.clear()

    def test_generated_when_absent(self, client):
        response = client.get("/health/live")

        correlation_id = response.headers["X-Correlation-ID"]
        assert len(correlation_id) == 36
        assert correlation_id.count("-") == 4

    def test_echoes_incoming_header(self, client):
        response = client.get("/health/live", headers={"X-Correlation-ID": "gateway-trace-1"})
        assert response.headers["X-Correlation-ID"] == "gateway-trace-1"

    def test_request_id_fallback(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Correlation-ID"] == "req-42"

    def test_correlation_id_wins_over_request_id(self, client):
        response = client.get(
            "/health/live",
            headers={"X-Correlation-ID": "corr-1", "X-Request-ID": "req-1"},
        )
        assert response.headers["X-Correlation-ID"] == "corr-1"

    def test_overlong_id_replaced(self, client):
        incoming = "x" * (MAX_CORRELATION_ID_LENGTH + 1)
        response = client.get("/health/live", headers={"X-Correlation-ID": incoming})

        assert response.headers["X-Correlation-ID"] != incoming
        assert len(response.headers["X-Correlation-ID"]) == 36

    def test_overlong_correlation_id_falls_back_to_request_id(self, client):
        response = client.get(
            "/health/live",
            headers={"X-Correlation-ID": "y" * 500, "X-Request-ID": "req-7"},
        )
        assert response.headers["X-Correlation-ID"] == "req-7"

    def test_unique_per_request(self, client):
        first = client.get("/health/live").headers["X-Correlation-ID"]
        second = client.get("/health/live").headers["X-Correlation-ID"]
        assert first != second

    def test_present_on_error_responses(self, client):
        response = client.get("/performance/reports")

        assert response.status_code == 401
        assert "X-Correlation-ID" in response.headers


class TestRequestContextFilter:

    def _record(self):
        return logging.LogRecord("portfolio_analytics.test", logging.INFO, __file__, 1, "hello", None, None)

    def test_stamps_context(self):
        set_correlation_id("trace-9")
        set_current_user_id(3)
        try:
            record = self._record()
            assert RequestContextFilter().filter(record) is True
            assert record.correlation_id == "trace-9"
            assert record.user_id == 3
        finally:
            clear_correlation_id()
            clear_current_user_id()

    def test_placeholders_outside_a_request(self):
        clear_correlation_id()
        clear_current_user_id()
        record = self._record()
        RequestContextFilter().filter(record)

        assert record.correlation_id == NO_CORRELATION_ID
        assert record.user_id == NO_USER
