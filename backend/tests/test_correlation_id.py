# tests/test_correlation_id.py
"""
Tests for correlation ID middleware and context management.
"""

import contextvars
import logging

import pytest
from fastapi.testclient import TestClient

from portfolio_tracker.dependencies import get_valuation_engine
from portfolio_tracker.main import app
from portfolio_tracker.utils.context import get_correlation_id, set_correlation_id, clear_correlation_id
from portfolio_tracker.utils.logging import CorrelationIdFilter, NO_CORRELATION_ID


class TestCorrelationIdContext:
    """Tests for correlation ID context functions."""

    def test_get_returns_none_when_not_set(self):
        """Should return None when correlation ID is not set."""
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        """Should set and retrieve correlation ID."""
        set_correlation_id("test-correlation-123")
        assert get_correlation_id() == "test-correlation-123"
        clear_correlation_id()

    def test_clear_correlation_id(self):
        """Should clear correlation ID."""
        set_correlation_id("test-correlation-456")
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_copied_context_carries_id(self):
        """Refresh workers run in a copied context and see the caller's ID."""
        set_correlation_id("refresh-789")
        ctx = contextvars.copy_context()
        clear_correlation_id()

        assert ctx.run(get_correlation_id) == "refresh-789"
        assert get_correlation_id() is None


class TestCorrelationIdFilter:
    """Tests for the logging filter."""

    def make_record(self):
        return logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)

    def test_stamps_current_id(self):
        set_correlation_id("abc-123")
        record = self.make_record()

        assert CorrelationIdFilter().filter(record)
        assert record.correlation_id == "abc-123"
        clear_correlation_id()

    def test_placeholder_without_id(self):
        clear_correlation_id()
        record = self.make_record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == NO_CORRELATION_ID


class TestCorrelationIdMiddleware:
    """Tests for correlation ID middleware."""

    @pytest.fixture
    def client(self, engine):
        """Create test client with the engine override."""
        app.dependency_overrides[get_valuation_engine] = lambda: engine

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()

    def test_generates_correlation_id_when_not_provided(self, client):
        """Should generate correlation ID when not provided in request."""
        response = client.get("/health")

        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers
        # Should be a valid UUID format
        correlation_id = response.headers["X-Correlation-ID"]
        assert len(correlation_id) == 36
        assert correlation_id.count("-") == 4

    def test_uses_provided_correlation_id(self, client):
        """Should use correlation ID from request header."""
        custom_id = "my-custom-trace-id-123"
        response = client.get("/health", headers={"X-Correlation-ID": custom_id})

        assert response.headers["X-Correlation-ID"] == custom_id

    def test_uses_request_id_header_as_fallback(self, client):
        """Should use X-Request-ID header if X-Correlation-ID not provided."""
        custom_id = "my-request-id-456"
        response = client.get("/health", headers={"X-Request-ID": custom_id})

        assert response.headers["X-Correlation-ID"] == custom_id

    def test_prefers_correlation_id_over_request_id(self, client):
        """Should prefer X-Correlation-ID over X-Request-ID."""
        response = client.get(
            "/health",
            headers={
                "X-Correlation-ID": "correlation-123",
                "X-Request-ID": "request-456",
            }
        )

        assert response.headers["X-Correlation-ID"] == "correlation-123"

    def test_error_responses_carry_id(self, client):
        """Should echo the ID on error responses too."""
        response = client.get("/portfolio/history", params={"range": "bogus"})

        assert response.status_code == 422
        assert "X-Correlation-ID" in response.headers

    def test_different_requests_get_different_ids(self, client):
        """Different requests should get different correlation IDs."""
        id1 = client.get("/").headers["X-Correlation-ID"]
        id2 = client.get("/").headers["X-Correlation-ID"]

        assert id1 != id2
