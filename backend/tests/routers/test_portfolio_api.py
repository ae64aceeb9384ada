# backend/tests/routers/test_portfolio_api.py
"""
API layer tests for holdings, portfolio and stock endpoints.

These tests verify the HTTP layer using FastAPI's TestClient:
- Correct status codes (200, 201, 204, 400, 422, 502, 503)
- Response JSON structure matches Pydantic schemas
- Query parameter handling
- Error responses in the ErrorDetail format

Test Methodology:
    1. Override get_valuation_engine with an engine over FakeQuoteProvider
       and in-memory SQLite (see conftest.py)
    2. Make HTTP requests via TestClient
    3. Assert status codes and response structure
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from portfolio_tracker.dependencies import get_valuation_engine
from portfolio_tracker.main import app
from portfolio_tracker.models import Market
from portfolio_tracker.services.exceptions import UnreachableError, UpstreamError
from portfolio_tracker.services.market_data.base import StockCandidate


@pytest.fixture
def client(engine):
    """Test client wired to the test engine."""
    app.dependency_overrides[get_valuation_engine] = lambda: engine

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def post_holding(client, **overrides):
    body = {
        "symbol": "AAPL",
        "market": "FOREIGN",
        "quantity": "10",
        "purchase_price": "100",
        "current_price": "110",
        "purchase_date": "2024-01-15",
    }
    body.update(overrides)
    return client.post("/holdings", json=body)


# =============================================================================
# HOLDINGS
# =============================================================================

class TestHoldingsEndpoints:
    """Tests for /holdings."""

    def test_create_holding(self, client):
        response = post_holding(client)

        assert response.status_code == 201
        data = response.json()
        assert data["stock"]["symbol"] == "AAPL"
        assert data["stock"]["currency"] == "USD"
        assert Decimal(data["quantity"]) == Decimal("10")
        assert data["purchase_date"] == "2024-01-15"
        assert data["account"] == "Default"
        assert "id" in data

    def test_create_domestic_holding_adds_suffix(self, client):
        response = post_holding(client, symbol="7203", market="DOMESTIC", purchase_price="2500")

        assert response.status_code == 201
        assert response.json()["stock"]["symbol"] == "7203.T"
        assert response.json()["stock"]["currency"] == "JPY"

    def test_current_price_defaults_to_purchase_price(self, client):
        body = {"symbol": "MSFT", "market": "FOREIGN", "quantity": "1", "purchase_price": "400"}

        response = client.post("/holdings", json=body)

        assert Decimal(response.json()["stock"]["current_price"]) == Decimal("400")

    @pytest.mark.parametrize("overrides", [
        {"quantity": "0"},
        {"purchase_price": "-1"},
        {"symbol": "   "},
        {"market": "MARS"},
    ])
    def test_invalid_body_is_422(self, client, overrides):
        response = post_holding(client, **overrides)

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"
        assert client.get("/holdings").json()["count"] == 0

    def test_list_holdings_in_order(self, client):
        post_holding(client, symbol="MSFT")
        post_holding(client, symbol="AAPL")

        data = client.get("/holdings").json()

        assert data["count"] == 2
        assert [h["stock"]["symbol"] for h in data["items"]] == ["MSFT", "AAPL"]

    def test_delete_holding(self, client):
        holding_id = post_holding(client).json()["id"]

        response = client.delete(f"/holdings/{holding_id}")

        assert response.status_code == 204
        assert client.get("/holdings").json()["count"] == 0

    def test_delete_unknown_holding_is_idempotent(self, client):
        response = client.delete("/holdings/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 204

    def test_delete_malformed_id_is_422(self, client):
        assert client.delete("/holdings/not-a-uuid").status_code == 422

    def test_clear_holdings(self, client):
        post_holding(client, symbol="MSFT")
        post_holding(client, symbol="AAPL")

        response = client.delete("/holdings")

        assert response.status_code == 204
        assert client.get("/holdings").json()["items"] == []


# =============================================================================
# PORTFOLIO
# =============================================================================

class TestPortfolioEndpoints:
    """Tests for /portfolio."""

    def test_summary_uses_default_rate_before_refresh(self, client, provider):
        post_holding(client)

        response = client.get("/portfolio/summary")

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_value"]) == Decimal("170500.00")
        assert data["exchange_rate"]["source"] == "FALLBACK"
        assert data["reporting_currency"] == "JPY"
        assert len(data["holdings"]) == 1
        assert provider.price_calls == []

    def test_refresh(self, client, provider):
        post_holding(client)
        provider.set_price("AAPL", Market.FOREIGN, "110")

        response = client.post("/portfolio/refresh")

        assert response.status_code == 200
        data = response.json()
        summary = data["summary"]
        assert Decimal(summary["total_value"]) == Decimal("165000.00")
        assert Decimal(summary["total_cost_basis"]) == Decimal("150000.00")
        assert Decimal(summary["total_gain_loss"]) == Decimal("15000.00")
        assert Decimal(summary["total_gain_loss_pct"]) == Decimal("10.00")
        holding = summary["holdings"][0]
        assert Decimal(holding["conversion_factor"]) == Decimal("150")
        assert data["status"]["degraded"] is False
        assert data["status"]["exchange_rate_source"] == "LIVE"

    def test_degraded_refresh_is_still_200(self, client, provider):
        post_holding(client, symbol="AAPL")
        post_holding(client, symbol="MSFT")
        provider.set_price("AAPL", Market.FOREIGN, "120")
        provider.set_error("MSFT", Market.FOREIGN, UnreachableError("fake", "timed out", "MSFT"))
        provider.set_rate_error(UnreachableError("fake", "timed out"))

        response = client.post("/portfolio/refresh")

        assert response.status_code == 200
        status = response.json()["status"]
        assert status["degraded"] is True
        assert status["failed_symbols"] == ["MSFT"]
        assert status["exchange_rate_source"] == "FALLBACK"
        assert len(status["warnings"]) == 2

    def test_status_endpoint(self, client):
        client.post("/portfolio/refresh")

        data = client.get("/portfolio/status").json()

        assert data["degraded"] is False
        assert data["durable"] is True
        assert data["started_at"] is not None

    def test_history(self, client, wall_clock):
        for _ in range(10):
            client.post("/portfolio/refresh")
            wall_clock.advance(days=1)

        all_points = client.get("/portfolio/history").json()
        week = client.get("/portfolio/history", params={"range": "1W"}).json()

        assert all_points["count"] == 10
        assert all_points["range"] is None
        assert week["count"] == 7
        assert week["range"] == "1W"

    def test_history_invalid_range(self, client):
        assert client.get("/portfolio/history", params={"range": "2W"}).status_code == 422


# =============================================================================
# STOCKS
# =============================================================================

class TestStocksEndpoints:
    """Tests for /stocks."""

    def test_search(self, client, provider):
        provider.set_search_results([
            StockCandidate(symbol="7203.T", name="Toyota", market=Market.DOMESTIC, currency="JPY"),
        ])

        response = client.get("/stocks/search", params={"q": "toyota", "market": "DOMESTIC"})

        assert response.status_code == 200
        assert [r["symbol"] for r in response.json()["results"]] == ["7203.T"]

    def test_search_requires_query(self, client):
        assert client.get("/stocks/search", params={"market": "DOMESTIC"}).status_code == 422

    @pytest.mark.parametrize("error,status_code", [
        (UnreachableError("fake", "timed out"), 503),
        (UpstreamError("fake", "HTTP 500", status_code=500), 502),
    ])
    def test_search_failure_status(self, client, provider, monkeypatch, error, status_code):
        def fail(query, market):
            raise error

        monkeypatch.setattr(provider, "_search", fail)

        response = client.get("/stocks/search", params={"q": "toyota", "market": "FOREIGN"})

        assert response.status_code == status_code
        assert response.json()["error"] == type(error).__name__

    def test_quotes(self, client, provider):
        provider.set_price("AAPL", Market.FOREIGN, "190")

        response = client.post("/stocks/quotes", json={"symbols": [
            {"symbol": "AAPL", "market": "FOREIGN"},
            {"symbol": "NOPE", "market": "FOREIGN"},
        ]})

        assert response.status_code == 200
        quotes = {q["symbol"]: q for q in response.json()["quotes"]}
        assert Decimal(quotes["AAPL"]["price"]) == Decimal("190")
        assert quotes["AAPL"]["source"] == "FRESH"
        assert quotes["NOPE"]["price"] is None
        assert quotes["NOPE"]["error"]

    def test_quotes_requires_symbols(self, client):
        assert client.post("/stocks/quotes", json={"symbols": []}).status_code == 422


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health_reflects_last_refresh(self, client, provider):
        assert client.get("/health").json()["status"] == "healthy"

        post_holding(client)
        provider.set_rate_error(UnreachableError("fake", "timed out"))
        client.post("/portfolio/refresh")

        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["quotes"]["exchange_rate_source"] == "FALLBACK"
