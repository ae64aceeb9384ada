# backend/tests/services/test_backend_provider.py
"""
Tests for the BackendQuoteProvider (REST JSON quote backend).

This module tests:
- Request construction (paths, query params, batch body)
- Response parsing into PriceQuote / ExchangeRate / StockCandidate
- Error classification: non-2xx and malformed bodies -> UpstreamError,
  timeouts and connection failures -> UnreachableError
- Retry behavior (only UnreachableError is retried)

Note: HTTP is faked with httpx.MockTransport; no network access.
"""

import json
from decimal import Decimal

import httpx
import pytest

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.exceptions import (
    UnreachableError,
    UpstreamError,
    ValidationError,
)
from portfolio_tracker.services.market_data.backend import BackendQuoteProvider


class FastBackendProvider(BackendQuoteProvider):
    """No waiting between retries."""

    MAX_RETRY_ATTEMPTS = 3
    RETRY_MIN_WAIT = 0
    RETRY_MAX_WAIT = 0


def make_provider(handler) -> FastBackendProvider:
    return FastBackendProvider(
        base_url="https://quotes.example.com",
        timeout=10,
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# PRICES
# =============================================================================

class TestGetPrice:
    """Tests for single-symbol price fetching."""

    def test_successful_price(self):
        """A well-formed body becomes a PriceQuote."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "symbol": "AAPL",
                "name": "Apple Inc.",
                "price": 189.5,
                "currency": "USD",
                "market": "american",
                "cached": False,
            })

        result = make_provider(handler).get_price("aapl", Market.FOREIGN)

        assert result.ok
        quote = result.value
        assert quote.symbol == "AAPL"
        assert quote.price == Decimal("189.5")
        assert quote.currency == "USD"
        assert quote.name == "Apple Inc."
        assert seen["path"] == "/api/stock/price"
        assert seen["params"] == {"symbol": "AAPL", "market": "american"}

    def test_domestic_symbol_sent_normalized(self):
        """Tokyo codes are sent with the .T suffix and the 'japanese' market."""
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"symbol": "7203.T", "price": 2850, "currency": "JPY"})

        result = make_provider(handler).get_price("7203", Market.DOMESTIC)

        assert result.ok
        assert result.value.symbol == "7203.T"
        assert seen["params"] == {"symbol": "7203.T", "market": "japanese"}

    def test_missing_currency_defaults_to_market_currency(self):
        provider = make_provider(lambda r: httpx.Response(200, json={"symbol": "7203.T", "price": 2850}))
        result = provider.get_price("7203", Market.DOMESTIC)
        assert result.value.currency == "JPY"

    @pytest.mark.parametrize("status_code", [400, 404, 500, 503])
    def test_non_2xx_is_upstream_error(self, status_code):
        """Any non-2xx answer is an UpstreamError carrying the status code."""
        result = make_provider(lambda r: httpx.Response(status_code, json={"error": "nope"})).get_price(
            "AAPL", Market.FOREIGN
        )

        assert not result.ok
        assert isinstance(result.error, UpstreamError)
        assert result.error.status_code == status_code
        assert result.error.symbol == "AAPL"

    def test_non_json_body_is_upstream_error(self):
        result = make_provider(lambda r: httpx.Response(200, text="<html>oops</html>")).get_price(
            "AAPL", Market.FOREIGN
        )
        assert isinstance(result.error, UpstreamError)

    @pytest.mark.parametrize("body", [
        {"symbol": "AAPL", "currency": "USD"},
        {"symbol": "AAPL", "price": 0, "currency": "USD"},
        {"symbol": "AAPL", "price": -3, "currency": "USD"},
        {"symbol": "AAPL", "price": "not-a-number"},
        [],
    ])
    def test_malformed_body_is_upstream_error(self, body):
        """Missing or non-positive prices fail schema validation."""
        result = make_provider(lambda r: httpx.Response(200, json=body)).get_price("AAPL", Market.FOREIGN)
        assert isinstance(result.error, UpstreamError)

    def test_timeout_is_unreachable_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = make_provider(handler).get_price("AAPL", Market.FOREIGN)

        assert isinstance(result.error, UnreachableError)

    def test_connection_failure_is_unreachable_error(self):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        result = make_provider(handler).get_price("AAPL", Market.FOREIGN)

        assert isinstance(result.error, UnreachableError)

    def test_empty_symbol_raises(self):
        """Programming errors are raised, not returned."""
        provider = make_provider(lambda r: httpx.Response(200, json={}))
        with pytest.raises(ValidationError):
            provider.get_price("  ", Market.FOREIGN)


class TestRetries:
    """Only transient failures are retried."""

    def test_unreachable_is_retried_until_success(self):
        attempts = {"count": 0}

        def handler(request):
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"symbol": "AAPL", "price": 100, "currency": "USD"})

        result = make_provider(handler).get_price("AAPL", Market.FOREIGN)

        assert result.ok
        assert attempts["count"] == 3

    def test_unreachable_gives_up_after_max_attempts(self):
        attempts = {"count": 0}

        def handler(request):
            attempts["count"] += 1
            raise httpx.ConnectTimeout("slow", request=request)

        result = make_provider(handler).get_price("AAPL", Market.FOREIGN)

        assert isinstance(result.error, UnreachableError)
        assert attempts["count"] == FastBackendProvider.MAX_RETRY_ATTEMPTS

    def test_upstream_is_not_retried(self):
        attempts = {"count": 0}

        def handler(request):
            attempts["count"] += 1
            return httpx.Response(500)

        make_provider(handler).get_price("AAPL", Market.FOREIGN)

        assert attempts["count"] == 1


# =============================================================================
# BATCH
# =============================================================================

class TestGetPrices:
    """Tests for the batch endpoint."""

    def test_batch_request_and_partial_response(self):
        """One POST; symbols absent from the answer fail individually."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"stocks": [
                {"symbol": "AAPL", "price": 190, "currency": "USD"},
                {"symbol": "7203.T", "price": 2850, "currency": "JPY", "name": "Toyota"},
            ]})

        results = make_provider(handler).get_prices([
            ("AAPL", Market.FOREIGN),
            ("7203", Market.DOMESTIC),
            ("MSFT", Market.FOREIGN),
        ])

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/stocks/batch"
        assert seen["body"] == {"symbols": [
            {"symbol": "AAPL", "market": "american"},
            {"symbol": "7203.T", "market": "japanese"},
            {"symbol": "MSFT", "market": "american"},
        ]}
        assert results[("AAPL", Market.FOREIGN)].value.price == Decimal("190")
        assert results[("7203.T", Market.DOMESTIC)].value.name == "Toyota"
        assert isinstance(results[("MSFT", Market.FOREIGN)].error, UpstreamError)

    def test_duplicate_requests_are_collapsed(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"stocks": [{"symbol": "AAPL", "price": 1}]})

        results = make_provider(handler).get_prices([("AAPL", Market.FOREIGN), ("aapl", Market.FOREIGN)])

        assert len(seen["body"]["symbols"]) == 1
        assert list(results) == [("AAPL", Market.FOREIGN)]

    def test_whole_batch_failure_fails_every_symbol(self):
        results = make_provider(lambda r: httpx.Response(502)).get_prices([
            ("AAPL", Market.FOREIGN),
            ("MSFT", Market.FOREIGN),
        ])

        assert all(isinstance(r.error, UpstreamError) for r in results.values())

    def test_empty_request_makes_no_call(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert make_provider(handler).get_prices([]) == {}


# =============================================================================
# EXCHANGE RATE
# =============================================================================

class TestGetExchangeRate:
    """Tests for the USD/JPY rate endpoint."""

    def test_successful_rate(self):
        def handler(request):
            assert request.url.path == "/api/exchange-rate"
            return httpx.Response(200, json={"from": "USD", "to": "JPY", "rate": 151.25, "source": "ecb"})

        result = make_provider(handler).get_exchange_rate()

        assert result.ok
        assert result.value.rate == Decimal("151.25")
        assert result.value.source is RateSource.LIVE

    def test_wrong_currency_pair_is_upstream_error(self):
        handler = lambda r: httpx.Response(200, json={"from": "EUR", "to": "JPY", "rate": 160})
        result = make_provider(handler).get_exchange_rate()
        assert isinstance(result.error, UpstreamError)

    def test_missing_rate_is_upstream_error(self):
        result = make_provider(lambda r: httpx.Response(200, json={"from": "USD", "to": "JPY"})).get_exchange_rate()
        assert isinstance(result.error, UpstreamError)


# =============================================================================
# SEARCH
# =============================================================================

class TestSearch:
    """Tests for listing search."""

    def test_results_filtered_to_market(self):
        def handler(request):
            assert request.url.params["q"] == "toyota"
            assert request.url.params["market"] == "japanese"
            return httpx.Response(200, json={"results": [
                {"symbol": "7203.T", "name": "Toyota Motor Corp"},
                {"symbol": "TM", "name": "Toyota Motor Corp ADR"},
            ]})

        result = make_provider(handler).search("toyota", Market.DOMESTIC)

        assert result.ok
        assert [c.symbol for c in result.value] == ["7203.T"]
        assert result.value[0].currency == "JPY"

    def test_empty_query_raises(self):
        with pytest.raises(ValidationError):
            make_provider(lambda r: httpx.Response(200, json={})).search("", Market.FOREIGN)
