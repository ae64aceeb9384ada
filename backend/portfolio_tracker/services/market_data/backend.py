# backend/portfolio_tracker/services/market_data/backend.py
"""
Quote provider backed by the portfolio REST backend.

Endpoints (JSON over HTTPS):
    GET  /api/stock/price?symbol=&market=   -> {symbol, name?, price, currency, market?, cached?, timestamp?}
    POST /api/stocks/batch                  <- {"symbols": [{"symbol", "market"}]}
                                            -> {stocks: [...], timestamp?}
    GET  /api/exchange-rate                 -> {from, to, rate, source?, timestamp?}
    GET  /api/stock/search?q=&market=       -> {results: [{symbol, name, ...}]}

Markets are sent by their backend names ("japanese" / "american").

Error mapping:
    - timeout, connection or DNS failure       -> UnreachableError (retried)
    - non-2xx status                           -> UpstreamError (status_code set)
    - body that is not JSON or fails the schema -> UpstreamError
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from portfolio_tracker.models import Market, RateSource
from portfolio_tracker.services.constants import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    PRICE_PRECISION,
    SEARCH_RESULT_LIMIT,
)
from portfolio_tracker.services.exceptions import UpstreamError, UnreachableError
from portfolio_tracker.services.market_data.base import (
    ExchangeRate,
    FetchResult,
    PriceKey,
    PriceQuote,
    QuoteProvider,
    StockCandidate,
)
from portfolio_tracker.services.market_data.symbols import matches_market

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://backendindex.vercel.app"


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class _BackendModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _StockPriceBody(_BackendModel):
    symbol: str = Field(min_length=1)
    name: str | None = None
    price: Decimal = Field(gt=0)
    currency: str | None = None
    market: str | None = None
    cached: bool | None = None
    timestamp: datetime | None = None


class _BatchBody(_BackendModel):
    stocks: list[_StockPriceBody]
    timestamp: datetime | None = None


class _ExchangeRateBody(_BackendModel):
    from_currency: str = Field(default="USD", alias="from")
    to_currency: str = Field(default="JPY", alias="to")
    rate: Decimal = Field(gt=0)
    source: str | None = None
    timestamp: datetime | None = None


class _SearchHit(_BackendModel):
    symbol: str = Field(min_length=1)
    name: str | None = None
    currency: str | None = None
    price: Decimal | None = None
    exchange: str | None = None


class _SearchBody(_BackendModel):
    results: list[_SearchHit] = Field(default_factory=list)


# =============================================================================
# PROVIDER
# =============================================================================

class BackendQuoteProvider(QuoteProvider):
    """
    REST JSON quote provider using httpx.

    Args:
        base_url: Backend root URL
        timeout: Seconds allowed per request (connect + read)
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
            self,
            base_url: str = DEFAULT_BASE_URL,
            timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )
        logger.info(f"BackendQuoteProvider initialized (base_url={self._base_url}, timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "backend"

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # QUOTES
    # =========================================================================

    def _fetch_price(self, symbol: str, market: Market) -> PriceQuote:
        payload = self._request(
            "GET",
            "/api/stock/price",
            symbol=symbol,
            params={"symbol": symbol, "market": market.wire_name},
        )
        body = self._parse(_StockPriceBody, payload, symbol=symbol)
        return self._to_quote(body, symbol, market)

    def _fetch_prices(self, keys: list[PriceKey]) -> dict[PriceKey, FetchResult[PriceQuote]]:
        """One POST for all symbols; symbols missing from the answer fail individually."""
        try:
            body = self._execute_with_retry(self._fetch_batch, keys)
        except (UpstreamError, UnreachableError) as e:
            logger.warning(f"Batch quote request for {len(keys)} symbol(s) failed: {e}")
            return {key: FetchResult.failure(e) for key in keys}

        by_symbol = {item.symbol.strip().upper(): item for item in body.stocks}
        results: dict[PriceKey, FetchResult[PriceQuote]] = {}
        for symbol, market in keys:
            item = by_symbol.get(symbol)
            if item is None:
                results[(symbol, market)] = FetchResult.failure(UpstreamError(
                    provider=self.name,
                    reason="symbol missing from batch response",
                    symbol=symbol,
                ))
                continue
            results[(symbol, market)] = FetchResult.success(self._to_quote(item, symbol, market))

        logger.debug(
            f"Batch quotes: {sum(r.ok for r in results.values())}/{len(keys)} succeeded"
        )
        return results

    def _fetch_batch(self, keys: list[PriceKey]) -> _BatchBody:
        payload = self._request(
            "POST",
            "/api/stocks/batch",
            json={"symbols": [
                {"symbol": symbol, "market": market.wire_name} for symbol, market in keys
            ]},
        )
        return self._parse(_BatchBody, payload)

    # =========================================================================
    # EXCHANGE RATE
    # =========================================================================

    def _fetch_exchange_rate(self) -> ExchangeRate:
        payload = self._request("GET", "/api/exchange-rate")
        body = self._parse(_ExchangeRateBody, payload)

        if (body.from_currency.upper(), body.to_currency.upper()) != ("USD", "JPY"):
            raise UpstreamError(
                provider=self.name,
                reason=f"unexpected currency pair {body.from_currency}/{body.to_currency}",
            )

        return ExchangeRate(
            rate=body.rate.quantize(PRICE_PRECISION),
            timestamp=body.timestamp or datetime.now(timezone.utc),
            source=RateSource.LIVE,
        )

    # =========================================================================
    # SEARCH
    # =========================================================================

    def _search(self, query: str, market: Market) -> list[StockCandidate]:
        payload = self._request(
            "GET",
            "/api/stock/search",
            params={"q": query, "market": market.wire_name},
        )
        body = self._parse(_SearchBody, payload)
        candidates = [
            StockCandidate(
                symbol=hit.symbol.upper(),
                name=hit.name or hit.symbol,
                market=market,
                currency=hit.currency or market.currency,
                price=hit.price,
                exchange=hit.exchange,
            )
            for hit in body.results
            if matches_market(hit.symbol, market)
        ]
        return candidates[:SEARCH_RESULT_LIMIT]

    # =========================================================================
    # HTTP HELPERS
    # =========================================================================

    def _request(
            self,
            method: str,
            path: str,
            symbol: str | None = None,
            **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body."""
        try:
            response = self._client.request(method, path, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise UnreachableError(provider=self.name, reason=f"{type(e).__name__}: {e}", symbol=symbol) from e
        except httpx.HTTPError as e:
            raise UpstreamError(provider=self.name, reason=f"{type(e).__name__}: {e}", symbol=symbol) from e

        if not response.is_success:
            raise UpstreamError(
                provider=self.name,
                reason=f"HTTP {response.status_code} from {path}",
                symbol=symbol,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(provider=self.name, reason="response body is not JSON", symbol=symbol) from e

    def _parse(self, schema: type[_BackendModel], payload: Any, symbol: str | None = None):
        try:
            return schema.model_validate(payload)
        except PydanticValidationError as e:
            raise UpstreamError(
                provider=self.name,
                reason=f"malformed response: {e.error_count()} validation error(s)",
                symbol=symbol,
            ) from e

    def _to_quote(self, body: _StockPriceBody, symbol: str, market: Market) -> PriceQuote:
        return PriceQuote(
            symbol=symbol,
            market=market,
            price=body.price.quantize(PRICE_PRECISION),
            currency=(body.currency or market.currency).upper(),
            fetched_at=datetime.now(timezone.utc),
            name=body.name,
        )
