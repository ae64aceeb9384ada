# backend/portfolio_tracker/routers/stocks.py
"""
Stock lookup endpoints.

- GET  /stocks/search?q=toyota&market=DOMESTIC - Find listings to add
- POST /stocks/quotes                          - Current quotes (cached, batch-fetched)

Search failures surface as 502/503 (see main.py); quote failures are
reported per symbol in the response body.
"""

from fastapi import APIRouter, Depends, Query

from portfolio_tracker.dependencies import get_valuation_engine
from portfolio_tracker.models import Market
from portfolio_tracker.schemas.stocks import (
    QuoteRequest,
    QuoteResponse,
    QuoteResponseItem,
    SearchResponse,
    StockCandidateResponse,
)
from portfolio_tracker.services.valuation import ValuationEngine

router = APIRouter(
    prefix="/stocks",
    tags=["Stocks"],
)


@router.get("/search", response_model=SearchResponse)
def search_stocks(
        q: str = Query(..., min_length=1, max_length=100, description="Company name or symbol"),
        market: Market = Query(..., description="DOMESTIC or FOREIGN"),
        engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Search listings on one market."""
    candidates = engine.search(q, market)
    return SearchResponse(
        query=q,
        market=market,
        results=[StockCandidateResponse.model_validate(c) for c in candidates],
    )


@router.post("/quotes", response_model=QuoteResponse)
def get_quotes(
        payload: QuoteRequest,
        engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Current quotes for the requested symbols."""
    results = engine.quotes([(item.symbol, item.market) for item in payload.symbols])

    quotes = []
    for (symbol, market), outcome in results.items():
        if outcome.ok:
            cached = outcome.value
            quotes.append(QuoteResponseItem(
                symbol=symbol,
                market=market,
                price=cached.value.price,
                currency=cached.value.currency,
                name=cached.value.name,
                fetched_at=cached.value.fetched_at,
                source=cached.source,
                error=str(cached.error) if cached.error else None,
            ))
        else:
            quotes.append(QuoteResponseItem(symbol=symbol, market=market, error=str(outcome.error)))

    return QuoteResponse(quotes=quotes)
