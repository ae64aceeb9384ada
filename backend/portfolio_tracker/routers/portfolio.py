# backend/portfolio_tracker/routers/portfolio.py
"""
Portfolio valuation endpoints.

- GET  /portfolio/summary           - Totals recomputed from current prices (no fetch)
- POST /portfolio/refresh           - Fetch prices and rate, revalue, snapshot
- GET  /portfolio/status            - Outcome of the last refresh
- GET  /portfolio/history?range=1M  - Snapshot series for the chart

Refresh always answers 200: provider and storage failures are reported in
the status (degraded + warnings), never as HTTP errors.
"""

from fastapi import APIRouter, Depends, Query

from portfolio_tracker.dependencies import get_valuation_engine
from portfolio_tracker.schemas.portfolio import (
    HistoryResponse,
    PortfolioSummaryResponse,
    RefreshResponse,
    RefreshStatusResponse,
    SnapshotPoint,
)
from portfolio_tracker.services.snapshot_history import TimeRange
from portfolio_tracker.services.valuation import ValuationEngine

router = APIRouter(
    prefix="/portfolio",
    tags=["Portfolio"],
)


@router.get("/summary", response_model=PortfolioSummaryResponse)
def get_summary(engine: ValuationEngine = Depends(get_valuation_engine)):
    """Current valuation using the last known prices and exchange rate."""
    return PortfolioSummaryResponse.model_validate(engine.summary())


@router.post("/refresh", response_model=RefreshResponse)
def refresh_portfolio(engine: ValuationEngine = Depends(get_valuation_engine)):
    """
    Refresh all prices and the exchange rate.

    Concurrent calls share one refresh. Check `status.degraded` for partial
    failures.
    """
    summary = engine.refresh()
    return RefreshResponse(
        summary=PortfolioSummaryResponse.model_validate(summary),
        status=RefreshStatusResponse.model_validate(engine.status()),
    )


@router.get("/status", response_model=RefreshStatusResponse)
def get_status(engine: ValuationEngine = Depends(get_valuation_engine)):
    """Degraded flag and warnings from the last refresh or write."""
    return RefreshStatusResponse.model_validate(engine.status())


@router.get("/history", response_model=HistoryResponse)
def get_history(
        time_range: TimeRange | None = Query(
            default=None,
            alias="range",
            description="Chart window: 1W, 1M, 3M, 1Y or 5Y (omit for all points)",
        ),
        engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Portfolio total value over time, oldest first."""
    snapshots = engine.history(time_range)
    return HistoryResponse(
        range=time_range,
        points=[SnapshotPoint.model_validate(s) for s in snapshots],
        count=len(snapshots),
    )
