# backend/portfolio_tracker/schemas/portfolio.py
"""
Pydantic schemas for portfolio valuation, refresh status and history.

All amounts are in the reporting currency unless stated otherwise.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portfolio_tracker.models import RateSource
from portfolio_tracker.schemas.holdings import HoldingResponse
from portfolio_tracker.services.snapshot_history import TimeRange


# =============================================================================
# EXCHANGE RATE
# =============================================================================

class ExchangeRateResponse(BaseModel):
    """USD/JPY rate in use."""

    model_config = ConfigDict(from_attributes=True)

    rate: Decimal = Field(..., description="JPY per 1 USD")
    timestamp: datetime
    source: RateSource = Field(..., description="LIVE, or FALLBACK when no fresh rate was available")


# =============================================================================
# SUMMARY
# =============================================================================

class HoldingValuationResponse(BaseModel):
    """Valuation of one holding."""

    model_config = ConfigDict(from_attributes=True)

    holding: HoldingResponse
    conversion_factor: Decimal = Field(..., description="Multiplier into the reporting currency")
    current_value: Decimal
    cost_basis: Decimal
    gain_loss: Decimal
    gain_loss_pct: Decimal = Field(..., description="Gain/loss as a percentage of cost basis")


class PortfolioSummaryResponse(BaseModel):
    """Portfolio totals and per-holding breakdown."""

    model_config = ConfigDict(from_attributes=True)

    total_value: Decimal
    total_cost_basis: Decimal
    total_gain_loss: Decimal
    total_gain_loss_pct: Decimal
    reporting_currency: str
    exchange_rate: ExchangeRateResponse
    holdings: list[HoldingValuationResponse]
    calculated_at: datetime


# =============================================================================
# REFRESH
# =============================================================================

class RefreshStatusResponse(BaseModel):
    """Outcome of the last refresh."""

    model_config = ConfigDict(from_attributes=True)

    degraded: bool
    warnings: list[str]
    failed_symbols: list[str]
    exchange_rate_source: RateSource
    started_at: datetime | None
    finished_at: datetime | None
    durable: bool


class RefreshResponse(BaseModel):
    """Response for POST /portfolio/refresh."""

    summary: PortfolioSummaryResponse
    status: RefreshStatusResponse


# =============================================================================
# HISTORY
# =============================================================================

class SnapshotPoint(BaseModel):
    """One point of the performance chart."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    timestamp: datetime
    total_value: Decimal


class HistoryResponse(BaseModel):
    """Response for GET /portfolio/history."""

    range: TimeRange | None = Field(default=None, description="Chart window, or null for all points")
    points: list[SnapshotPoint]
    count: int
