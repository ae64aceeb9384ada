# backend/portfolio_tracker/schemas/holdings.py
"""
Pydantic schemas for holdings.

HoldingCreate validates input at the HTTP boundary (positive quantity and
purchase price); the HoldingStore enforces the same rules again for callers
that do not go through the API.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_tracker.models import Market


class StockSchema(BaseModel):
    """A listed stock and its last known price."""

    model_config = ConfigDict(from_attributes=True)

    symbol: str = Field(..., description="Provider symbol (e.g., 'AAPL', '7203.T')")
    name: str = Field(..., description="Display name")
    market: Market = Field(..., description="DOMESTIC (Tokyo, JPY) or FOREIGN (US, USD)")
    current_price: Decimal = Field(..., description="Last known price in the stock's currency")
    currency: str = Field(..., description="ISO 4217 trading currency")


class HoldingCreate(BaseModel):
    """Request body for POST /holdings."""

    symbol: str = Field(..., min_length=1, max_length=32, description="Stock symbol; Tokyo codes may omit '.T'")
    market: Market = Field(..., description="Market the stock trades on")
    name: str | None = Field(default=None, max_length=255, description="Display name (defaults to the symbol)")
    quantity: Decimal = Field(..., gt=0, description="Number of shares")
    purchase_price: Decimal = Field(..., gt=0, description="Price paid per share, in the stock's currency")
    current_price: Decimal | None = Field(
        default=None,
        ge=0,
        description="Known current price; defaults to the purchase price until the next refresh",
    )
    purchase_date: date | None = Field(default=None, description="Purchase date (defaults to today)")
    account: str = Field(default="Default", min_length=1, max_length=100, description="Account label")

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("symbol must not be blank")
        return value


class HoldingResponse(BaseModel):
    """A stored holding."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    stock: StockSchema
    quantity: Decimal
    purchase_price: Decimal
    purchase_date: date
    account: str


class HoldingListResponse(BaseModel):
    """Response for GET /holdings."""

    items: list[HoldingResponse]
    count: int
