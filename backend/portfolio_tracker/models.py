# backend/portfolio_tracker/models.py
"""
Market enums and SQLAlchemy models for durable portfolio state.

Two tables back the tracker:
- holdings: one row per Holding (owned by HoldingStore)
- portfolio_snapshots: the bounded total-value series (owned by SnapshotHistory)

Nothing outside portfolio_tracker.storage reads or writes these rows directly.
"""
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Date, DateTime, Enum, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Market(str, enum.Enum):
    """
    Market a stock trades on.

    DOMESTIC is the Tokyo Stock Exchange (JPY); FOREIGN is the US market
    (USD). The REST quote backend names them "japanese" and "american".
    """
    DOMESTIC = "DOMESTIC"
    FOREIGN = "FOREIGN"

    @property
    def currency(self) -> str:
        return "JPY" if self is Market.DOMESTIC else "USD"

    @property
    def wire_name(self) -> str:
        return "japanese" if self is Market.DOMESTIC else "american"

    @classmethod
    def from_wire(cls, value: str) -> "Market":
        """Parse a backend market name ("japanese"/"american") or enum value."""
        normalized = value.strip().lower()
        if normalized in ("japanese", "domestic", "jp"):
            return cls.DOMESTIC
        if normalized in ("american", "foreign", "us"):
            return cls.FOREIGN
        raise ValueError(f"Unknown market: {value!r}")


class RateSource(str, enum.Enum):
    """Where the exchange rate in use came from."""
    LIVE = "LIVE"
    FALLBACK = "FALLBACK"


class HoldingRecord(Base):
    __tablename__ = "holdings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Insertion order; holdings are listed in the order they were added
    position: Mapped[int] = mapped_column(Integer, index=True)

    symbol: Mapped[str] = mapped_column(String(32), index=True)
    name: Mapped[str] = mapped_column(String(255))
    market: Mapped[Market] = mapped_column(Enum(Market))
    currency: Mapped[str] = mapped_column(String(3))
    current_price: Mapped[Decimal] = mapped_column(Numeric(20, 8))

    quantity: Mapped[Decimal] = mapped_column(Numeric(20, 8))
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(20, 8))
    purchase_date: Mapped[date] = mapped_column(Date)
    account: Mapped[str] = mapped_column(String(100), default="Default")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class SnapshotRecord(Base):
    __tablename__ = "portfolio_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    total_value: Mapped[Decimal] = mapped_column(Numeric(20, 2))
