# backend/portfolio_tracker/storage.py
"""
SQLAlchemy implementation of the PortfolioStorage protocol.

Each call runs in its own short session and commits before returning, so a
successful return means the change is durable. Any SQLAlchemyError is rolled
back and re-raised as StorageError; callers decide whether that is fatal.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portfolio_tracker.models import HoldingRecord, SnapshotRecord
from portfolio_tracker.services.exceptions import StorageError
from portfolio_tracker.services.types import Holding, PortfolioSnapshot, Stock

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyStorage:
    """Durable holdings and snapshots on any SQLAlchemy-supported database."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Storage operation {operation} failed: {e}")
            raise StorageError(operation, str(e)) from e
        finally:
            session.close()

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    def insert_holding(self, holding: Holding) -> None:
        with self._session("insert_holding") as session:
            next_position = session.scalar(
                select(func.coalesce(func.max(HoldingRecord.position), 0))
            ) + 1
            session.add(self._to_record(holding, next_position))

    def fetch_holdings(self) -> list[Holding]:
        with self._session("fetch_holdings") as session:
            records = session.scalars(
                select(HoldingRecord).order_by(HoldingRecord.position)
            ).all()
            return [self._to_holding(record) for record in records]

    def update_holding_prices(self, holdings: list[Holding]) -> None:
        if not holdings:
            return
        with self._session("update_holding_prices") as session:
            for holding in holdings:
                record = session.get(HoldingRecord, str(holding.id))
                if record is None:
                    # Deleted concurrently; nothing to update
                    continue
                record.current_price = holding.stock.current_price
                record.name = holding.stock.name

    def delete_holding(self, holding_id: UUID) -> None:
        with self._session("delete_holding") as session:
            session.execute(delete(HoldingRecord).where(HoldingRecord.id == str(holding_id)))

    def delete_all_holdings(self) -> None:
        with self._session("delete_all_holdings") as session:
            session.execute(delete(HoldingRecord))

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def append_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        with self._session("append_snapshot") as session:
            session.add(SnapshotRecord(
                id=str(snapshot.id),
                timestamp=snapshot.timestamp,
                total_value=snapshot.total_value,
            ))

    def fetch_snapshots(self, since: datetime | None = None) -> list[PortfolioSnapshot]:
        with self._session("fetch_snapshots") as session:
            stmt = select(SnapshotRecord).order_by(SnapshotRecord.timestamp)
            if since is not None:
                stmt = stmt.where(SnapshotRecord.timestamp >= since)
            return [
                PortfolioSnapshot(
                    id=UUID(record.id),
                    timestamp=_as_utc(record.timestamp),
                    total_value=record.total_value,
                )
                for record in session.scalars(stmt).all()
            ]

    def prune_snapshots(self, keep: int) -> int:
        with self._session("prune_snapshots") as session:
            stale_ids = session.scalars(
                select(SnapshotRecord.id)
                .order_by(SnapshotRecord.timestamp.desc())
                .offset(keep)
            ).all()
            if stale_ids:
                session.execute(delete(SnapshotRecord).where(SnapshotRecord.id.in_(stale_ids)))
            return len(stale_ids)

    # =========================================================================
    # MAPPING
    # =========================================================================

    @staticmethod
    def _to_record(holding: Holding, position: int) -> HoldingRecord:
        return HoldingRecord(
            id=str(holding.id),
            position=position,
            symbol=holding.stock.symbol,
            name=holding.stock.name,
            market=holding.stock.market,
            currency=holding.stock.currency,
            current_price=holding.stock.current_price,
            quantity=holding.quantity,
            purchase_price=holding.purchase_price,
            purchase_date=holding.purchase_date,
            account=holding.account,
        )

    @staticmethod
    def _to_holding(record: HoldingRecord) -> Holding:
        return Holding(
            id=UUID(record.id),
            stock=Stock(
                symbol=record.symbol,
                name=record.name,
                market=record.market,
                current_price=record.current_price,
                currency=record.currency,
            ),
            quantity=record.quantity,
            purchase_price=record.purchase_price,
            purchase_date=record.purchase_date,
            account=record.account,
        )
