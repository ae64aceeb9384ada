# backend/portfolio_tracker/services/snapshot_history.py
"""
Bounded, append-only series of portfolio total values.

A snapshot is appended after every refresh. Only the newest `capacity`
points are kept (90 by default); older points are evicted first, both in
memory and in storage.

Appends always succeed in memory. A storage failure is logged and reported
through `last_write`, and the in-memory series still advances.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from portfolio_tracker.services.constants import CURRENCY_PRECISION, DEFAULT_SNAPSHOT_CAPACITY
from portfolio_tracker.services.exceptions import StorageError
from portfolio_tracker.services.protocols import PortfolioStorage
from portfolio_tracker.services.types import PortfolioSnapshot, WriteResult

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimeRange(str, enum.Enum):
    """Performance chart windows."""
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"

    @property
    def days(self) -> int:
        return _TIME_RANGE_DAYS[self]

    def since(self, now: datetime) -> datetime:
        """Inclusive lower bound of the window ending at `now`."""
        return now - timedelta(days=self.days)


_TIME_RANGE_DAYS = {
    TimeRange.ONE_WEEK: 7,
    TimeRange.ONE_MONTH: 30,
    TimeRange.THREE_MONTHS: 90,
    TimeRange.ONE_YEAR: 365,
    TimeRange.FIVE_YEARS: 1825,
}


class SnapshotHistory:
    """
    FIFO ring of PortfolioSnapshots with write-through to storage.

    Args:
        storage: Durable snapshot storage
        capacity: Number of snapshots kept
        clock: Source of "now" (UTC) for appends without a timestamp
    """

    def __init__(
            self,
            storage: PortfolioStorage,
            capacity: int = DEFAULT_SNAPSHOT_CAPACITY,
            clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._storage = storage
        self._capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshots: deque[PortfolioSnapshot] = deque(maxlen=capacity)
        self._last_write = WriteResult()

        try:
            loaded = storage.fetch_snapshots()
        except StorageError as e:
            logger.warning(f"Could not load snapshot history, starting empty: {e}")
            loaded = []
        self._snapshots.extend(loaded[-capacity:])
        logger.info(f"SnapshotHistory loaded {len(self._snapshots)} snapshot(s) (capacity={capacity})")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def last_write(self) -> WriteResult:
        """Durability of the most recent append."""
        return self._last_write

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def append(self, total_value: Decimal, timestamp: datetime | None = None) -> PortfolioSnapshot:
        """
        Record the portfolio total at `timestamp` (default: now).

        The series stays ascending: a timestamp older than the newest point
        is moved up to it.
        """
        timestamp = timestamp or self._clock()
        with self._lock:
            if self._snapshots and timestamp < self._snapshots[-1].timestamp:
                logger.debug(f"Snapshot timestamp {timestamp} predates latest; clamped")
                timestamp = self._snapshots[-1].timestamp

            snapshot = PortfolioSnapshot(
                timestamp=timestamp,
                total_value=total_value.quantize(CURRENCY_PRECISION),
            )
            # deque(maxlen) evicts from the head
            self._snapshots.append(snapshot)

            try:
                self._storage.append_snapshot(snapshot)
                pruned = self._storage.prune_snapshots(self._capacity)
                if pruned:
                    logger.debug(f"Pruned {pruned} snapshot(s) beyond capacity")
                self._last_write = WriteResult()
            except StorageError as e:
                logger.warning(f"Snapshot kept in memory but not persisted: {e}")
                self._last_write = WriteResult.failed(e)

        return snapshot

    def list(self, since: datetime | None = None) -> list[PortfolioSnapshot]:
        """Snapshots in ascending time order, optionally from `since` (inclusive)."""
        with self._lock:
            snapshots = list(self._snapshots)
        if since is None:
            return snapshots
        return [s for s in snapshots if s.timestamp >= since]

    def list_range(self, time_range: TimeRange, now: datetime | None = None) -> list[PortfolioSnapshot]:
        """Snapshots inside the chart window ending at `now`."""
        return self.list(since=time_range.since(now or self._clock()))

    def latest(self) -> PortfolioSnapshot | None:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None
