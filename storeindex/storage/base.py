"""
Abstract storage interface for the index engine.

The engine core depends only on HistoryRepository: it reads prior snapshots
for history windows and baselines, and upserts the snapshot it computed.
Raw metric sets staged by upstream collectors live in the same store so the
bundled metric source can read them back.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Optional

from storeindex.models.enums import Granularity
from storeindex.models.metrics import HistoryPoint, HistoryWindow, RawMetricSet
from storeindex.models.snapshots import IndexSnapshot


class HistoryRepository(ABC):
    """
    Read/write access to IndexSnapshots keyed by (entity_id, period_end, granularity).

    Implementations must ensure:
    - Upserts replace every column for the key atomically
    - Concurrent upserts of the same key are last-write-wins
    - Snapshot lists come back newest first
    """

    # =========================================================================
    # Snapshots
    # =========================================================================

    @abstractmethod
    def upsert_snapshot(self, snapshot: IndexSnapshot) -> None:
        """
        Insert or fully replace the snapshot for its key.

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    def read_snapshot(
        self,
        entity_id: str,
        period_end: date,
        granularity: Granularity,
    ) -> Optional[IndexSnapshot]:
        """Read one snapshot by key, None when absent."""
        pass

    @abstractmethod
    def read_snapshots(
        self,
        entity_id: str,
        granularity: Granularity,
        limit: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[IndexSnapshot]:
        """
        Read snapshots of one entity, ordered by period_end descending.

        Args:
            entity_id: Entity identifier
            granularity: Period unit
            limit: Maximum number of snapshots
            start: Earliest period_end (inclusive)
            end: Latest period_end (inclusive)
        """
        pass

    @abstractmethod
    def list_entities(self) -> list[str]:
        """Entity ids with staged raw metrics or stored snapshots, sorted."""
        pass

    # =========================================================================
    # Raw metric staging
    # =========================================================================

    @abstractmethod
    def write_raw_metrics(self, raw: RawMetricSet) -> None:
        """Stage (insert or replace) a raw metric set from an upstream collector."""
        pass

    @abstractmethod
    def read_raw_metrics(
        self,
        entity_id: str,
        period_end: date,
        granularity: Granularity,
    ) -> Optional[RawMetricSet]:
        """Read a staged raw metric set, None when absent."""
        pass

    # =========================================================================
    # Derived reads
    # =========================================================================

    def latest_before(
        self,
        entity_id: str,
        granularity: Granularity,
        before: date,
    ) -> Optional[IndexSnapshot]:
        """Most recent snapshot with period_end strictly before ``before``."""
        snapshots = self.read_snapshots(
            entity_id, granularity, limit=1, end=before - timedelta(days=1)
        )
        return snapshots[0] if snapshots else None

    def snapshot_exists(self, entity_id: str, period_end: date, granularity: Granularity) -> bool:
        return self.read_snapshot(entity_id, period_end, granularity) is not None

    def history(
        self,
        entity_id: str,
        metric_or_index_id: str,
        granularity: Granularity,
        lookback: int,
        before: Optional[date] = None,
        max_age_days: Optional[int] = None,
    ) -> HistoryWindow:
        """
        Past values of one raw metric or index, oldest first.

        Raw inputs are looked up before index values, so a leaf sharing its
        metric's id yields the raw metric.

        Args:
            entity_id: Entity identifier
            metric_or_index_id: Raw metric id or index node id
            granularity: Period unit
            lookback: Maximum number of past periods
            before: Only periods ending strictly before this date
            max_age_days: Only periods ending within this many days of ``before``

        Returns:
            HistoryWindow, empty when nothing is stored
        """
        windows = self.histories(
            entity_id,
            [metric_or_index_id],
            granularity,
            lookback,
            before=before,
            max_age_days=max_age_days,
        )
        return windows[metric_or_index_id]

    def histories(
        self,
        entity_id: str,
        metric_or_index_ids: list[str],
        granularity: Granularity,
        lookback: int,
        before: Optional[date] = None,
        max_age_days: Optional[int] = None,
    ) -> dict[str, HistoryWindow]:
        """Several history windows from a single snapshot read."""
        end = before - timedelta(days=1) if before is not None else None
        start = None
        if before is not None and max_age_days is not None:
            start = before - timedelta(days=max_age_days)

        snapshots = list(
            reversed(
                self.read_snapshots(entity_id, granularity, limit=lookback, start=start, end=end)
            )
        )
        return {
            metric_id: HistoryWindow(
                metric_id=metric_id,
                points=tuple(
                    HistoryPoint(period_end=s.period_end, value=s.value_of(metric_id))
                    for s in snapshots
                ),
            )
            for metric_id in metric_or_index_ids
        }
