"""
Snapshot Writer: Idempotent Period-Keyed Upsert.

A snapshot is written once per (entity_id, period_end, granularity). An
existing row is left alone unless the caller forces recomputation, in which
case every column is replaced. A failed write does not raise: the snapshot
comes back with ``saved=False`` so a batch can report it and move on.
"""

import structlog

from storeindex.errors import PersistenceError
from storeindex.models.snapshots import IndexSnapshot
from storeindex.storage.base import HistoryRepository

logger = structlog.get_logger()


class SnapshotWriter:
    """
    Persists computed snapshots through a HistoryRepository.

    Attributes:
        repository: Snapshot store
        logger: Structured logger
    """

    def __init__(self, repository: HistoryRepository):
        self.repository = repository
        self.logger = structlog.get_logger()

    def write(self, snapshot: IndexSnapshot, force: bool = False) -> IndexSnapshot:
        """
        Upsert a snapshot.

        Args:
            snapshot: Computed snapshot
            force: Replace an existing row for the same key

        Returns:
            Copy of the snapshot with ``saved`` set to whether the row was
            written. When another writer stored the key first and force is
            off, the stored row comes back flagged ``already_stored``.
        """
        try:
            if not force:
                stored = self.repository.read_snapshot(
                    snapshot.entity_id, snapshot.period_end, snapshot.granularity
                )
                if stored is not None:
                    self.logger.info(
                        "snapshot_write_skipped",
                        entity_id=snapshot.entity_id,
                        period_end=snapshot.period_end.isoformat(),
                        granularity=snapshot.granularity.value,
                    )
                    return stored.model_copy(update={"saved": False, "already_stored": True})

            self.repository.upsert_snapshot(snapshot)
        except PersistenceError as e:
            self.logger.error(
                "snapshot_upsert_failed",
                entity_id=snapshot.entity_id,
                period_end=snapshot.period_end.isoformat(),
                granularity=snapshot.granularity.value,
                error=str(e),
            )
            return snapshot.model_copy(update={"saved": False})

        self.logger.info(
            "snapshot_written",
            entity_id=snapshot.entity_id,
            period_end=snapshot.period_end.isoformat(),
            granularity=snapshot.granularity.value,
            overall=snapshot.overall_value,
            forced=force,
        )
        return snapshot.model_copy(update={"saved": True})
