"""
DuckDB storage implementation for the index engine.

Two tables:

- index_snapshots: one row per (entity_id, period_end, granularity) holding
  the full snapshot, nested parts as JSON columns, with the overall index
  and level promoted to plain columns for querying
- raw_metric_sets: raw metric sets staged by upstream collectors, same key

Key features:
- Thread-safe per-thread connections
- Idempotent schema creation; the primary key doubles as the history index
- Single-statement INSERT OR REPLACE upserts (atomic per row)
- Structured logging on every failure
"""

import json
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import duckdb
import structlog

from storeindex.errors import PersistenceError
from storeindex.models.enums import Granularity
from storeindex.models.metrics import RawMetricSet
from storeindex.models.snapshots import IndexSnapshot

from .base import HistoryRepository

logger = structlog.get_logger(__name__)


class StorageError(PersistenceError):
    """Base exception for all storage operation failures."""

    pass


_SNAPSHOT_COLUMNS = """
    entity_id, period_end, granularity, period_start, period_label,
    overall_index, level, index_tree, deltas, alerts, tiers, raw_inputs,
    config_version, computed_at
"""


class DuckDBStorage(HistoryRepository):
    """
    DuckDB implementation of the history repository.

    Attributes:
        db_path: Path to the DuckDB database file
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/storeindex.duckdb"):
        """
        Initialize DuckDB storage backend.

        Args:
            db_path: Path to DuckDB database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_storage_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        yield self._local.connection

    def close(self) -> None:
        """Close this thread's connection, if any."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            del self._local.connection

    def _initialize_schema(self):
        """
        Create tables and indexes. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS index_snapshots (
                            entity_id VARCHAR NOT NULL,
                            period_end DATE NOT NULL,
                            granularity VARCHAR NOT NULL,
                            period_start DATE NOT NULL,
                            period_label VARCHAR,
                            overall_index INTEGER,
                            level VARCHAR,
                            index_tree JSON NOT NULL,
                            deltas JSON,
                            alerts JSON,
                            tiers JSON,
                            raw_inputs JSON,
                            config_version VARCHAR,
                            computed_at TIMESTAMP NOT NULL,
                            PRIMARY KEY (entity_id, period_end, granularity)
                        )
                        """
                    )
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS raw_metric_sets (
                            entity_id VARCHAR NOT NULL,
                            period_end DATE NOT NULL,
                            granularity VARCHAR NOT NULL,
                            period_start DATE NOT NULL,
                            metrics JSON NOT NULL,
                            items JSON,
                            staged_at TIMESTAMP NOT NULL,
                            PRIMARY KEY (entity_id, period_end, granularity)
                        )
                        """
                    )

                self._initialized = True
                logger.info("duckdb_schema_initialized")

            except Exception as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    # =========================================================================
    # Snapshots
    # =========================================================================

    def upsert_snapshot(self, snapshot: IndexSnapshot) -> None:
        """Insert or fully replace the snapshot row for its key."""
        data = snapshot.model_dump(mode="json")
        try:
            with self._get_connection() as conn:
                conn.execute(
                    f"""
                    INSERT OR REPLACE INTO index_snapshots ({_SNAPSHOT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        snapshot.entity_id,
                        snapshot.period_end,
                        snapshot.granularity.value,
                        snapshot.period_start,
                        snapshot.period_label,
                        snapshot.overall_value,
                        snapshot.level.value,
                        json.dumps(data["index_tree"]),
                        json.dumps(data["deltas"]),
                        json.dumps(data["alerts"]),
                        json.dumps(data["tiers"]),
                        json.dumps(data["raw_inputs"]),
                        snapshot.config_version,
                        snapshot.computed_at,
                    ],
                )
                conn.commit()
                logger.debug(
                    "snapshot_upserted",
                    entity_id=snapshot.entity_id,
                    period_end=snapshot.period_end.isoformat(),
                    granularity=snapshot.granularity.value,
                )

        except Exception as e:
            logger.error(
                "upsert_snapshot_failed",
                entity_id=snapshot.entity_id,
                period_end=snapshot.period_end.isoformat(),
                error=str(e),
            )
            raise StorageError(f"Failed to upsert snapshot: {e}") from e

    def read_snapshot(
        self,
        entity_id: str,
        period_end: date,
        granularity: Granularity,
    ) -> Optional[IndexSnapshot]:
        """Read one snapshot by key."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"""
                    SELECT {_SNAPSHOT_COLUMNS}
                    FROM index_snapshots
                    WHERE entity_id = ? AND period_end = ? AND granularity = ?
                    """,
                    [entity_id, period_end, Granularity(granularity).value],
                ).fetchone()

        except Exception as e:
            logger.error("read_snapshot_failed", entity_id=entity_id, error=str(e))
            raise StorageError(f"Failed to read snapshot: {e}") from e

        return self._row_to_snapshot(row) if row else None

    def read_snapshots(
        self,
        entity_id: str,
        granularity: Granularity,
        limit: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[IndexSnapshot]:
        """Read snapshots of one entity, newest first."""
        query = f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM index_snapshots
            WHERE entity_id = ? AND granularity = ?
        """
        params: list = [entity_id, Granularity(granularity).value]

        if start is not None:
            query += " AND period_end >= ?"
            params.append(start)

        if end is not None:
            query += " AND period_end <= ?"
            params.append(end)

        query += " ORDER BY period_end DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()

        except Exception as e:
            logger.error("read_snapshots_failed", entity_id=entity_id, error=str(e))
            raise StorageError(f"Failed to read snapshots: {e}") from e

        return [self._row_to_snapshot(row) for row in rows]

    def list_entities(self) -> list[str]:
        """Entities with staged raw metrics or stored snapshots."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT entity_id FROM raw_metric_sets
                    UNION
                    SELECT entity_id FROM index_snapshots
                    ORDER BY entity_id
                    """
                ).fetchall()

        except Exception as e:
            logger.error("list_entities_failed", error=str(e))
            raise StorageError(f"Failed to list entities: {e}") from e

        return [row[0] for row in rows]

    # =========================================================================
    # Raw metric staging
    # =========================================================================

    def write_raw_metrics(self, raw: RawMetricSet) -> None:
        """Stage a raw metric set, replacing one already staged for the key."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO raw_metric_sets (
                        entity_id, period_end, granularity, period_start,
                        metrics, items, staged_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        raw.entity_id,
                        raw.period_end,
                        raw.granularity.value,
                        raw.period_start,
                        json.dumps(raw.as_plain_dict()),
                        json.dumps([item.model_dump(mode="json") for item in raw.items]),
                        datetime.utcnow(),
                    ],
                )
                conn.commit()
                logger.info(
                    "raw_metrics_staged",
                    entity_id=raw.entity_id,
                    period_end=raw.period_end.isoformat(),
                    granularity=raw.granularity.value,
                    metrics=len(raw.metrics),
                    items=len(raw.items),
                )

        except Exception as e:
            logger.error("write_raw_metrics_failed", entity_id=raw.entity_id, error=str(e))
            raise StorageError(f"Failed to stage raw metrics: {e}") from e

    def read_raw_metrics(
        self,
        entity_id: str,
        period_end: date,
        granularity: Granularity,
    ) -> Optional[RawMetricSet]:
        """Read a staged raw metric set."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    """
                    SELECT entity_id, period_start, period_end, granularity, metrics, items
                    FROM raw_metric_sets
                    WHERE entity_id = ? AND period_end = ? AND granularity = ?
                    """,
                    [entity_id, period_end, Granularity(granularity).value],
                ).fetchone()

        except Exception as e:
            logger.error("read_raw_metrics_failed", entity_id=entity_id, error=str(e))
            raise StorageError(f"Failed to read raw metrics: {e}") from e

        if not row:
            return None
        return RawMetricSet(
            entity_id=row[0],
            period_start=row[1],
            period_end=row[2],
            granularity=row[3],
            metrics=json.loads(row[4]),
            items=json.loads(row[5]) if row[5] else [],
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _row_to_snapshot(row) -> IndexSnapshot:
        return IndexSnapshot(
            entity_id=row[0],
            period_end=row[1],
            granularity=row[2],
            period_start=row[3],
            period_label=row[4] or "",
            level=row[6],
            index_tree=json.loads(row[7]),
            deltas=json.loads(row[8]) if row[8] else [],
            alerts=json.loads(row[9]) if row[9] else [],
            tiers=json.loads(row[10]) if row[10] else [],
            raw_inputs=json.loads(row[11]) if row[11] else {},
            config_version=row[12] or "",
            computed_at=row[13],
            saved=True,
        )
