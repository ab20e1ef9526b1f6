"""
Integration tests for DuckDBStorage against a real database file.
"""

import pytest

from storeindex.errors import PersistenceError
from storeindex.models.enums import Granularity
from storeindex.storage import DuckDBStorage, StorageError
from tests.conftest import make_item, make_raw_metric_set, make_snapshot, week


@pytest.fixture
def storage(tmp_path):
    db = DuckDBStorage(db_path=str(tmp_path / "storeindex.duckdb"))
    yield db
    db.close()


class TestSnapshots:
    """Snapshot upsert and reads."""

    def test_roundtrip_preserves_snapshot(self, storage):
        snapshot = make_snapshot(weeks_back=1, overall=64)
        storage.upsert_snapshot(snapshot)

        stored = storage.read_snapshot("store-1", week(1)[1], Granularity.WEEK)

        assert stored.saved is True
        assert stored.index_tree == snapshot.index_tree
        assert stored.raw_inputs == snapshot.raw_inputs
        assert stored.computed_at == snapshot.computed_at
        assert stored.overall_value == 64

    def test_upsert_replaces_row_for_same_key(self, storage):
        storage.upsert_snapshot(make_snapshot(weeks_back=1, overall=40))
        storage.upsert_snapshot(make_snapshot(weeks_back=1, overall=75))

        snapshots = storage.read_snapshots("store-1", Granularity.WEEK)

        assert len(snapshots) == 1
        assert snapshots[0].overall_value == 75

    def test_read_missing_snapshot_returns_none(self, storage):
        assert storage.read_snapshot("store-1", week(0)[1], Granularity.WEEK) is None
        assert storage.snapshot_exists("store-1", week(0)[1], Granularity.WEEK) is False

    def test_granularity_is_part_of_key(self, storage):
        storage.upsert_snapshot(make_snapshot(weeks_back=1))
        assert storage.read_snapshot("store-1", week(1)[1], Granularity.MONTH) is None

    def test_read_snapshots_newest_first_with_filters(self, storage):
        for n in range(5):
            storage.upsert_snapshot(make_snapshot(weeks_back=n, overall=50 + n))

        newest = storage.read_snapshots("store-1", Granularity.WEEK, limit=2)
        window = storage.read_snapshots(
            "store-1", Granularity.WEEK, start=week(3)[1], end=week(1)[1]
        )

        assert [s.period_end for s in newest] == [week(0)[1], week(1)[1]]
        assert [s.period_end for s in window] == [week(1)[1], week(2)[1], week(3)[1]]

    def test_latest_before_excludes_boundary(self, storage):
        storage.upsert_snapshot(make_snapshot(weeks_back=2))
        storage.upsert_snapshot(make_snapshot(weeks_back=1))

        latest = storage.latest_before("store-1", Granularity.WEEK, before=week(1)[1])

        assert latest.period_end == week(2)[1]

    def test_history_prefers_raw_inputs_over_index_values(self, storage):
        storage.upsert_snapshot(make_snapshot(weeks_back=2, raw_inputs={"revenue": 3000.0}))
        storage.upsert_snapshot(make_snapshot(weeks_back=1, raw_inputs={"revenue": 4000.0}))

        revenue = storage.history("store-1", "revenue", Granularity.WEEK, 12, before=week(0)[0])
        core = storage.history("store-1", "core", Granularity.WEEK, 12, before=week(0)[0])

        assert revenue.values() == [3000.0, 4000.0]
        assert core.values() == [60.0, 60.0]

    def test_history_respects_lookback_and_max_age(self, storage):
        for n in range(1, 6):
            storage.upsert_snapshot(make_snapshot(weeks_back=n, overall=50 + n))

        limited = storage.history("store-1", "overall", Granularity.WEEK, 2, before=week(0)[0])
        recent = storage.history(
            "store-1", "overall", Granularity.WEEK, 12, before=week(0)[0], max_age_days=10
        )

        assert limited.values() == [52.0, 51.0]
        assert recent.values() == [52.0, 51.0]


class TestRawMetrics:
    """Raw metric staging."""

    def test_raw_metric_roundtrip(self, storage):
        raw = make_raw_metric_set(items=[make_item("sku-9")], margin_percent=None)
        storage.write_raw_metrics(raw)

        stored = storage.read_raw_metrics("store-1", week(0)[1], Granularity.WEEK)

        assert stored.get("revenue") == 5000.0
        assert stored.get("margin_percent") is None
        assert [item.item_id for item in stored.items] == ["sku-9"]

    def test_missing_raw_metrics_return_none(self, storage):
        assert storage.read_raw_metrics("store-1", week(0)[1], Granularity.WEEK) is None

    def test_list_entities_unions_raw_and_snapshots(self, storage):
        storage.write_raw_metrics(make_raw_metric_set("store-b"))
        storage.upsert_snapshot(make_snapshot("store-a"))
        storage.write_raw_metrics(make_raw_metric_set("store-a"))

        assert storage.list_entities() == ["store-a", "store-b"]


def test_storage_error_is_persistence_error():
    assert issubclass(StorageError, PersistenceError)
