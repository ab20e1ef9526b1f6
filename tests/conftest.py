"""
Pytest configuration and shared fixtures for the store index test suite.

Provides model factories, an in-memory history repository, environment
isolation, and fixtures shared by unit, golden, property and integration
tests.
"""

import os
import tempfile
import threading
import uuid as _uuid
from datetime import date, datetime, timedelta
from typing import Optional

import pytest

# Set testing environment BEFORE importing the app. Use a temp path (must not
# exist - DuckDB creates the file); :memory: gives every connection its own
# database which breaks multi-threaded tests.
_test_db_path = os.path.join(
    tempfile.gettempdir(), f"storeindex_test_{_uuid.uuid4().hex[:8]}.duckdb"
)
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path
os.environ.pop("INDEX_CONFIG_PATH", None)
os.environ.pop("INDEX_PRESET", None)


# ---------------------------------------------------------------------------
# Model factories: reusable across all test suites
# ---------------------------------------------------------------------------

from storeindex.engine.defaults import default_config_dict, default_index_config
from storeindex.engine.snapshot_service import SnapshotService
from storeindex.errors import PersistenceError, UpstreamFetchError
from storeindex.models.engine_config import IndexEngineConfig
from storeindex.models.enums import Granularity, IndexLevel
from storeindex.models.metrics import ItemMetrics, RawMetricSet
from storeindex.models.snapshots import IndexNode, IndexSnapshot
from storeindex.sources.base import MetricSource
from storeindex.storage.base import HistoryRepository

# Monday of the reference week used across tests
BASE_WEEK_START = date(2026, 10, 5)

DEFAULT_METRICS = {
    "order_count": 40,
    "revenue": 5000.0,
    "gross_profit": 2000.0,
    "aov": 125.0,
    "margin_percent": 40.0,
    "organic_clicks_yoy": 12.0,
    "impressions_yoy": 5.0,
    "avg_position": 8.5,
    "nonbrand_share": 55.0,
    "stock_availability": 95.0,
    "out_of_stock_percent": 5.0,
    "fulfillment_days": 2.0,
}


def week(weeks_back: int = 0) -> tuple[date, date]:
    """(Monday, Sunday) of the reference week shifted ``weeks_back`` weeks earlier."""
    start = BASE_WEEK_START - timedelta(days=7 * weeks_back)
    return start, start + timedelta(days=6)


def make_item(item_id: str = "sku-1", **overrides) -> ItemMetrics:
    """Factory function for creating test ItemMetrics objects."""
    defaults = dict(
        item_id=item_id,
        revenue=1000.0,
        units_sold=20.0,
        margin_percent=35.0,
        stock_units=30.0,
        stock_age_days=None,
    )
    defaults.update(overrides)
    return ItemMetrics(**defaults)


def make_raw_metric_set(
    entity_id: str = "store-1",
    weeks_back: int = 0,
    granularity: Granularity = Granularity.WEEK,
    items: Optional[list[ItemMetrics]] = None,
    period: Optional[tuple[date, date]] = None,
    **metric_overrides,
) -> RawMetricSet:
    """
    Factory function for creating test RawMetricSet objects.

    Metric overrides with value None mark the metric as unavailable.
    """
    start, end = period or week(weeks_back)
    metrics = dict(DEFAULT_METRICS)
    metrics.update(metric_overrides)
    return RawMetricSet(
        entity_id=entity_id,
        period_start=start,
        period_end=end,
        granularity=granularity,
        metrics=metrics,
        items=items or [],
    )


def make_tree(overall: Optional[int] = 60, **category_values) -> IndexNode:
    """Small overall -> category tree with the given values."""
    values = {"core": 60, "ppi": 60, "spi": 60, "oi": 60}
    values.update(category_values)
    weights = {"core": 0.35, "ppi": 0.25, "spi": 0.20, "oi": 0.20}
    return IndexNode(
        id="overall",
        value=overall,
        children=[
            IndexNode(id=node_id, value=value, weight=weights[node_id])
            for node_id, value in values.items()
        ],
    )


def make_snapshot(
    entity_id: str = "store-1",
    weeks_back: int = 1,
    overall: Optional[int] = 60,
    raw_inputs: Optional[dict] = None,
    period: Optional[tuple[date, date]] = None,
    granularity: Granularity = Granularity.WEEK,
    **overrides,
) -> IndexSnapshot:
    """Factory function for creating test IndexSnapshot objects."""
    start, end = period or week(weeks_back)
    defaults = dict(
        entity_id=entity_id,
        period_start=start,
        period_end=end,
        granularity=granularity,
        period_label="",
        index_tree=make_tree(overall),
        raw_inputs=dict(DEFAULT_METRICS) if raw_inputs is None else raw_inputs,
        level=IndexLevel.GOOD,
        config_version="store_index_v1",
        computed_at=datetime(2026, 10, 12, 6, 0, 0),
    )
    defaults.update(overrides)
    return IndexSnapshot(**defaults)


def make_config(**overrides) -> IndexEngineConfig:
    """Built-in configuration with top-level sections replaced."""
    data = default_config_dict()
    data.update(overrides)
    return IndexEngineConfig.model_validate(data)


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class MockHistoryRepository(HistoryRepository):
    """
    In-memory HistoryRepository for unit testing without DuckDB.
    """

    def __init__(self, fail_writes: bool = False):
        self.snapshots: dict[tuple, IndexSnapshot] = {}
        self.raw_sets: dict[tuple, RawMetricSet] = {}
        self.fail_writes = fail_writes
        self.upsert_count = 0
        self._lock = threading.Lock()

    def upsert_snapshot(self, snapshot):
        if self.fail_writes:
            raise PersistenceError("disk full")
        with self._lock:
            self.snapshots[snapshot.key] = snapshot.model_copy(update={"saved": True})
            self.upsert_count += 1

    def read_snapshot(self, entity_id, period_end, granularity):
        return self.snapshots.get((entity_id, period_end, Granularity(granularity).value))

    def read_snapshots(self, entity_id, granularity, limit=None, start=None, end=None):
        granularity = Granularity(granularity).value
        with self._lock:
            matches = [
                s
                for (eid, _, gran), s in self.snapshots.items()
                if eid == entity_id
                and gran == granularity
                and (start is None or s.period_end >= start)
                and (end is None or s.period_end <= end)
            ]
        matches.sort(key=lambda s: s.period_end, reverse=True)
        return matches[:limit] if limit is not None else matches

    def list_entities(self):
        ids = {key[0] for key in self.raw_sets} | {key[0] for key in self.snapshots}
        return sorted(ids)

    def write_raw_metrics(self, raw):
        self.raw_sets[(raw.entity_id, raw.period_end, raw.granularity.value)] = raw

    def read_raw_metrics(self, entity_id, period_end, granularity):
        return self.raw_sets.get((entity_id, period_end, Granularity(granularity).value))

    def add(self, *snapshots: IndexSnapshot) -> "MockHistoryRepository":
        for snapshot in snapshots:
            self.upsert_snapshot(snapshot)
        self.upsert_count = 0
        return self


class DictMetricSource(MetricSource):
    """MetricSource over a dict of RawMetricSets; unknown keys are upstream failures."""

    def __init__(self, raw_sets: Optional[list[RawMetricSet]] = None, failing: Optional[set] = None):
        self.raw_sets = {(r.entity_id, r.period_end): r for r in raw_sets or []}
        self.failing = failing or set()
        self.fetch_count = 0

    def add(self, raw: RawMetricSet) -> None:
        self.raw_sets[(raw.entity_id, raw.period_end)] = raw

    def fetch(self, entity_id, period_start, period_end, granularity):
        self.fetch_count += 1
        if entity_id in self.failing:
            raise UpstreamFetchError(f"upstream unavailable for {entity_id}")
        raw = self.raw_sets.get((entity_id, period_end))
        if raw is None:
            raise UpstreamFetchError(f"no metrics for {entity_id} ending {period_end}")
        return raw

    def list_entities(self):
        return sorted({key[0] for key in self.raw_sets} | self.failing)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    """Built-in engine configuration."""
    return default_index_config()


@pytest.fixture
def mock_repository():
    """Empty in-memory history repository."""
    return MockHistoryRepository()


@pytest.fixture
def metric_source():
    """Metric source holding the reference week for store-1."""
    return DictMetricSource([make_raw_metric_set()])


@pytest.fixture
def service(config, mock_repository, metric_source):
    """SnapshotService over in-memory collaborators."""
    return SnapshotService(config, mock_repository, metric_source, max_workers=4)


@pytest.fixture
def sample_items():
    """One item per tier under the built-in thresholds."""
    return [
        make_item("star", revenue=5000.0, units_sold=100.0, margin_percent=50.0, stock_units=50.0),
        make_item("steady", revenue=800.0, units_sold=40.0, margin_percent=25.0, stock_units=60.0),
        make_item("laggard", revenue=50.0, units_sold=1.0, margin_percent=5.0, stock_units=200.0),
        make_item("dust", revenue=0.0, units_sold=0.0, margin_percent=30.0, stock_units=40.0),
    ]
