"""
Integration tests for the Store Health Index API.

All endpoints tested:
- Metrics: stage raw metric sets, list entities
- Snapshots: compute, compute-all, backfill, history, single read
- System: health, config
- Concurrency: slow computation does not stall other requests
"""

import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from storeindex.dependencies import get_repository, get_snapshot_service
from storeindex.engine.defaults import default_index_config
from storeindex.engine.snapshot_service import SnapshotService
from storeindex.main import app
from storeindex.sources.staged import StagedMetricSource
from storeindex.storage import DuckDBStorage
from tests.conftest import DictMetricSource, make_item, make_raw_metric_set, week

WEEK_START, WEEK_END = week(0)


@pytest.fixture
def storage(tmp_path):
    db = DuckDBStorage(db_path=str(tmp_path / "api.duckdb"))
    yield db
    db.close()


@pytest.fixture
def client(storage):
    """TestClient wired to a fresh DuckDB file per test."""
    service = SnapshotService(default_index_config(), storage, StagedMetricSource(storage))
    app.dependency_overrides[get_repository] = lambda: storage
    app.dependency_overrides[get_snapshot_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _stage(client, entity_id="store-1", weeks_back=0, **overrides):
    payload = make_raw_metric_set(entity_id, weeks_back=weeks_back, **overrides).model_dump(mode="json")
    response = client.post("/api/v1/metrics/raw", json=payload)
    assert response.status_code == 200
    return response.json()


def _compute(client, entity_id="store-1", force=False, **period):
    body = {
        "entity_id": entity_id,
        "period_start": period.get("period_start", WEEK_START.isoformat()),
        "period_end": period.get("period_end", WEEK_END.isoformat()),
        "granularity": "week",
        "force": force,
    }
    return client.post("/api/v1/snapshots/compute", json=body)


# =============================================================================
# Metrics
# =============================================================================


class TestMetricsEndpoints:

    def test_stage_raw_metrics(self, client):
        body = _stage(client, items=[make_item("sku-1")])
        assert body["success"] is True
        assert body["data"]["entity_id"] == "store-1"
        assert body["data"]["items"] == 1

    def test_stage_rejects_inverted_period(self, client):
        payload = make_raw_metric_set().model_dump(mode="json")
        payload["period_start"], payload["period_end"] = payload["period_end"], payload["period_start"]
        response = client.post("/api/v1/metrics/raw", json=payload)
        assert response.status_code == 422

    def test_list_entities(self, client):
        _stage(client, "store-b")
        _stage(client, "store-a")
        body = client.get("/api/v1/metrics/entities").json()
        assert body["data"] == ["store-a", "store-b"]
        assert body["count"] == 2


# =============================================================================
# Snapshots
# =============================================================================


class TestSnapshotEndpoints:

    def test_compute_snapshot(self, client):
        _stage(client)
        response = _compute(client)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["saved"] is True
        assert data["index_tree"]["value"] == 56
        assert data["level"] == "fair"
        assert data["period_label"] == "2026-W41"
        assert [a["rule_id"] for a in data["alerts"]] == ["ppi_low"]

    def test_recompute_without_force_returns_stored(self, client):
        _stage(client)
        first = _compute(client).json()["data"]
        second = _compute(client).json()["data"]

        assert second["saved"] is False
        assert second["computed_at"] == first["computed_at"]

    def test_forced_recompute_replaces(self, client):
        _stage(client)
        first = _compute(client).json()["data"]
        second = _compute(client, force=True).json()["data"]

        assert second["saved"] is True
        assert second["index_tree"] == first["index_tree"]

    def test_compute_unknown_entity_is_404(self, client):
        response = _compute(client, entity_id="store-missing")
        assert response.status_code == 404
        assert response.json()["error_type"] == "UpstreamFetchError"

    def test_compute_inverted_period_is_422(self, client):
        response = _compute(
            client,
            period_start=WEEK_END.isoformat(),
            period_end=WEEK_START.isoformat(),
        )
        assert response.status_code == 422

    def test_get_snapshot_and_history(self, client):
        _stage(client, weeks_back=1, revenue=4000.0)
        _stage(client, weeks_back=0)
        _compute(
            client,
            period_start=week(1)[0].isoformat(),
            period_end=week(1)[1].isoformat(),
        )
        _compute(client)

        single = client.get(f"/api/v1/snapshots/store-1/{WEEK_END.isoformat()}")
        history = client.get("/api/v1/snapshots/store-1", params={"limit": 5})

        assert single.status_code == 200
        assert single.json()["data"]["period_end"] == WEEK_END.isoformat()
        assert history.json()["count"] == 2
        assert [s["period_end"] for s in history.json()["data"]] == [
            WEEK_END.isoformat(),
            week(1)[1].isoformat(),
        ]

    def test_get_missing_snapshot_is_404(self, client):
        response = client.get(f"/api/v1/snapshots/store-1/{WEEK_END.isoformat()}")
        assert response.status_code == 404

    def test_compute_all_reports_each_entity(self, client):
        _stage(client, "store-1")
        _stage(client, "store-2")

        response = client.post(
            "/api/v1/snapshots/compute-all",
            json={
                "granularity": "week",
                "period_start": WEEK_START.isoformat(),
                "period_end": WEEK_END.isoformat(),
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert [s["entity_id"] for s in body["data"]] == ["store-1", "store-2"]
        assert body["summary"]["success"] == 2
        assert body["summary"]["error"] == 0

    def test_compute_all_custom_without_period_is_422(self, client):
        response = client.post("/api/v1/snapshots/compute-all", json={"granularity": "custom"})
        assert response.status_code == 422

    def test_backfill_custom_granularity_is_422(self, client):
        response = client.post(
            "/api/v1/snapshots/backfill",
            json={"entity_id": "store-1", "granularity": "custom"},
        )
        assert response.status_code == 422

    def test_backfill_reports_missing_periods(self, client):
        response = client.post(
            "/api/v1/snapshots/backfill",
            json={"entity_id": "store-1", "granularity": "week", "periods": 2},
        )
        statuses = response.json()["data"]
        assert response.status_code == 200
        assert len(statuses) == 2
        assert all(s["status"] == "error" for s in statuses)


# =============================================================================
# System
# =============================================================================


class TestSystemEndpoints:

    def test_root_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    def test_system_health(self, client):
        data = client.get("/api/v1/system/health").json()["data"]
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    def test_system_config(self, client):
        data = client.get("/api/v1/system/config").json()["data"]
        assert data["index_config_source"] == "builtin"
        assert data["index_preset"] == "store_index"
        assert data["engine"]["config_version"] == "store_index_v1"


# =============================================================================
# Concurrency
# =============================================================================


class SlowMetricSource(DictMetricSource):
    """Upstream that takes a full second per fetch."""

    def fetch(self, entity_id, period_start, period_end, granularity):
        time.sleep(1.0)
        return super().fetch(entity_id, period_start, period_end, granularity)


class TestConcurrency:

    def test_slow_compute_does_not_block_health(self, storage):
        source = SlowMetricSource([make_raw_metric_set()])
        service = SnapshotService(default_index_config(), storage, source)
        app.dependency_overrides[get_repository] = lambda: storage
        app.dependency_overrides[get_snapshot_service] = lambda: service

        async def run():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                compute = asyncio.create_task(
                    client.post(
                        "/api/v1/snapshots/compute",
                        json={
                            "entity_id": "store-1",
                            "period_start": WEEK_START.isoformat(),
                            "period_end": WEEK_END.isoformat(),
                        },
                    )
                )
                await asyncio.sleep(0.1)
                started = time.perf_counter()
                health = await client.get("/health")
                health_seconds = time.perf_counter() - started
                return health, health_seconds, await compute

        try:
            health, health_seconds, computed = asyncio.run(run())
        finally:
            app.dependency_overrides.clear()

        assert health.status_code == 200
        assert health_seconds < 0.5
        assert computed.status_code == 200
        assert computed.json()["data"]["saved"] is True
