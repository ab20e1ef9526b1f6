"""
Snapshot computation and history router.

Wired to:
- SnapshotService for single, batch and backfill computation
- HistoryRepository for snapshot reads
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator

from storeindex.dependencies import get_repository, get_snapshot_service
from storeindex.engine.snapshot_service import SnapshotService
from storeindex.models.enums import ComputeStatus, Granularity
from storeindex.models.snapshots import IndexSnapshot
from storeindex.storage.base import HistoryRepository
from storeindex.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class ComputeRequest(BaseModel):
    """Compute one entity/period."""

    entity_id: str = Field(..., min_length=1, description="Entity (store) identifier")
    period_start: date
    period_end: date
    granularity: Granularity = Granularity.WEEK
    force: bool = Field(default=False, description="Replace an existing snapshot")

    @model_validator(mode="after")
    def validate_period(self) -> "ComputeRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class ComputeAllRequest(BaseModel):
    """Compute one period for every known entity."""

    granularity: Granularity = Granularity.WEEK
    force: bool = False
    period_start: Optional[date] = Field(
        default=None, description="Defaults to the previous completed period"
    )
    period_end: Optional[date] = None

    @model_validator(mode="after")
    def validate_period(self) -> "ComputeAllRequest":
        if (self.period_start is None) != (self.period_end is None):
            raise ValueError("period_start and period_end must be given together")
        if self.period_start is None and self.granularity == Granularity.CUSTOM:
            raise ValueError("custom granularity requires period_start and period_end")
        if self.period_start and self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class BackfillRequest(BaseModel):
    """Compute consecutive past periods for one entity."""

    entity_id: str = Field(..., min_length=1)
    granularity: Granularity = Granularity.WEEK
    periods: int = Field(default=12, ge=1, le=156, description="Completed periods to compute")
    force: bool = False

    @model_validator(mode="after")
    def validate_granularity(self) -> "BackfillRequest":
        if self.granularity == Granularity.CUSTOM:
            raise ValueError("backfill requires week or month granularity")
        return self


def _snapshot_payload(snapshot: IndexSnapshot) -> dict:
    return {**snapshot.model_dump(mode="json"), "saved": snapshot.saved}


@router.post("/compute")
def compute_snapshot(
    request: ComputeRequest,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """
    Compute and persist the snapshot of one entity/period.
    Returns the stored snapshot unchanged when it exists and force is false.
    """
    logger.info(
        "compute_requested",
        entity_id=request.entity_id,
        period_end=request.period_end.isoformat(),
        force=request.force,
    )
    snapshot = service.compute_snapshot(
        request.entity_id,
        request.period_start,
        request.period_end,
        request.granularity,
        force=request.force,
    )
    return {"success": True, "data": _snapshot_payload(snapshot)}


@router.post("/compute-all")
def compute_all(
    request: ComputeAllRequest,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Batch computation; one status per entity."""
    statuses = service.compute_all(
        request.granularity,
        force=request.force,
        period_start=request.period_start,
        period_end=request.period_end,
    )
    return {
        "success": True,
        "data": [s.model_dump(mode="json") for s in statuses],
        "summary": {
            status.value: sum(1 for s in statuses if s.status == status)
            for status in ComputeStatus
        },
    }


@router.post("/backfill")
def backfill(
    request: BackfillRequest,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Compute the most recent completed periods of one entity, oldest first."""
    statuses = service.backfill(
        request.entity_id,
        request.granularity,
        request.periods,
        force=request.force,
    )
    return {"success": True, "data": [s.model_dump(mode="json") for s in statuses]}


@router.get("/{entity_id}")
def list_snapshots(
    entity_id: str,
    granularity: Granularity = Granularity.WEEK,
    limit: int = Query(default=12, ge=1, le=520),
    start: Optional[date] = None,
    end: Optional[date] = None,
    repository: HistoryRepository = Depends(get_repository),
):
    """Snapshot history of one entity, newest first."""
    snapshots = repository.read_snapshots(
        entity_id, granularity, limit=limit, start=start, end=end
    )
    return {
        "success": True,
        "data": [s.model_dump(mode="json") for s in snapshots],
        "count": len(snapshots),
    }


@router.get("/{entity_id}/{period_end}")
def get_snapshot(
    entity_id: str,
    period_end: date,
    granularity: Granularity = Granularity.WEEK,
    repository: HistoryRepository = Depends(get_repository),
):
    """One snapshot by key."""
    snapshot = repository.read_snapshot(entity_id, period_end, granularity)
    if snapshot is None:
        raise HTTPException(
            status_code=404,
            detail=f"No {granularity.value} snapshot for {entity_id} ending {period_end.isoformat()}",
        )
    return {"success": True, "data": snapshot.model_dump(mode="json")}
