"""
Raw metric staging router.

Upstream collectors push aggregated RawMetricSets here; the staged metric
source reads them back when a snapshot is computed.
"""

from fastapi import APIRouter, Depends

from storeindex.dependencies import get_repository
from storeindex.models.metrics import RawMetricSet
from storeindex.storage.base import HistoryRepository
from storeindex.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.post("/raw")
def stage_raw_metrics(
    raw: RawMetricSet,
    repository: HistoryRepository = Depends(get_repository),
):
    """Stage (insert or replace) one raw metric set."""
    repository.write_raw_metrics(raw)
    return {
        "success": True,
        "data": {
            "entity_id": raw.entity_id,
            "period_start": raw.period_start.isoformat(),
            "period_end": raw.period_end.isoformat(),
            "granularity": raw.granularity.value,
            "metrics": len(raw.metrics),
            "items": len(raw.items),
        },
    }


@router.get("/entities")
def list_entities(repository: HistoryRepository = Depends(get_repository)):
    """Entities with staged metrics or stored snapshots."""
    entities = repository.list_entities()
    return {"success": True, "data": entities, "count": len(entities)}
