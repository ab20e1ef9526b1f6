"""
Metric source backed by raw metric sets staged in the datastore.

Upstream collectors POST their aggregated numbers to /api/v1/metrics/raw;
this source reads them back at computation time.
"""

from datetime import date

import structlog

from storeindex.errors import PersistenceError, UpstreamFetchError
from storeindex.models.enums import Granularity
from storeindex.models.metrics import RawMetricSet
from storeindex.storage.base import HistoryRepository

from .base import MetricSource

logger = structlog.get_logger()


class StagedMetricSource(MetricSource):
    """
    Reads staged RawMetricSets from the repository.

    Attributes:
        storage: Repository holding the staged raw metric sets
    """

    def __init__(self, storage: HistoryRepository):
        self.storage = storage

    def fetch(
        self,
        entity_id: str,
        period_start: date,
        period_end: date,
        granularity: Granularity,
    ) -> RawMetricSet:
        try:
            raw = self.storage.read_raw_metrics(entity_id, period_end, granularity)
        except PersistenceError as e:
            logger.error(
                "raw_metrics_read_failed",
                entity_id=entity_id,
                period_end=period_end.isoformat(),
                error=str(e),
            )
            raise UpstreamFetchError(f"Failed to read raw metrics for {entity_id}: {e}") from e

        if raw is None:
            raise UpstreamFetchError(
                f"No raw metrics staged for {entity_id} "
                f"({granularity.value} ending {period_end.isoformat()})"
            )
        if raw.period_start != period_start:
            raise UpstreamFetchError(
                f"Staged metrics for {entity_id} start {raw.period_start.isoformat()}, "
                f"expected {period_start.isoformat()}"
            )
        return raw

    def list_entities(self) -> list[str]:
        return self.storage.list_entities()
