"""
Metric source interface.

A MetricSource hands the engine one validated RawMetricSet per entity and
period. Fetching from order, analytics or search-console APIs happens
upstream of this interface.
"""

from abc import ABC, abstractmethod
from datetime import date

from storeindex.models.enums import Granularity
from storeindex.models.metrics import RawMetricSet


class MetricSource(ABC):
    """Supplies raw metrics for the engine."""

    @abstractmethod
    def fetch(
        self,
        entity_id: str,
        period_start: date,
        period_end: date,
        granularity: Granularity,
    ) -> RawMetricSet:
        """
        Raw metrics of one entity and period.

        Raises:
            UpstreamFetchError: If the metrics cannot be supplied
        """
        pass

    @abstractmethod
    def list_entities(self) -> list[str]:
        """Entities this source can supply, sorted."""
        pass
