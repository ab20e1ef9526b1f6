"""
Delta Calculator: Period-over-Period and Year-over-Year Change.

Index deltas are point differences on the 0-100 scale. Raw metric deltas are
percent changes against the baseline's absolute value. A delta without a
usable baseline keeps ``absolute_change`` as None instead of reporting 0.

Baselines:
- previous: latest snapshot of the same entity and granularity whose
  period_end falls before the current period_start
- yoy: snapshot whose period_end is nearest to one year before the current
  period_end, searched within a bounded day window

Version: delta_v1
"""

from datetime import date, timedelta
from typing import Callable, Optional

import structlog

from storeindex.models.engine_config import HistoryPolicy, IndexEngineConfig
from storeindex.models.enums import BaselineType, DeltaUnit, Granularity
from storeindex.models.snapshots import Delta, IndexNode, IndexSnapshot
from storeindex.storage.base import HistoryRepository

logger = structlog.get_logger()

# index_id -> (baseline period_end, baseline value)
BaselineLookup = Callable[[str], tuple[Optional[date], Optional[float]]]


def _no_baseline(index_id: str) -> tuple[Optional[date], Optional[float]]:
    return None, None


def index_lookup(snapshot: Optional[IndexSnapshot]) -> BaselineLookup:
    """Baseline lookup reading index node values of a snapshot."""
    if snapshot is None:
        return _no_baseline

    values = snapshot.index_tree.values_by_id()

    def lookup(index_id: str) -> tuple[Optional[date], Optional[float]]:
        value = values.get(index_id)
        return snapshot.period_end, (float(value) if value is not None else None)

    return lookup


def raw_lookup(snapshot: Optional[IndexSnapshot]) -> BaselineLookup:
    """Baseline lookup reading raw inputs of a snapshot."""
    if snapshot is None:
        return _no_baseline

    def lookup(metric_id: str) -> tuple[Optional[date], Optional[float]]:
        return snapshot.period_end, snapshot.raw_inputs.get(metric_id)

    return lookup


def change(
    current_value: Optional[float],
    baseline_value: Optional[float],
    unit: DeltaUnit,
) -> Optional[float]:
    """
    Change from baseline to current.

    Returns:
        Point difference or percent change; None when either side is None
        or a percent baseline is zero
    """
    if current_value is None or baseline_value is None:
        return None
    if unit == DeltaUnit.POINTS:
        return float(current_value - baseline_value)
    if baseline_value == 0:
        return None
    return round((current_value - baseline_value) / abs(baseline_value) * 100, 2)


class DeltaCalculator:
    """
    Finds baselines and computes deltas for one snapshot.

    Attributes:
        config: Engine configuration
        repository: Snapshot history
        logger: Structured logger

    Example:
        >>> calc = DeltaCalculator(config, repository)
        >>> previous, yoy = calc.find_baselines("store-1", Granularity.WEEK, start, end)
        >>> deltas = calc.compute_deltas(tree, raw_inputs, previous, yoy)
    """

    def __init__(self, config: IndexEngineConfig, repository: HistoryRepository):
        self.config = config
        self.repository = repository
        self.logger = structlog.get_logger()

    # =========================================================================
    # Baselines
    # =========================================================================

    def find_previous(
        self,
        entity_id: str,
        granularity: Granularity,
        period_start: date,
    ) -> Optional[IndexSnapshot]:
        return self.repository.latest_before(entity_id, granularity, before=period_start)

    def find_yoy(
        self,
        entity_id: str,
        granularity: Granularity,
        period_end: date,
    ) -> Optional[IndexSnapshot]:
        """
        Snapshot nearest to one year before ``period_end`` inside the yoy window.

        Ties between two equally distant snapshots go to the later one.
        """
        policy: HistoryPolicy = self.config.history
        candidates = self.repository.read_snapshots(
            entity_id,
            granularity,
            start=period_end - timedelta(days=policy.yoy_max_days),
            end=period_end - timedelta(days=policy.yoy_min_days),
        )
        if not candidates:
            return None

        target = period_end - timedelta(days=policy.yoy_target_days)
        return min(
            candidates,
            key=lambda s: (abs((s.period_end - target).days), -s.period_end.toordinal()),
        )

    def find_baselines(
        self,
        entity_id: str,
        granularity: Granularity,
        period_start: date,
        period_end: date,
    ) -> tuple[Optional[IndexSnapshot], Optional[IndexSnapshot]]:
        """Previous-period and year-over-year baseline snapshots."""
        previous = self.find_previous(entity_id, granularity, period_start)
        yoy = self.find_yoy(entity_id, granularity, period_end)
        self.logger.debug(
            "baselines_resolved",
            entity_id=entity_id,
            period_end=period_end.isoformat(),
            previous=previous.period_end.isoformat() if previous else None,
            yoy=yoy.period_end.isoformat() if yoy else None,
        )
        return previous, yoy

    # =========================================================================
    # Deltas
    # =========================================================================

    def delta(
        self,
        index_id: str,
        current_value: Optional[float],
        baseline_lookup_fn: BaselineLookup,
        baseline_type: BaselineType,
        unit: DeltaUnit = DeltaUnit.POINTS,
    ) -> Delta:
        """
        Delta of one index or raw metric against one baseline.

        Args:
            index_id: Index node id or raw metric id
            current_value: Current value
            baseline_lookup_fn: Returns (baseline period_end, baseline value)
            baseline_type: previous or yoy
            unit: points for indices, percent for raw metrics

        Returns:
            Delta with absolute_change None when no valid baseline exists
        """
        baseline_period_end, baseline_value = baseline_lookup_fn(index_id)
        return Delta(
            index_id=index_id,
            absolute_change=change(current_value, baseline_value, unit),
            baseline_period_end=baseline_period_end,
            baseline_type=baseline_type,
            current_value=current_value,
            baseline_value=baseline_value,
            unit=unit,
        )

    def compute_deltas(
        self,
        tree: IndexNode,
        raw_inputs: dict[str, Optional[float]],
        previous: Optional[IndexSnapshot],
        yoy: Optional[IndexSnapshot],
    ) -> list[Delta]:
        """
        Deltas for every index node and every configured raw metric.

        Order: index nodes depth-first (previous, then yoy per node), then raw
        metrics in configured order.
        """
        baselines = [
            (BaselineType.PREVIOUS, previous),
            (BaselineType.YOY, yoy),
        ]

        deltas: list[Delta] = []
        for node in tree.walk():
            current = float(node.value) if node.value is not None else None
            for baseline_type, snapshot in baselines:
                deltas.append(
                    self.delta(node.id, current, index_lookup(snapshot), baseline_type)
                )

        for metric_id in self.config.raw_delta_metrics:
            current = raw_inputs.get(metric_id.value)
            for baseline_type, snapshot in baselines:
                deltas.append(
                    self.delta(
                        metric_id.value,
                        current,
                        raw_lookup(snapshot),
                        baseline_type,
                        unit=DeltaUnit.PERCENT,
                    )
                )
        return deltas
