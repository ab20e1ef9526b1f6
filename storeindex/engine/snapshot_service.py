"""
Snapshot Service: Per-Entity Pipeline and Batch Fan-Out.

Runs the engine for one entity and period, strictly in order:

    MetricSource -> Normalizer -> CompositeBuilder -> DeltaCalculator
    -> ItemScorer/TierClassifier -> AlertEvaluator -> SnapshotWriter

Batch runs fan entities out across a thread pool. Each entity reads only its
own history and writes only its own snapshot row, and a failing entity is
reported in its status without stopping the others.

Version: snapshot_service_v1
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime
from typing import Optional

import structlog

from storeindex.errors import IndexEngineError
from storeindex.models.engine_config import IndexEngineConfig, LevelThresholds
from storeindex.models.enums import ComputeStatus, Granularity, IndexLevel
from storeindex.models.metrics import HistoryWindow, RawMetricSet
from storeindex.models.snapshots import EntityComputeStatus, IndexSnapshot
from storeindex.sources.base import MetricSource
from storeindex.storage.base import HistoryRepository
from storeindex.utils.logging import compute_context

from .alert_evaluator import AlertEvaluator
from .composite_builder import CompositeBuilder
from .delta_calculator import DeltaCalculator
from .normalizer import Normalizer
from .periods import period_days, period_label, previous_period, recent_periods
from .snapshot_writer import SnapshotWriter
from .tier_classifier import ItemScorer

logger = structlog.get_logger()


def index_level(value: Optional[int], levels: LevelThresholds) -> IndexLevel:
    """Interpretation band of an overall index value."""
    if value is None:
        return IndexLevel.INSUFFICIENT_DATA
    if value >= levels.excellent:
        return IndexLevel.EXCELLENT
    if value >= levels.good:
        return IndexLevel.GOOD
    if value >= levels.fair:
        return IndexLevel.FAIR
    if value >= levels.poor:
        return IndexLevel.POOR
    return IndexLevel.CRITICAL


class SnapshotService:
    """
    Computes, persists and batches index snapshots.

    Attributes:
        config: Engine configuration shared by every component
        repository: Snapshot history
        source: Raw metric source
        max_workers: Thread pool size for batch runs

    Example:
        >>> service = SnapshotService(config, repository, source)
        >>> snapshot = service.compute_snapshot(
        ...     "store-1", date(2026, 10, 5), date(2026, 10, 11), Granularity.WEEK
        ... )
        >>> snapshot.index_tree.value
        56
    """

    def __init__(
        self,
        config: IndexEngineConfig,
        repository: HistoryRepository,
        source: MetricSource,
        max_workers: int = 4,
    ):
        self.config = config
        self.repository = repository
        self.source = source
        self.max_workers = max_workers
        self.logger = structlog.get_logger()

        self.normalizer = Normalizer(config)
        self.builder = CompositeBuilder(config)
        self.delta_calculator = DeltaCalculator(config, repository)
        self.item_scorer = ItemScorer(config)
        self.alert_evaluator = AlertEvaluator(config)
        self.writer = SnapshotWriter(repository)

    # =========================================================================
    # Single entity
    # =========================================================================

    def compute_snapshot(
        self,
        entity_id: str,
        period_start: date,
        period_end: date,
        granularity: Granularity,
        force: bool = False,
    ) -> IndexSnapshot:
        """
        Compute and persist the snapshot of one entity and period.

        Without ``force`` an existing snapshot for the key is returned as is
        (``saved=False``) and nothing is recomputed.

        Args:
            entity_id: Entity identifier
            period_start: First day of the period
            period_end: Last day of the period
            granularity: Period unit
            force: Recompute and replace an existing snapshot

        Returns:
            The snapshot, with ``saved`` telling whether it was written

        Raises:
            UpstreamFetchError: If the metric source cannot supply the period
            ValueError: If period_end is before period_start
        """
        if period_end < period_start:
            raise ValueError("period_end must not be before period_start")

        with compute_context(
            entity_id, period_end, granularity.value, self.config.config_version
        ):
            return self._compute_and_write(
                entity_id, period_start, period_end, granularity, force
            )

    def _compute_and_write(
        self,
        entity_id: str,
        period_start: date,
        period_end: date,
        granularity: Granularity,
        force: bool,
    ) -> IndexSnapshot:
        if not force:
            existing = self.repository.read_snapshot(entity_id, period_end, granularity)
            if existing is not None:
                self.logger.info(
                    "snapshot_skipped",
                    entity_id=entity_id,
                    period_end=period_end.isoformat(),
                    granularity=granularity.value,
                )
                return existing.model_copy(update={"saved": False, "already_stored": True})

        raw = self.source.fetch(entity_id, period_start, period_end, granularity)
        snapshot = self.build_snapshot(raw)
        saved = self.writer.write(snapshot, force=force)

        self.logger.info(
            "snapshot_computed",
            entity_id=entity_id,
            period_label=snapshot.period_label,
            overall=snapshot.overall_value,
            level=snapshot.level.value,
            alerts=len(snapshot.alerts),
            saved=saved.saved,
        )
        return saved

    def build_snapshot(self, raw: RawMetricSet) -> IndexSnapshot:
        """Run the pure pipeline for one raw metric set without writing."""
        windows = self._history_windows(raw)
        sub_scores = self.normalizer.score_metrics(raw, windows)
        tree = self.builder.build(None, sub_scores)

        previous, yoy = self.delta_calculator.find_baselines(
            raw.entity_id, raw.granularity, raw.period_start, raw.period_end
        )
        raw_inputs = raw.as_plain_dict()
        deltas = self.delta_calculator.compute_deltas(tree, raw_inputs, previous, yoy)

        tiers, _ = self.item_scorer.classify_items(
            raw.items, period_days(raw.period_start, raw.period_end)
        )

        computed_at = datetime.utcnow()
        alerts = self.alert_evaluator.evaluate(
            tree, deltas, raw_inputs, triggered_at=computed_at
        )

        return IndexSnapshot(
            entity_id=raw.entity_id,
            period_start=raw.period_start,
            period_end=raw.period_end,
            granularity=raw.granularity,
            period_label=period_label(raw.granularity, raw.period_start, raw.period_end),
            index_tree=tree,
            deltas=deltas,
            alerts=alerts,
            tiers=tiers,
            raw_inputs=raw_inputs,
            level=index_level(tree.value, self.config.levels),
            config_version=self.config.config_version,
            computed_at=computed_at,
        )

    def _history_windows(self, raw: RawMetricSet) -> dict[str, HistoryWindow]:
        """
        History windows for every metric whose strategy reads history.

        Periods before the current one only, so recomputing a stored period
        sees the same history as the first computation did.
        """
        history_params = [m for m in self.config.metrics if Normalizer.needs_history(m)]
        if not history_params:
            return {}

        ids = {m.metric_id.value for m in history_params}
        activity_ids = {
            activity.value
            for activity in (Normalizer.activity_metric_of(m) for m in history_params)
            if activity is not None
        }
        policy = self.config.history
        windows = self.repository.histories(
            raw.entity_id,
            sorted(ids | activity_ids),
            raw.granularity,
            policy.lookback,
            before=raw.period_start,
            max_age_days=policy.max_age_days,
        )

        result = {}
        for params in history_params:
            metric_id = params.metric_id.value
            window = windows[metric_id]
            activity = Normalizer.activity_metric_of(params)
            if activity is not None:
                # Past periods with unknown activity never bound the range
                eligible = {
                    p.period_end
                    for p in windows[activity.value].points
                    if p.value is not None and p.value >= params.activity_min
                }
                window = window.with_eligibility(eligible)
            result[metric_id] = window
        return result

    # =========================================================================
    # Batch
    # =========================================================================

    def compute_all(
        self,
        granularity: Granularity,
        force: bool = False,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        today: Optional[date] = None,
    ) -> list[EntityComputeStatus]:
        """
        Compute one period for every entity the source knows.

        Args:
            granularity: Period unit
            force: Recompute existing snapshots
            period_start: First day (previous completed period when omitted)
            period_end: Last day (previous completed period when omitted)
            today: Reference date for the previous completed period

        Returns:
            One status per entity, sorted by entity id
        """
        if period_start is None or period_end is None:
            period_start, period_end = previous_period(granularity, today)

        entities = self.source.list_entities()
        self.logger.info(
            "batch_started",
            granularity=granularity.value,
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
            entities=len(entities),
            force=force,
        )

        statuses: list[EntityComputeStatus] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(
                    self._compute_entity, entity_id, period_start, period_end, granularity, force
                ): entity_id
                for entity_id in entities
            }
            for future in as_completed(futures):
                statuses.append(future.result())

        statuses.sort(key=lambda s: s.entity_id)
        self.logger.info(
            "batch_complete",
            granularity=granularity.value,
            period_end=period_end.isoformat(),
            success=sum(1 for s in statuses if s.status == ComputeStatus.SUCCESS),
            skipped=sum(1 for s in statuses if s.status == ComputeStatus.SKIPPED),
            errors=sum(1 for s in statuses if s.status == ComputeStatus.ERROR),
        )
        return statuses

    def backfill(
        self,
        entity_id: str,
        granularity: Granularity,
        periods: int,
        force: bool = False,
        today: Optional[date] = None,
    ) -> list[EntityComputeStatus]:
        """
        Compute the ``periods`` most recent completed periods, oldest first.

        Runs sequentially so each period sees the previous one as history.
        """
        statuses = []
        for start, end in recent_periods(granularity, periods, today):
            statuses.append(self._compute_entity(entity_id, start, end, granularity, force))

        self.logger.info(
            "backfill_complete",
            entity_id=entity_id,
            granularity=granularity.value,
            periods=len(statuses),
            errors=sum(1 for s in statuses if s.status == ComputeStatus.ERROR),
        )
        return statuses

    def _compute_entity(
        self,
        entity_id: str,
        period_start: date,
        period_end: date,
        granularity: Granularity,
        force: bool,
    ) -> EntityComputeStatus:
        """Compute one entity/period and fold every failure into a status."""
        try:
            snapshot = self.compute_snapshot(
                entity_id, period_start, period_end, granularity, force=force
            )
        except IndexEngineError as e:
            self.logger.warning(
                "batch_entity_failed",
                entity_id=entity_id,
                period_end=period_end.isoformat(),
                error_type=type(e).__name__,
                error=str(e),
            )
            return EntityComputeStatus(
                entity_id=entity_id,
                status=ComputeStatus.ERROR,
                period_end=period_end,
                message=str(e),
            )
        except Exception as e:
            self.logger.exception(
                "batch_entity_crashed",
                entity_id=entity_id,
                period_end=period_end.isoformat(),
                error=str(e),
            )
            return EntityComputeStatus(
                entity_id=entity_id,
                status=ComputeStatus.ERROR,
                period_end=period_end,
                message=f"{type(e).__name__}: {e}",
            )

        # Stored before this run, or by a concurrent run between check and write
        if snapshot.already_stored:
            return EntityComputeStatus(
                entity_id=entity_id,
                status=ComputeStatus.SKIPPED,
                period_end=period_end,
                overall_index=snapshot.overall_value,
                message="snapshot exists",
            )
        if not snapshot.saved:
            return EntityComputeStatus(
                entity_id=entity_id,
                status=ComputeStatus.ERROR,
                period_end=period_end,
                overall_index=snapshot.overall_value,
                message="snapshot computed but not saved",
            )
        return EntityComputeStatus(
            entity_id=entity_id,
            status=ComputeStatus.SUCCESS,
            period_end=period_end,
            overall_index=snapshot.overall_value,
            saved=True,
        )
