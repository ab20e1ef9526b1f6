"""
Normalizer: Raw Metric to 0-100 Sub-Score.

Maps each raw metric onto the index scale with one of five strategies:

- relative_min_max: position of the value inside the entity's own recent
  range, gated on a minimum-activity metric
- breakpoint: step table of (lower_bound, score) pairs for YoY-style changes
- linear_range: fixed low/high anchors (low > high for lower-is-better)
- z_score: distance from the historical median in population stddevs
- optimal_band: full score inside a target band, linear below, decaying above

All rounding is half-up so 0.5 always rounds away from the lower score.

Version: normalizer_v1
"""

import math
from typing import Iterable, Optional

import numpy as np
import structlog

from storeindex.models.engine_config import IndexEngineConfig, MetricNormalization
from storeindex.models.enums import MetricId, NormalizationStrategy
from storeindex.models.metrics import HistoryWindow, RawMetricSet
from storeindex.models.snapshots import SubScore

logger = structlog.get_logger()

NEUTRAL_SCORE = 50


def round_half_up(x: float) -> int:
    """Round to the nearest int, halves upward (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(x + 0.5))


def clamp_score(x: float) -> int:
    """Round half-up and clamp into [0, 100]."""
    if math.isinf(x):
        return 100 if x > 0 else 0
    return max(0, min(100, round_half_up(x)))


def _is_missing(value: Optional[float]) -> bool:
    return value is None or not math.isfinite(value)


# ============================================================================
# Strategies
# ============================================================================


def min_max_score(
    value: float,
    history: Iterable[float],
    eligible: bool = True,
) -> int:
    """
    Score a value inside the range of eligible history plus itself.

    Args:
        value: Current raw value
        history: Eligible historical values
        eligible: Whether the current period passes the activity gate

    Returns:
        0 for an ineligible period, 50 for a degenerate range, else 0-100
    """
    if not eligible:
        return 0
    bounded = [*history, value]
    low = min(bounded)
    high = max(bounded)
    if high == low:
        return NEUTRAL_SCORE
    return clamp_score((value - low) / (high - low) * 100)


def breakpoint_score(
    value: Optional[float],
    breakpoints: list[tuple[float, int]],
    default_score: int = 10,
    missing_score: int = NEUTRAL_SCORE,
) -> int:
    """First breakpoint whose lower bound the value reaches wins."""
    if _is_missing(value):
        return missing_score
    for lower_bound, score in breakpoints:
        if value >= lower_bound:
            return score
    return default_score


def linear_score(value: float, low: float, high: float) -> int:
    """Linear map of [low, high] onto [0, 100], clamped."""
    return clamp_score((value - low) / (high - low) * 100)


def z_score(value: float, history: list[float], invert: bool = False) -> int:
    """
    Score against the historical median in population standard deviations.

    Fewer than two history values or zero spread give the neutral score.
    """
    if len(history) < 2:
        return NEUTRAL_SCORE
    values = np.asarray(history, dtype=float)
    stddev = float(np.std(values))
    if stddev == 0:
        return NEUTRAL_SCORE
    z = (value - float(np.median(values))) / stddev
    if invert:
        z = -z
    return clamp_score(NEUTRAL_SCORE + 25 * z)


def optimal_band_score(
    value: float,
    optimal_min: float,
    optimal_max: float,
    floor_score: int = NEUTRAL_SCORE,
    decay: float = 1.5,
) -> int:
    """100 inside the band, linear from zero below it, decaying to a floor above it."""
    if optimal_min <= value <= optimal_max:
        return 100
    if value < optimal_min:
        if optimal_min <= 0:
            return 0
        return clamp_score(value / optimal_min * 100)
    return max(floor_score, clamp_score(100 - (value - optimal_max) * decay))


# ============================================================================
# Normalizer
# ============================================================================


class Normalizer:
    """
    Applies the configured strategy to each raw metric.

    Attributes:
        config: Engine configuration
        logger: Structured logger

    Example:
        >>> normalizer = Normalizer(config)
        >>> normalizer.normalize("revenue", 300.0, window, NormalizationStrategy.RELATIVE_MIN_MAX, params)
        100
    """

    def __init__(self, config: IndexEngineConfig):
        self.config = config
        self.logger = structlog.get_logger()
        self._leaf_weights = {
            node.metric_id.value: node.weight
            for node in config.index_tree.iter_nodes()
            if node.is_leaf
        }

    def normalize(
        self,
        metric_id: str,
        raw_value: Optional[float],
        history_window: HistoryWindow,
        strategy: NormalizationStrategy,
        params: MetricNormalization,
        activity_value: Optional[float] = None,
    ) -> Optional[int]:
        """
        Normalize one raw metric.

        Args:
            metric_id: Metric being scored
            raw_value: Current raw value (None when unavailable)
            history_window: Past values, oldest first, with eligibility flags
            strategy: Strategy to apply
            params: Strategy parameters
            activity_value: Current value of the activity metric for the
                relative_min_max gate

        Returns:
            Int in [0, 100], or None when the value (or the activity value
            gating it) is missing and the strategy has no neutral fallback
        """
        if strategy == NormalizationStrategy.BREAKPOINT:
            return breakpoint_score(
                raw_value,
                params.breakpoints,
                default_score=params.default_score,
                missing_score=params.missing_score,
            )

        if _is_missing(raw_value):
            return None

        if strategy == NormalizationStrategy.RELATIVE_MIN_MAX:
            eligible = True
            if params.activity_metric is not None:
                # Unknown activity is insufficient data, not an incomplete period
                if _is_missing(activity_value):
                    return None
                eligible = activity_value >= params.activity_min
            return min_max_score(
                raw_value,
                history_window.values(eligible_only=True),
                eligible=eligible,
            )

        if strategy == NormalizationStrategy.LINEAR_RANGE:
            return linear_score(raw_value, params.low, params.high)

        if strategy == NormalizationStrategy.Z_SCORE:
            return z_score(raw_value, history_window.values(), invert=params.invert)

        if strategy == NormalizationStrategy.OPTIMAL_BAND:
            return optimal_band_score(
                raw_value,
                params.optimal_min,
                params.optimal_max,
                floor_score=params.floor_score,
                decay=params.decay,
            )

        raise ValueError(f"Unknown normalization strategy for {metric_id}: {strategy}")

    def score_metrics(
        self,
        raw: RawMetricSet,
        windows: dict[str, HistoryWindow],
    ) -> dict[str, SubScore]:
        """
        Score every configured metric of a raw metric set.

        Args:
            raw: Current raw metrics
            windows: History window per metric id (missing means empty)

        Returns:
            SubScore per metric id
        """
        sub_scores: dict[str, SubScore] = {}
        for params in self.config.metrics:
            metric_id = params.metric_id.value
            raw_value = raw.get(metric_id)
            activity_value = (
                raw.get(params.activity_metric.value)
                if params.activity_metric is not None
                else None
            )
            window = windows.get(metric_id) or HistoryWindow(metric_id=metric_id)
            index = self.normalize(
                metric_id,
                raw_value,
                window,
                params.strategy,
                params,
                activity_value=activity_value,
            )
            sub_scores[metric_id] = SubScore(
                metric_id=metric_id,
                raw_value=raw_value,
                index=index,
                weight=self._leaf_weights.get(metric_id, 0.0),
                strategy_used=params.strategy,
            )

        self.logger.debug(
            "metrics_normalized",
            entity_id=raw.entity_id,
            period_end=raw.period_end.isoformat(),
            scored=sum(1 for s in sub_scores.values() if s.index is not None),
            missing=sum(1 for s in sub_scores.values() if s.index is None),
        )
        return sub_scores

    @staticmethod
    def needs_history(params: MetricNormalization) -> bool:
        return params.strategy in (
            NormalizationStrategy.RELATIVE_MIN_MAX,
            NormalizationStrategy.Z_SCORE,
        )

    @staticmethod
    def activity_metric_of(params: MetricNormalization) -> Optional[MetricId]:
        if params.strategy != NormalizationStrategy.RELATIVE_MIN_MAX:
            return None
        return params.activity_metric
