"""
Tier Classifier: Product Tiering by Ordered Decision List.

Each item (product) gets a composite score from three sub-indices:

- margin index: margin relative to the best margin in the period
- sales index: revenue relative to the best seller in the period
- stock efficiency: 100 at the target stock coverage, falling to 0 over the
  configured span of extra days

The score and the raw figures then go through an ordered decision list where
the first matching rule wins:

1. top: strong score AND margin floor AND meaningful revenue
2. healthy: moderate score AND any revenue
3. underperformer: any revenue
4. trapped: (near) no sales AND old or idle stock
5. underperformer (fallback)

Version: tier_v1
"""

from typing import Any, Mapping, Optional

import structlog

from storeindex.models.engine_config import IndexEngineConfig, ItemScoringWeights, TierThresholds
from storeindex.models.enums import Tier
from storeindex.models.metrics import ItemMetrics
from storeindex.models.snapshots import TierAssignment

from .composite_builder import weighted_composite
from .normalizer import clamp_score

logger = structlog.get_logger()


def _num(metrics: Mapping[str, Any], key: str) -> Optional[float]:
    value = metrics.get(key)
    return float(value) if value is not None else None


class TierClassifier:
    """
    Pure tier decision list over one item's figures.

    Attributes:
        thresholds: Decision list thresholds
    """

    def __init__(self, thresholds: TierThresholds):
        self.thresholds = thresholds

    def classify(self, entity_metrics: Mapping[str, Any]) -> Tier:
        """
        Classify one item.

        Args:
            entity_metrics: composite_score, margin_percent, revenue,
                stock_age_days, units_sold, stock_units (missing keys read
                as None or 0)

        Returns:
            First matching Tier
        """
        t = self.thresholds
        score = _num(entity_metrics, "composite_score")
        margin = _num(entity_metrics, "margin_percent")
        revenue = _num(entity_metrics, "revenue") or 0.0
        stock_age = _num(entity_metrics, "stock_age_days")
        units_sold = _num(entity_metrics, "units_sold") or 0.0
        stock_units = _num(entity_metrics, "stock_units") or 0.0

        if (
            score is not None
            and margin is not None
            and score >= t.top_min_score
            and margin >= t.top_min_margin
            and revenue > t.top_min_revenue
        ):
            return Tier.TOP

        if score is not None and score >= t.healthy_min_score and revenue > 0:
            return Tier.HEALTHY

        if revenue > 0:
            return Tier.UNDERPERFORMER

        old_stock = stock_age is not None and stock_age > t.trapped_min_stock_age_days
        if units_sold <= t.near_zero_units and (
            old_stock or stock_units > t.trapped_min_stock_units
        ):
            return Tier.TRAPPED

        return Tier.UNDERPERFORMER


class ItemScorer:
    """
    Composite score and tier for every item of a period.

    Attributes:
        config: Engine configuration
        classifier: Tier decision list
        logger: Structured logger

    Example:
        >>> scorer = ItemScorer(config)
        >>> assignments, counts = scorer.classify_items(raw.items, period_days=7)
        >>> counts["trapped"]
        2
    """

    def __init__(self, config: IndexEngineConfig):
        self.config = config
        self.weights: ItemScoringWeights = config.item_scoring
        self.classifier = TierClassifier(config.tier_thresholds)
        self.logger = structlog.get_logger()

    def stock_age_days(self, item: ItemMetrics, period_days: int) -> float:
        """Supplied stock age, else stock coverage at the period's sales rate."""
        if item.stock_age_days is not None:
            return item.stock_age_days
        if item.stock_units <= 0:
            return 0.0
        if item.units_sold <= 0:
            return self.weights.no_sales_stock_days
        daily_units = item.units_sold / max(period_days, 1)
        return item.stock_units / daily_units

    def stock_efficiency(self, stock_age_days: float) -> int:
        w = self.weights
        return clamp_score(100 - (stock_age_days - w.target_stock_days) / w.stock_days_span * 100)

    def score_items(
        self,
        items: list[ItemMetrics],
        period_days: int = 30,
    ) -> list[dict[str, Any]]:
        """
        Score every item relative to the period's best margin and revenue.

        Returns:
            One dict per item with the classifier inputs and sub-indices
        """
        margins = [i.margin_percent for i in items if i.margin_percent is not None]
        max_margin = max(margins, default=0.0)
        max_revenue = max((i.revenue for i in items), default=0.0)

        scored = []
        for item in items:
            margin_index = None
            if item.margin_percent is not None:
                margin_index = (
                    clamp_score(item.margin_percent / max_margin * 100) if max_margin > 0 else 0
                )
            sales_index = clamp_score(item.revenue / max_revenue * 100) if max_revenue > 0 else 0
            stock_age = self.stock_age_days(item, period_days)
            stock_index = self.stock_efficiency(stock_age)

            composite = weighted_composite(
                [
                    (margin_index, self.weights.margin_weight),
                    (sales_index, self.weights.sales_weight),
                    (stock_index, self.weights.stock_efficiency_weight),
                ]
            )
            scored.append(
                {
                    "item_id": item.item_id,
                    "composite_score": composite,
                    "margin_index": margin_index,
                    "sales_index": sales_index,
                    "stock_efficiency": stock_index,
                    "margin_percent": item.margin_percent,
                    "revenue": item.revenue,
                    "units_sold": item.units_sold,
                    "stock_units": item.stock_units,
                    "stock_age_days": stock_age,
                }
            )
        return scored

    def classify_items(
        self,
        items: list[ItemMetrics],
        period_days: int = 30,
    ) -> tuple[list[TierAssignment], dict[str, int]]:
        """
        Tier every item.

        Args:
            items: Per-item figures of the period
            period_days: Length of the period, for stock coverage

        Returns:
            (assignments in input order, count per tier)
        """
        assignments = []
        counts = {tier.value: 0 for tier in Tier}
        for scored in self.score_items(items, period_days):
            tier = self.classifier.classify(scored)
            counts[tier.value] += 1
            assignments.append(
                TierAssignment(
                    item_id=scored["item_id"],
                    tier=tier,
                    composite_score=scored["composite_score"],
                    revenue=scored["revenue"],
                    margin_percent=scored["margin_percent"],
                    units_sold=scored["units_sold"],
                    stock_age_days=round(scored["stock_age_days"], 1),
                )
            )

        if items:
            self.logger.debug("items_classified", items=len(items), **counts)
        return assignments, counts
