"""
Index engine configuration models.

One IndexEngineConfig is loaded at startup and passed to every component.
Validation errors here are configuration errors: nothing may be computed with
a config that fails these checks.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .enums import (
    AlertSource,
    BaselineType,
    DeltaUnit,
    MetricId,
    NormalizationStrategy,
    Severity,
)

AlertOperator = Literal["<", "<=", ">", ">="]


class MetricNormalization(BaseModel):
    """
    How one raw metric is mapped onto the 0-100 scale.

    Only the parameters of the chosen strategy are read; the others keep
    their defaults.
    """

    metric_id: MetricId
    strategy: NormalizationStrategy

    # relative_min_max
    activity_metric: Optional[MetricId] = Field(
        default=MetricId.ORDER_COUNT,
        description="Metric gating eligibility (None disables the gate)",
    )
    activity_min: float = Field(default=3, description="Minimum activity for eligibility")

    # breakpoint
    breakpoints: list[tuple[float, int]] = Field(
        default_factory=lambda: [
            (20, 100),
            (10, 80),
            (1, 60),
            (0, 50),
            (-9, 30),
        ],
        description="(lower_bound, score) pairs, highest bound first",
    )
    default_score: int = Field(default=10, ge=0, le=100)
    missing_score: int = Field(default=50, ge=0, le=100)

    # linear_range
    low: Optional[float] = Field(default=None, description="Raw value scoring 0")
    high: Optional[float] = Field(default=None, description="Raw value scoring 100")

    # z_score
    invert: bool = Field(default=False, description="Lower is better")

    # optimal_band
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None
    floor_score: int = Field(default=50, ge=0, le=100)
    decay: float = Field(default=1.5, ge=0, description="Points lost per unit above the band")

    @field_validator("breakpoints")
    @classmethod
    def validate_breakpoints(cls, v: list[tuple[float, int]]) -> list[tuple[float, int]]:
        """Bounds must be strictly descending and scores within [0, 100]."""
        for i, (bound, score) in enumerate(v):
            if not 0 <= score <= 100:
                raise ValueError(f"breakpoint score must be within [0, 100], got {score}")
            if i > 0 and bound >= v[i - 1][0]:
                raise ValueError("breakpoint bounds must be strictly descending")
        return v

    @model_validator(mode="after")
    def validate_strategy_params(self) -> "MetricNormalization":
        """Ensure the chosen strategy has the parameters it needs."""
        if self.strategy == NormalizationStrategy.LINEAR_RANGE:
            if self.low is None or self.high is None:
                raise ValueError(f"{self.metric_id.value}: linear_range requires low and high")
            if self.low == self.high:
                raise ValueError(f"{self.metric_id.value}: linear_range low must differ from high")
        if self.strategy == NormalizationStrategy.BREAKPOINT and not self.breakpoints:
            raise ValueError(f"{self.metric_id.value}: breakpoint requires at least one breakpoint")
        if self.strategy == NormalizationStrategy.OPTIMAL_BAND:
            if self.optimal_min is None or self.optimal_max is None:
                raise ValueError(
                    f"{self.metric_id.value}: optimal_band requires optimal_min and optimal_max"
                )
            if self.optimal_min > self.optimal_max:
                raise ValueError(f"{self.metric_id.value}: optimal_min exceeds optimal_max")
        return self


class NodeSpec(BaseModel):
    """
    Node of the configured index tree.

    A leaf names the metric it scores; a composite lists its children.
    """

    id: str = Field(min_length=1)
    weight: float = Field(default=1.0, ge=0, description="Weight within the sibling group")
    metric_id: Optional[MetricId] = None
    children: list["NodeSpec"] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_shape(self) -> "NodeSpec":
        """A node is either a leaf or a composite, never both or neither."""
        if self.metric_id is not None and self.children:
            raise ValueError(f"node {self.id!r} has both a metric and children")
        if self.metric_id is None and not self.children:
            raise ValueError(f"node {self.id!r} has neither a metric nor children")
        return self

    @property
    def is_leaf(self) -> bool:
        return self.metric_id is not None

    def iter_nodes(self):
        yield self
        for child in self.children:
            yield from child.iter_nodes()


NodeSpec.model_rebuild()


class TierThresholds(BaseModel):
    """Thresholds of the ordered tier decision list."""

    top_min_score: float = 60
    top_min_margin: float = 20
    top_min_revenue: float = 100
    healthy_min_score: float = 30
    near_zero_units: float = Field(default=0, ge=0)
    trapped_min_stock_age_days: float = Field(default=90, ge=0)
    trapped_min_stock_units: float = Field(default=0, ge=0)


class ItemScoringWeights(BaseModel):
    """Weights and constants of the per-item composite score."""

    margin_weight: float = Field(default=0.35, ge=0)
    sales_weight: float = Field(default=0.40, ge=0)
    stock_efficiency_weight: float = Field(default=0.25, ge=0)
    target_stock_days: float = Field(default=30, ge=0, description="Stock days scoring 100")
    stock_days_span: float = Field(
        default=150, gt=0, description="Days past target over which the score falls to 0"
    )
    no_sales_stock_days: float = Field(
        default=999, ge=0, description="Stock age assumed for stocked items without sales"
    )


class AlertRule(BaseModel):
    """
    One threshold rule of the alert table.

    Example:
        >>> AlertRule(
        ...     rule_id="overall_drop",
        ...     source=AlertSource.DELTA,
        ...     target_id="overall",
        ...     baseline_type=BaselineType.PREVIOUS,
        ...     operator="<",
        ...     threshold=-10,
        ...     severity=Severity.HIGH,
        ...     message_template="{target_id} fell {value} points",
        ... )
    """

    rule_id: str = Field(min_length=1)
    source: AlertSource
    target_id: str = Field(min_length=1)
    baseline_type: Optional[BaselineType] = None
    delta_unit: DeltaUnit = Field(
        default=DeltaUnit.POINTS,
        description="points targets an index delta, percent a raw metric delta",
    )
    operator: AlertOperator
    threshold: float
    severity: Severity
    message_template: str = Field(min_length=1)
    enabled: bool = True

    @model_validator(mode="after")
    def validate_baseline(self) -> "AlertRule":
        """Delta rules must name the baseline they compare against."""
        if self.source == AlertSource.DELTA and self.baseline_type is None:
            raise ValueError(f"rule {self.rule_id!r}: delta rules require baseline_type")
        return self


class HistoryPolicy(BaseModel):
    """History window and baseline lookup bounds."""

    lookback: int = Field(default=12, ge=1, description="Past periods in a window")
    max_age_days: Optional[int] = Field(
        default=None, ge=1, description="Ignore history older than this many days"
    )
    yoy_target_days: int = Field(default=365, ge=1)
    yoy_min_days: int = Field(default=330, ge=1)
    yoy_max_days: int = Field(default=400, ge=1)

    @model_validator(mode="after")
    def validate_yoy_window(self) -> "HistoryPolicy":
        if not self.yoy_min_days <= self.yoy_target_days <= self.yoy_max_days:
            raise ValueError("yoy window must satisfy min <= target <= max")
        return self


class LevelThresholds(BaseModel):
    """Lower bounds of the overall index interpretation bands."""

    excellent: int = Field(default=80, ge=0, le=100)
    good: int = Field(default=60, ge=0, le=100)
    fair: int = Field(default=40, ge=0, le=100)
    poor: int = Field(default=20, ge=0, le=100)

    @model_validator(mode="after")
    def validate_order(self) -> "LevelThresholds":
        if not self.excellent >= self.good >= self.fair >= self.poor:
            raise ValueError("level thresholds must be descending")
        return self


class IndexEngineConfig(BaseModel):
    """
    Complete configuration of the index engine.

    Attributes:
        config_version: Stamped on every snapshot computed with this config
        metrics: Normalization per raw metric
        index_tree: Root of the index tree
        tier_thresholds: Tier decision list thresholds
        item_scoring: Item composite score weights
        alert_rules: Alert rule table
        history: History window and baseline policy
        raw_delta_metrics: Raw metrics that get percent deltas
        levels: Overall index interpretation bands
    """

    config_version: str = Field(default="store_index_v1", min_length=1)
    metrics: list[MetricNormalization]
    index_tree: NodeSpec
    tier_thresholds: TierThresholds = Field(default_factory=TierThresholds)
    item_scoring: ItemScoringWeights = Field(default_factory=ItemScoringWeights)
    alert_rules: list[AlertRule] = Field(default_factory=list)
    history: HistoryPolicy = Field(default_factory=HistoryPolicy)
    raw_delta_metrics: list[MetricId] = Field(default_factory=list)
    levels: LevelThresholds = Field(default_factory=LevelThresholds)

    @model_validator(mode="after")
    def validate_references(self) -> "IndexEngineConfig":
        """Cross-check node ids, metric coverage and alert targets."""
        node_ids = [node.id for node in self.index_tree.iter_nodes()]
        duplicates = {n for n in node_ids if node_ids.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate index node ids: {sorted(duplicates)}")

        if self.index_tree.is_leaf:
            raise ValueError("index tree root must be a composite node")

        normalized = [m.metric_id for m in self.metrics]
        if len(set(normalized)) != len(normalized):
            raise ValueError("a metric may only be normalized once")

        for node in self.index_tree.iter_nodes():
            if node.is_leaf and node.metric_id not in normalized:
                raise ValueError(
                    f"leaf {node.id!r} uses metric {node.metric_id.value!r} with no normalization"
                )

        rule_ids = [r.rule_id for r in self.alert_rules]
        if len(set(rule_ids)) != len(rule_ids):
            raise ValueError("alert rule ids must be unique")

        metric_ids = {m.value for m in MetricId}
        raw_delta_ids = {m.value for m in self.raw_delta_metrics}
        for rule in self.alert_rules:
            if rule.source == AlertSource.INDEX and rule.target_id not in node_ids:
                raise ValueError(f"rule {rule.rule_id!r} targets unknown index {rule.target_id!r}")
            if rule.source == AlertSource.DELTA:
                targets = node_ids if rule.delta_unit == DeltaUnit.POINTS else raw_delta_ids
                if rule.target_id not in targets:
                    raise ValueError(
                        f"rule {rule.rule_id!r} targets unknown {rule.delta_unit.value} "
                        f"delta {rule.target_id!r}"
                    )
            if rule.source == AlertSource.METRIC and rule.target_id not in metric_ids:
                raise ValueError(f"rule {rule.rule_id!r} targets unknown metric {rule.target_id!r}")
        return self

    def normalization_for(self, metric_id: MetricId) -> MetricNormalization:
        for m in self.metrics:
            if m.metric_id == metric_id:
                return m
        raise KeyError(metric_id)

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.index_tree.iter_nodes()]
