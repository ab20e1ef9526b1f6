"""
Index tree, delta, alert and snapshot models.

An IndexSnapshot is the persisted result of one computation for one
entity/period. It is uniquely identified by (entity_id, period_end,
granularity) and is only ever replaced as a whole.
"""

from datetime import date, datetime
from typing import Iterator, Optional

from pydantic import BaseModel, Field, field_validator

from .enums import (
    BaselineType,
    ComputeStatus,
    DeltaUnit,
    Granularity,
    IndexLevel,
    NormalizationStrategy,
    Severity,
    Tier,
)


def _check_index_range(v: Optional[int]) -> Optional[int]:
    if v is not None and not 0 <= v <= 100:
        raise ValueError(f"index value must be within [0, 100], got {v}")
    return v


class SubScore(BaseModel):
    """
    Normalized score of one raw metric.

    Attributes:
        metric_id: Raw metric the score was computed from
        raw_value: Raw input value (None when missing)
        index: 0-100 score, None when the metric could not be scored
        weight: Configured weight within the sibling group
        strategy_used: Normalization strategy applied
    """

    metric_id: str
    raw_value: Optional[float] = None
    index: Optional[int] = None
    weight: float = Field(ge=0)
    strategy_used: NormalizationStrategy

    @field_validator("index")
    @classmethod
    def validate_index(cls, v: Optional[int]) -> Optional[int]:
        """Ensure index is within bounds."""
        return _check_index_range(v)


class IndexNode(BaseModel):
    """
    Node of the recursive index tree.

    A leaf carries the SubScore it was built from and no children; a
    composite carries children and no sub_score. ``value`` is None when no
    descendant had data.
    """

    id: str
    value: Optional[int] = None
    weight: float = Field(default=1.0, ge=0)
    children: list["IndexNode"] = Field(default_factory=list)
    sub_score: Optional[SubScore] = None

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: Optional[int]) -> Optional[int]:
        """Ensure value is within bounds."""
        return _check_index_range(v)

    @property
    def is_leaf(self) -> bool:
        return self.sub_score is not None

    def walk(self) -> Iterator["IndexNode"]:
        """Depth-first, parent before children."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, node_id: str) -> Optional["IndexNode"]:
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def values_by_id(self) -> dict[str, Optional[int]]:
        return {node.id: node.value for node in self.walk()}


IndexNode.model_rebuild()


class Delta(BaseModel):
    """
    Change of one index or raw metric against a baseline snapshot.

    ``absolute_change`` is None when no valid baseline exists (no snapshot in
    range, null values, or a zero denominator for percent deltas).
    """

    index_id: str
    absolute_change: Optional[float] = None
    baseline_period_end: Optional[date] = None
    baseline_type: BaselineType
    current_value: Optional[float] = None
    baseline_value: Optional[float] = None
    unit: DeltaUnit = DeltaUnit.POINTS


class AlertRecord(BaseModel):
    """
    Alert raised by a rule against the current snapshot.

    Alerts are a projection of one snapshot; they are regenerated on every
    computation and never deduplicated across runs.
    """

    rule_id: str
    severity: Severity
    target_id: str
    message: str
    triggered_at: datetime
    value: Optional[float] = None
    threshold: Optional[float] = None


class TierAssignment(BaseModel):
    """Tier assigned to one item for the snapshot period."""

    item_id: str
    tier: Tier
    composite_score: Optional[int] = None
    revenue: float = 0.0
    margin_percent: Optional[float] = None
    units_sold: float = 0.0
    stock_age_days: Optional[float] = None


class IndexSnapshot(BaseModel):
    """
    Persisted result of one computation run for one entity/period.

    Attributes:
        entity_id: Entity (store) identifier
        period_start: First day of the period
        period_end: Last day of the period
        granularity: Period unit
        period_label: Human label ("2026-W41", "2026-10")
        index_tree: Root of the computed index tree
        deltas: Previous-period and year-over-year deltas
        alerts: Alerts raised by the current rule table
        tiers: Tier per item
        raw_inputs: Raw metric values the tree was computed from
        level: Interpretation band of the overall index
        config_version: Version of the engine configuration used
        computed_at: When the computation ran
        saved: Whether the last write reached the datastore (not persisted)
        already_stored: The key was already stored, so nothing was written
            (not persisted)
    """

    entity_id: str
    period_start: date
    period_end: date
    granularity: Granularity
    period_label: str = ""
    index_tree: IndexNode
    deltas: list[Delta] = Field(default_factory=list)
    alerts: list[AlertRecord] = Field(default_factory=list)
    tiers: list[TierAssignment] = Field(default_factory=list)
    raw_inputs: dict[str, Optional[float]] = Field(default_factory=dict)
    level: IndexLevel = IndexLevel.INSUFFICIENT_DATA
    config_version: str = ""
    computed_at: datetime = Field(default_factory=datetime.utcnow)
    saved: bool = Field(default=False, exclude=True)
    already_stored: bool = Field(default=False, exclude=True)

    @property
    def key(self) -> tuple[str, date, str]:
        return (self.entity_id, self.period_end, self.granularity.value)

    @property
    def overall_value(self) -> Optional[int]:
        return self.index_tree.value

    def value_of(self, metric_or_index_id: str) -> Optional[float]:
        """
        Look up a raw input first, then an index node value.

        Returns:
            The value, or None when the id is unknown or null in this snapshot
        """
        if metric_or_index_id in self.raw_inputs:
            value = self.raw_inputs[metric_or_index_id]
            return float(value) if value is not None else None
        node = self.index_tree.find(metric_or_index_id)
        if node is not None and node.value is not None:
            return float(node.value)
        return None

    def tier_counts(self) -> dict[str, int]:
        counts = {tier.value: 0 for tier in Tier}
        for assignment in self.tiers:
            counts[assignment.tier.value] += 1
        return counts


class EntityComputeStatus(BaseModel):
    """Outcome of one entity in a batch run."""

    entity_id: str
    status: ComputeStatus
    period_end: Optional[date] = None
    overall_index: Optional[int] = None
    saved: bool = False
    message: Optional[str] = None
