"""
Raw metric input models.

A RawMetricSet is the only shape the engine accepts from a metric source.
It is validated once at the boundary so nothing downstream has to branch on
ad hoc payload shapes.
"""

import math
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import Granularity, MetricId


def _require_finite(value: Optional[float], name: str) -> Optional[float]:
    if value is not None and not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    return value


class ItemMetrics(BaseModel):
    """
    Per-item (product) figures for one period, used for tier classification.

    Attributes:
        item_id: Product identifier in the source system
        revenue: Net revenue for the period
        units_sold: Units sold in the period
        margin_percent: Gross margin percent, None when cost is unknown
        stock_units: Units on hand at period end
        stock_age_days: Days the current stock has been held; derived from
            stock coverage when the source cannot supply it
    """

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1, description="Product identifier")
    revenue: float = Field(default=0.0, description="Net revenue for the period")
    units_sold: float = Field(default=0.0, ge=0, description="Units sold")
    margin_percent: Optional[float] = Field(default=None, description="Gross margin percent")
    stock_units: float = Field(default=0.0, ge=0, description="Units on hand")
    stock_age_days: Optional[float] = Field(
        default=None, ge=0, description="Days the stock has been held"
    )

    @field_validator("revenue", "units_sold", "margin_percent", "stock_units", "stock_age_days")
    @classmethod
    def validate_finite(cls, v, info):
        """Reject NaN and infinities."""
        return _require_finite(v, info.field_name)


class RawMetricSet(BaseModel):
    """
    Aggregated raw metrics for one entity and one period.

    Immutable once produced. Unknown metric names are rejected; a metric that
    the source could not compute is present with value None or omitted.

    Example:
        >>> RawMetricSet(
        ...     entity_id="store-1",
        ...     period_start=date(2026, 10, 5),
        ...     period_end=date(2026, 10, 11),
        ...     granularity=Granularity.WEEK,
        ...     metrics={"order_count": 42, "revenue": 5120.0},
        ... )
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(min_length=1, description="Entity (store) identifier")
    period_start: date = Field(description="First day of the period")
    period_end: date = Field(description="Last day of the period (inclusive)")
    granularity: Granularity = Field(description="Period unit")
    metrics: dict[MetricId, Optional[float]] = Field(
        default_factory=dict, description="Metric id -> value (None when unavailable)"
    )
    items: list[ItemMetrics] = Field(
        default_factory=list, description="Per-item figures for tier classification"
    )

    @field_validator("entity_id")
    @classmethod
    def validate_entity_id(cls, v: str) -> str:
        """Ensure entity id is not blank."""
        if not v.strip():
            raise ValueError("entity_id must not be blank")
        return v.strip()

    @field_validator("metrics")
    @classmethod
    def validate_metric_values(cls, v: dict) -> dict:
        """Reject NaN and infinities at the boundary."""
        for metric_id, value in v.items():
            _require_finite(value, getattr(metric_id, "value", str(metric_id)))
        return v

    @model_validator(mode="after")
    def validate_period(self) -> "RawMetricSet":
        """Ensure the period is not inverted."""
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self

    def get(self, metric_id: str) -> Optional[float]:
        """Return a metric value by id, None when absent."""
        try:
            key = MetricId(metric_id)
        except ValueError:
            return None
        value = self.metrics.get(key)
        return float(value) if value is not None else None

    def as_plain_dict(self) -> dict[str, Optional[float]]:
        """Metrics keyed by plain strings, for persistence."""
        return {
            m.value: (float(v) if v is not None else None)
            for m, v in sorted(self.metrics.items(), key=lambda kv: kv[0].value)
        }


class HistoryPoint(BaseModel):
    """One past observation of a metric or index."""

    model_config = ConfigDict(frozen=True)

    period_end: date
    value: Optional[float] = None
    eligible: bool = True


class HistoryWindow(BaseModel):
    """
    Ordered (oldest -> newest) past observations of one metric or index.

    Used only as normalization input and baseline lookup; never mutated.
    """

    model_config = ConfigDict(frozen=True)

    metric_id: str
    points: tuple[HistoryPoint, ...] = ()

    def values(self, eligible_only: bool = False) -> list[float]:
        """Non-null values in window order."""
        return [
            p.value
            for p in self.points
            if p.value is not None and (p.eligible or not eligible_only)
        ]

    def with_eligibility(self, eligible_periods: set[date]) -> "HistoryWindow":
        """Copy of the window with eligibility taken from a set of period ends."""
        return HistoryWindow(
            metric_id=self.metric_id,
            points=tuple(
                HistoryPoint(
                    period_end=p.period_end,
                    value=p.value,
                    eligible=p.period_end in eligible_periods,
                )
                for p in self.points
            ),
        )

    def __len__(self) -> int:
        return len(self.points)
