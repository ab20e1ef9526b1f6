"""
Pydantic models for the index engine.

Raw inputs, engine configuration, and the persisted snapshot shapes.
"""

from .engine_config import (
    AlertRule,
    HistoryPolicy,
    IndexEngineConfig,
    ItemScoringWeights,
    LevelThresholds,
    MetricNormalization,
    NodeSpec,
    TierThresholds,
)
from .enums import (
    AlertSource,
    BaselineType,
    ComputeStatus,
    DeltaUnit,
    Granularity,
    IndexLevel,
    MetricId,
    NormalizationStrategy,
    Severity,
    Tier,
)
from .metrics import HistoryPoint, HistoryWindow, ItemMetrics, RawMetricSet
from .snapshots import (
    AlertRecord,
    Delta,
    EntityComputeStatus,
    IndexNode,
    IndexSnapshot,
    SubScore,
    TierAssignment,
)

__all__ = [
    "AlertRecord",
    "AlertRule",
    "AlertSource",
    "BaselineType",
    "ComputeStatus",
    "Delta",
    "DeltaUnit",
    "EntityComputeStatus",
    "Granularity",
    "HistoryPoint",
    "HistoryPolicy",
    "HistoryWindow",
    "IndexEngineConfig",
    "IndexLevel",
    "IndexNode",
    "IndexSnapshot",
    "ItemMetrics",
    "ItemScoringWeights",
    "LevelThresholds",
    "MetricId",
    "MetricNormalization",
    "NodeSpec",
    "NormalizationStrategy",
    "RawMetricSet",
    "Severity",
    "SubScore",
    "Tier",
    "TierAssignment",
    "TierThresholds",
]
