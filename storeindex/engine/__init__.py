"""
Index engine: normalization, composite building, deltas, tiers, alerts
and snapshot persistence.
"""

from .alert_evaluator import AlertEvaluator
from .composite_builder import CompositeBuilder, weighted_composite
from .defaults import (
    default_index_config,
    get_index_config,
    growth_index_config,
    load_index_config,
)
from .delta_calculator import DeltaCalculator
from .normalizer import Normalizer, round_half_up
from .snapshot_service import SnapshotService, index_level
from .snapshot_writer import SnapshotWriter
from .tier_classifier import ItemScorer, TierClassifier

__all__ = [
    "AlertEvaluator",
    "CompositeBuilder",
    "DeltaCalculator",
    "ItemScorer",
    "Normalizer",
    "SnapshotService",
    "SnapshotWriter",
    "TierClassifier",
    "default_index_config",
    "get_index_config",
    "growth_index_config",
    "index_level",
    "load_index_config",
    "round_half_up",
    "weighted_composite",
]
