"""Raw metric sources."""

from .base import MetricSource
from .staged import StagedMetricSource

__all__ = ["MetricSource", "StagedMetricSource"]
