"""
Composite Builder: Recursive Weighted Index Tree.

Combines leaf sub-scores into category indices and the overall index. A
child with no value is left out of its parent's weighted average entirely
(its weight leaves the denominator), so partial data re-normalizes the
remaining weights instead of dragging the score toward zero.

Version: composite_v1
"""

from typing import Iterable, Optional

import structlog

from storeindex.models.engine_config import IndexEngineConfig, NodeSpec
from storeindex.models.snapshots import IndexNode, SubScore

from .normalizer import round_half_up

logger = structlog.get_logger()


def weighted_composite(children: Iterable[tuple[Optional[float], float]]) -> Optional[int]:
    """
    Weighted average of the non-null (value, weight) pairs, rounded once.

    Returns None when every value is None. When the available weights sum
    to zero every available child counts with weight 1.0.

    Example:
        >>> weighted_composite([(80, 0.4), (None, 0.3), (60, 0.3)])
        71
    """
    available = [(value, weight) for value, weight in children if value is not None]
    if not available:
        return None
    total_weight = sum(weight for _, weight in available)
    if total_weight <= 0:
        available = [(value, 1.0) for value, _ in available]
        total_weight = float(len(available))
    weighted_sum = sum(value * weight for value, weight in available)
    return round_half_up(weighted_sum / total_weight)


class CompositeBuilder:
    """
    Builds the IndexNode tree for one period from the configured NodeSpec tree.

    Attributes:
        config: Engine configuration
        logger: Structured logger
    """

    def __init__(self, config: IndexEngineConfig):
        self.config = config
        self.logger = structlog.get_logger()

    def build(
        self,
        node_spec: Optional[NodeSpec],
        sub_scores: dict[str, SubScore],
    ) -> IndexNode:
        """
        Build the index tree rooted at ``node_spec``.

        Args:
            node_spec: Configured node (the configured root when None)
            sub_scores: SubScore per metric id

        Returns:
            Computed IndexNode with values on every node
        """
        spec = node_spec if node_spec is not None else self.config.index_tree
        return self._build_node(spec, sub_scores)

    def _build_node(self, spec: NodeSpec, sub_scores: dict[str, SubScore]) -> IndexNode:
        if spec.is_leaf:
            return self._build_leaf(spec, sub_scores)

        children = [self._build_node(child, sub_scores) for child in spec.children]
        value = weighted_composite((child.value, child.weight) for child in children)
        if value is None:
            self.logger.debug("composite_without_data", node_id=spec.id)
        return IndexNode(id=spec.id, value=value, weight=spec.weight, children=children)

    def _build_leaf(self, spec: NodeSpec, sub_scores: dict[str, SubScore]) -> IndexNode:
        metric_id = spec.metric_id.value
        sub_score = sub_scores.get(metric_id)
        if sub_score is None:
            sub_score = SubScore(
                metric_id=metric_id,
                raw_value=None,
                index=None,
                weight=spec.weight,
                strategy_used=self.config.normalization_for(spec.metric_id).strategy,
            )
        elif sub_score.weight != spec.weight:
            sub_score = sub_score.model_copy(update={"weight": spec.weight})
        return IndexNode(id=spec.id, value=sub_score.index, weight=spec.weight, sub_score=sub_score)
