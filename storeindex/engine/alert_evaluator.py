"""
Alert Evaluator: Threshold Rules over Index Tree and Deltas.

Stateless: each rule compares one value of the current snapshot (an index
node, a delta, or a raw metric) with a fixed threshold. Rules are evaluated
independently, null inputs never fire, and nothing is deduplicated against
earlier runs.

Version: alert_eval_v1
"""

import operator
from datetime import datetime
from typing import Callable, Optional

import structlog

from storeindex.models.engine_config import AlertRule, IndexEngineConfig
from storeindex.models.enums import AlertSource
from storeindex.models.snapshots import AlertRecord, Delta, IndexNode

logger = structlog.get_logger()


OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _display(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


class AlertEvaluator:
    """
    Evaluates the configured alert rule table against one snapshot.

    Attributes:
        rules: Enabled alert rules, in configured order
        logger: Structured logger

    Example:
        >>> evaluator = AlertEvaluator(config)
        >>> alerts = evaluator.evaluate(tree, deltas, raw_inputs)
        >>> [a.rule_id for a in alerts]
        ['spi_low', 'overall_drop']
    """

    def __init__(self, config: IndexEngineConfig):
        self.rules = [rule for rule in config.alert_rules if rule.enabled]
        self.logger = structlog.get_logger()

    def evaluate(
        self,
        index_tree: IndexNode,
        deltas: list[Delta],
        raw_inputs: Optional[dict[str, Optional[float]]] = None,
        triggered_at: Optional[datetime] = None,
    ) -> list[AlertRecord]:
        """
        Evaluate every rule.

        Args:
            index_tree: Computed index tree
            deltas: Computed deltas
            raw_inputs: Raw metric values (metric rules never fire without)
            triggered_at: Timestamp stamped on raised alerts (now when None)

        Returns:
            Alerts in rule order
        """
        triggered_at = triggered_at or datetime.utcnow()
        index_values = index_tree.values_by_id()
        delta_values = {(d.index_id, d.baseline_type, d.unit): d.absolute_change for d in deltas}
        raw_inputs = raw_inputs or {}

        alerts = []
        for rule in self.rules:
            value = self._value_for(rule, index_values, delta_values, raw_inputs)
            if value is None:
                continue
            if not OPERATORS[rule.operator](value, rule.threshold):
                continue
            alerts.append(
                AlertRecord(
                    rule_id=rule.rule_id,
                    severity=rule.severity,
                    target_id=rule.target_id,
                    message=self._format_message(rule, value),
                    triggered_at=triggered_at,
                    value=value,
                    threshold=rule.threshold,
                )
            )

        if alerts:
            self.logger.info(
                "alerts_triggered",
                count=len(alerts),
                rule_ids=[a.rule_id for a in alerts],
            )
        return alerts

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _value_for(
        rule: AlertRule,
        index_values: dict[str, Optional[int]],
        delta_values: dict[tuple, Optional[float]],
        raw_inputs: dict[str, Optional[float]],
    ) -> Optional[float]:
        if rule.source == AlertSource.INDEX:
            value = index_values.get(rule.target_id)
        elif rule.source == AlertSource.DELTA:
            value = delta_values.get((rule.target_id, rule.baseline_type, rule.delta_unit))
        else:
            value = raw_inputs.get(rule.target_id)
        return float(value) if value is not None else None

    def _format_message(self, rule: AlertRule, value: float) -> str:
        """
        Fill the rule's message template.

        Supports placeholders: {target_id}, {value}, {threshold}, {baseline_type}
        """
        try:
            return rule.message_template.format(
                target_id=rule.target_id,
                value=_display(value),
                threshold=_display(rule.threshold),
                baseline_type=rule.baseline_type.value if rule.baseline_type else "",
            )
        except (KeyError, IndexError, ValueError) as e:
            self.logger.warning(
                "alert_message_format_failed",
                rule_id=rule.rule_id,
                template=rule.message_template,
                error=str(e),
            )
            return f"{rule.target_id} {rule.operator} {_display(rule.threshold)} (value {_display(value)})"
