"""
Built-in index engine configurations and config loading.

Two presets ship with the engine:

- store_index: four category indices under the overall index, core
  commerce (core), price/profit (ppi), search performance (spi) and
  operations (oi)
- growth_engine: four growth pillars scored purely on year-over-year
  changes with the breakpoint table

INDEX_PRESET picks the preset; a JSON file named by INDEX_CONFIG_PATH
replaces the whole configuration instead.

Version: store_index_v1, growth_engine_v1
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from storeindex.config import get_settings
from storeindex.errors import ConfigurationError
from storeindex.models.engine_config import IndexEngineConfig

logger = structlog.get_logger()

CONFIG_VERSION = "store_index_v1"
GROWTH_CONFIG_VERSION = "growth_engine_v1"


# ============================================================================
# Index tree: category weights and leaf metrics
# ============================================================================

INDEX_WEIGHTS = {
    "core": 0.35,
    "ppi": 0.25,
    "spi": 0.20,
    "oi": 0.20,
}

CATEGORY_METRICS = {
    "core": {
        "revenue": 0.30,
        "order_count": 0.25,
        "gross_profit": 0.25,
        "aov": 0.20,
    },
    "ppi": {
        "margin_percent": 1.0,
    },
    "spi": {
        "organic_clicks_yoy": 0.35,
        "impressions_yoy": 0.25,
        "avg_position": 0.20,
        "nonbrand_share": 0.20,
    },
    "oi": {
        "stock_availability": 0.55,
        "fulfillment_days": 0.45,
    },
}


# ============================================================================
# Normalization per metric
# ============================================================================

METRIC_NORMALIZATION: dict[str, dict[str, Any]] = {
    "revenue": {"strategy": "relative_min_max"},
    "order_count": {"strategy": "relative_min_max"},
    "gross_profit": {"strategy": "relative_min_max"},
    "aov": {"strategy": "z_score"},
    "margin_percent": {"strategy": "linear_range", "low": 30, "high": 60},
    "organic_clicks_yoy": {"strategy": "breakpoint"},
    "impressions_yoy": {"strategy": "breakpoint"},
    "avg_position": {"strategy": "z_score", "invert": True},
    "nonbrand_share": {
        "strategy": "optimal_band",
        "optimal_min": 40,
        "optimal_max": 70,
        "floor_score": 50,
        "decay": 1.5,
    },
    # Availability of 80% or less scores 0 (out-of-stock share of 20%+)
    "stock_availability": {"strategy": "linear_range", "low": 80, "high": 100},
    # Same-day-ish shipping scores 100, a week scores 0
    "fulfillment_days": {"strategy": "linear_range", "low": 7, "high": 1},
}


# ============================================================================
# Growth engine: pillar weights and YoY leaf metrics
# ============================================================================

GROWTH_PILLAR_WEIGHTS = {
    "demand_growth": 0.25,
    "traffic_quality": 0.15,
    "sales_efficiency": 0.40,
    "product_leverage": 0.20,
}

# Leaves count equally inside their pillar
GROWTH_PILLAR_METRICS = {
    "demand_growth": ["organic_clicks_yoy", "impressions_yoy", "top10_keywords_yoy"],
    "traffic_quality": ["engagement_rate_yoy", "organic_share_yoy", "bounce_rate_yoy"],
    "sales_efficiency": [
        "conversion_rate_yoy",
        "aov_yoy",
        "order_count_yoy",
        "revenue_yoy",
        "unique_customers_yoy",
    ],
    "product_leverage": ["avg_position_yoy", "avg_ctr_yoy", "top10_pages_yoy"],
}

# excellent / good / needs work, everything under 40 is poor
GROWTH_LEVELS = {"excellent": 80, "good": 60, "fair": 40, "poor": 0}


# ============================================================================
# Alerts
# ============================================================================

ALERT_THRESHOLDS = {
    "index_warning": 40,
    "index_critical": 25,
    "delta_warning": -10,
    "delta_critical": -20,
    "out_of_stock_warning": 10,
    "out_of_stock_critical": 20,
}

RAW_DELTA_METRICS = ["revenue", "order_count", "gross_profit", "aov", "margin_percent"]


def _index_alert_rules(index_ids: list[str]) -> list[dict[str, Any]]:
    """Low/critical rules per index and drop rules on the overall index."""
    rules = []
    for index_id in ["overall", *index_ids]:
        rules.append(
            {
                "rule_id": f"{index_id}_low",
                "source": "index",
                "target_id": index_id,
                "operator": "<",
                "threshold": ALERT_THRESHOLDS["index_warning"],
                "severity": "medium",
                "message_template": "{target_id} index is {value}, below {threshold}",
            }
        )
        rules.append(
            {
                "rule_id": f"{index_id}_critical",
                "source": "index",
                "target_id": index_id,
                "operator": "<",
                "threshold": ALERT_THRESHOLDS["index_critical"],
                "severity": "critical",
                "message_template": "{target_id} index is {value}, below {threshold}",
            }
        )

    rules.extend(
        [
            {
                "rule_id": "overall_drop",
                "source": "delta",
                "target_id": "overall",
                "baseline_type": "previous",
                "operator": "<",
                "threshold": ALERT_THRESHOLDS["delta_warning"],
                "severity": "medium",
                "message_template": "{target_id} fell {value} points vs {baseline_type} period",
            },
            {
                "rule_id": "overall_sharp_drop",
                "source": "delta",
                "target_id": "overall",
                "baseline_type": "previous",
                "operator": "<",
                "threshold": ALERT_THRESHOLDS["delta_critical"],
                "severity": "high",
                "message_template": "{target_id} fell {value} points vs {baseline_type} period",
            },
        ]
    )
    return rules


def _alert_rules() -> list[dict[str, Any]]:
    rules = _index_alert_rules(list(INDEX_WEIGHTS))
    rules.extend(
        [
            {
                "rule_id": "out_of_stock_high",
                "source": "metric",
                "target_id": "out_of_stock_percent",
                "operator": ">",
                "threshold": ALERT_THRESHOLDS["out_of_stock_warning"],
                "severity": "medium",
                "message_template": "{value}% of products are out of stock (limit {threshold}%)",
            },
            {
                "rule_id": "out_of_stock_critical",
                "source": "metric",
                "target_id": "out_of_stock_percent",
                "operator": ">",
                "threshold": ALERT_THRESHOLDS["out_of_stock_critical"],
                "severity": "high",
                "message_template": "{value}% of products are out of stock (limit {threshold}%)",
            },
        ]
    )
    return rules


# ============================================================================
# Presets
# ============================================================================


def default_config_dict() -> dict[str, Any]:
    """Built-in store index configuration as a plain dict (the JSON file layout)."""
    return {
        "config_version": CONFIG_VERSION,
        "metrics": [
            {"metric_id": metric_id, **params}
            for metric_id, params in METRIC_NORMALIZATION.items()
        ],
        "index_tree": {
            "id": "overall",
            "weight": 1.0,
            "children": [
                {
                    "id": category,
                    "weight": weight,
                    "children": [
                        {"id": metric_id, "metric_id": metric_id, "weight": w}
                        for metric_id, w in CATEGORY_METRICS[category].items()
                    ],
                }
                for category, weight in INDEX_WEIGHTS.items()
            ],
        },
        "alert_rules": _alert_rules(),
        "raw_delta_metrics": RAW_DELTA_METRICS,
    }


def growth_config_dict() -> dict[str, Any]:
    """
    Built-in growth engine configuration as a plain dict.

    Every leaf is a YoY change scored with the default breakpoint table, so a
    metric the source cannot compare against last year scores a neutral 50
    instead of dropping out of its pillar.
    """
    metric_ids = [m for metrics in GROWTH_PILLAR_METRICS.values() for m in metrics]
    return {
        "config_version": GROWTH_CONFIG_VERSION,
        "metrics": [{"metric_id": metric_id, "strategy": "breakpoint"} for metric_id in metric_ids],
        "index_tree": {
            "id": "overall",
            "weight": 1.0,
            "children": [
                {
                    "id": pillar,
                    "weight": weight,
                    "children": [
                        {"id": metric_id, "metric_id": metric_id, "weight": 1.0}
                        for metric_id in GROWTH_PILLAR_METRICS[pillar]
                    ],
                }
                for pillar, weight in GROWTH_PILLAR_WEIGHTS.items()
            ],
        },
        "alert_rules": _index_alert_rules(list(GROWTH_PILLAR_WEIGHTS)),
        "levels": GROWTH_LEVELS,
    }


def default_index_config() -> IndexEngineConfig:
    """Validated built-in store index configuration."""
    return IndexEngineConfig.model_validate(default_config_dict())


def growth_index_config() -> IndexEngineConfig:
    """Validated built-in growth engine configuration."""
    return IndexEngineConfig.model_validate(growth_config_dict())


INDEX_PRESETS: dict[str, Callable[[], IndexEngineConfig]] = {
    "store_index": default_index_config,
    "growth_engine": growth_index_config,
}


def load_index_config(
    path: Optional[str] = None,
    preset: str = "store_index",
) -> IndexEngineConfig:
    """
    Load and validate the engine configuration.

    Args:
        path: JSON file to load; a built-in preset when None
        preset: Built-in preset used when no path is given

    Returns:
        Validated IndexEngineConfig

    Raises:
        ConfigurationError: If the file cannot be read or fails validation,
            or the preset is unknown
    """
    if path is None and preset not in INDEX_PRESETS:
        logger.error("index_preset_unknown", preset=preset)
        raise ConfigurationError(
            f"Unknown index preset {preset!r}; expected one of {sorted(INDEX_PRESETS)}"
        )

    try:
        if path is None:
            config = INDEX_PRESETS[preset]()
        else:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            config = IndexEngineConfig.model_validate(raw)
    except ValidationError as e:
        logger.error("index_config_invalid", path=path, errors=e.error_count())
        raise ConfigurationError(f"Invalid index configuration: {e}") from e
    except (OSError, json.JSONDecodeError) as e:
        logger.error("index_config_unreadable", path=path, error=str(e))
        raise ConfigurationError(f"Cannot read index configuration {path}: {e}") from e

    logger.info(
        "index_config_loaded",
        path=path or f"builtin:{preset}",
        config_version=config.config_version,
        nodes=len(config.node_ids),
        alert_rules=len(config.alert_rules),
    )
    return config


@lru_cache
def get_index_config() -> IndexEngineConfig:
    """Cached engine configuration for INDEX_CONFIG_PATH or INDEX_PRESET."""
    settings = get_settings()
    return load_index_config(settings.index_config_path, preset=settings.index_preset)
