"""
Enumeration types for the index engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class Granularity(str, Enum):
    """Period unit a snapshot covers."""

    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


class MetricId(str, Enum):
    """
    Closed set of raw metrics a metric source may deliver.

    Values arrive already currency/VAT normalized. Percent metrics are on a
    0-100 scale; ``*_yoy`` metrics are percentage changes against the same
    period one year earlier, computed upstream. For lower-is-better metrics
    (bounce rate, average position) the sign is flipped upstream so a
    positive change is always an improvement.
    """

    # Orders
    ORDER_COUNT = "order_count"
    REVENUE = "revenue"
    GROSS_PROFIT = "gross_profit"
    AOV = "aov"
    MARGIN_PERCENT = "margin_percent"
    UNIQUE_CUSTOMERS = "unique_customers"
    REPEAT_RATE = "repeat_rate"

    # Traffic
    SESSIONS = "sessions"
    CONVERSION_RATE = "conversion_rate"

    # Search performance
    ORGANIC_CLICKS = "organic_clicks"
    IMPRESSIONS = "impressions"
    AVG_POSITION = "avg_position"
    NONBRAND_SHARE = "nonbrand_share"

    # Year-over-year changes
    ORGANIC_CLICKS_YOY = "organic_clicks_yoy"
    IMPRESSIONS_YOY = "impressions_yoy"
    CONVERSION_RATE_YOY = "conversion_rate_yoy"
    AOV_YOY = "aov_yoy"
    TOP10_KEYWORDS_YOY = "top10_keywords_yoy"
    ENGAGEMENT_RATE_YOY = "engagement_rate_yoy"
    ORGANIC_SHARE_YOY = "organic_share_yoy"
    BOUNCE_RATE_YOY = "bounce_rate_yoy"
    ORDER_COUNT_YOY = "order_count_yoy"
    REVENUE_YOY = "revenue_yoy"
    UNIQUE_CUSTOMERS_YOY = "unique_customers_yoy"
    AVG_POSITION_YOY = "avg_position_yoy"
    AVG_CTR_YOY = "avg_ctr_yoy"
    TOP10_PAGES_YOY = "top10_pages_yoy"

    # Inventory and operations
    STOCK_AVAILABILITY = "stock_availability"
    OUT_OF_STOCK_PERCENT = "out_of_stock_percent"
    FULFILLMENT_DAYS = "fulfillment_days"


class NormalizationStrategy(str, Enum):
    """Strategies that map a raw metric onto the 0-100 index scale."""

    RELATIVE_MIN_MAX = "relative_min_max"
    BREAKPOINT = "breakpoint"
    LINEAR_RANGE = "linear_range"
    Z_SCORE = "z_score"
    OPTIMAL_BAND = "optimal_band"


class BaselineType(str, Enum):
    """Comparison baseline for deltas."""

    PREVIOUS = "previous"
    YOY = "yoy"


class DeltaUnit(str, Enum):
    """Unit of a delta: index points or percent change of a raw metric."""

    POINTS = "points"
    PERCENT = "percent"


class Tier(str, Enum):
    """
    Qualitative classification of an item (product).

    Declaration order is the classifier's evaluation order.
    """

    TOP = "top"
    HEALTHY = "healthy"
    UNDERPERFORMER = "underperformer"
    TRAPPED = "trapped"


class Severity(str, Enum):
    """Severity levels for alert rules and alerts."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertSource(str, Enum):
    """What an alert rule looks at."""

    INDEX = "index"
    DELTA = "delta"
    METRIC = "metric"


class IndexLevel(str, Enum):
    """Interpretation band of an overall index value."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"
    INSUFFICIENT_DATA = "insufficient_data"


class ComputeStatus(str, Enum):
    """Per-entity outcome of a batch computation."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"
