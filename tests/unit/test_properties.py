"""
Property-based tests using Hypothesis for the index engine.

These tests verify the bound, null-propagation and determinism invariants
across the normalizer, composite builder and tier classifier.
"""

import math

import hypothesis.strategies as st
from hypothesis import assume, given, settings

from storeindex.engine.composite_builder import CompositeBuilder, weighted_composite
from storeindex.engine.defaults import default_index_config
from storeindex.engine.normalizer import (
    Normalizer,
    breakpoint_score,
    linear_score,
    min_max_score,
    optimal_band_score,
    round_half_up,
    z_score,
)
from storeindex.engine.tier_classifier import TierClassifier
from storeindex.models.engine_config import TierThresholds
from storeindex.models.enums import Tier
from tests.conftest import DEFAULT_METRICS, make_raw_metric_set

CONFIG = default_index_config()

finite = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)
score = st.integers(min_value=0, max_value=100)
weight = st.floats(min_value=0.0, max_value=10.0, allow_nan=False, allow_infinity=False)


# =============================================================================
# Normalizer Property Tests
# =============================================================================


@given(value=finite, history=st.lists(finite, max_size=12), eligible=st.booleans())
@settings(max_examples=200)
def test_prop_min_max_in_bounds(value, history, eligible):
    """relative_min_max output is always an int in [0, 100]."""
    result = min_max_score(value, history, eligible=eligible)
    assert isinstance(result, int)
    assert 0 <= result <= 100


@given(value=finite, history=st.lists(finite, min_size=1, max_size=12))
@settings(max_examples=100)
def test_prop_min_max_new_extremes(value, history):
    """A value at or beyond the history extremes scores 0 or 100 (or 50 when degenerate)."""
    if value >= max(history) and value > min(history):
        assert min_max_score(value, history) == 100
    if value <= min(history) and value < max(history):
        assert min_max_score(value, history) == 0


@given(
    value=st.one_of(st.none(), finite),
    bounds=st.lists(finite, min_size=1, max_size=6, unique=True),
    scores=st.lists(score, min_size=6, max_size=6),
    default=score,
)
@settings(max_examples=100)
def test_prop_breakpoint_returns_configured_score(value, bounds, scores, default):
    """Breakpoint output is always one of the table's scores, the default or the missing score."""
    table = list(zip(sorted(bounds, reverse=True), scores))
    result = breakpoint_score(value, table, default_score=default)
    assert result in {s for _, s in table} | {default, 50}


@given(value=finite, low=finite, high=finite)
@settings(max_examples=200)
def test_prop_linear_in_bounds(value, low, high):
    """linear_range output is within [0, 100] for any non-degenerate range."""
    assume(abs(high - low) > 1e-6)
    assert 0 <= linear_score(value, low, high) <= 100


@given(value=finite, history=st.lists(finite, max_size=12), invert=st.booleans())
@settings(max_examples=200)
def test_prop_z_score_in_bounds(value, history, invert):
    """z_score output is within [0, 100], neutral for short histories."""
    result = z_score(value, history, invert=invert)
    assert 0 <= result <= 100
    if len(history) < 2:
        assert result == 50


@given(value=finite, lo=st.floats(0, 100), span=st.floats(0, 100), floor=score)
@settings(max_examples=100)
def test_prop_optimal_band_in_bounds(value, lo, span, floor):
    """optimal_band output is within [0, 100]."""
    assert 0 <= optimal_band_score(value, lo, lo + span, floor_score=floor) <= 100


@given(x=st.floats(min_value=-1e9, max_value=1e9, allow_nan=False))
@settings(max_examples=200)
def test_prop_round_half_up_within_half(x):
    """Half-up rounding never moves a value by more than 0.5."""
    assert abs(round_half_up(x) - x) <= 0.5 + 1e-9


# =============================================================================
# CompositeBuilder Property Tests
# =============================================================================


@given(children=st.lists(st.tuples(st.one_of(st.none(), score), weight), min_size=1, max_size=8))
@settings(max_examples=200)
def test_prop_composite_bounded_by_children(children):
    """Composite is null iff every child is null, else within [min, max] of child values."""
    result = weighted_composite(children)
    values = [v for v, _ in children if v is not None]
    if not values:
        assert result is None
    else:
        assert min(values) <= result <= max(values)


@given(
    overrides=st.fixed_dictionaries(
        {},
        optional={
            metric_id: st.one_of(st.none(), st.floats(-50, 5000, allow_nan=False))
            for metric_id in DEFAULT_METRICS
        },
    )
)
@settings(max_examples=100)
def test_prop_tree_values_in_bounds_and_deterministic(overrides):
    """Every node of a built tree is null or in [0, 100]; building twice gives the same tree."""
    raw = make_raw_metric_set(**overrides)
    normalizer = Normalizer(CONFIG)
    builder = CompositeBuilder(CONFIG)

    first = builder.build(None, normalizer.score_metrics(raw, {}))
    second = builder.build(None, normalizer.score_metrics(raw, {}))

    assert first == second
    for node in first.walk():
        assert node.value is None or 0 <= node.value <= 100
        if node.children:
            child_values = [c.value for c in node.children]
            assert (node.value is None) == all(v is None for v in child_values)


# =============================================================================
# TierClassifier Property Tests
# =============================================================================


@given(
    composite_score=st.one_of(st.none(), score),
    margin_percent=st.one_of(st.none(), st.floats(-100, 100)),
    revenue=st.floats(0, 1e6),
    units_sold=st.floats(0, 1e4),
    stock_units=st.floats(0, 1e4),
    stock_age_days=st.one_of(st.none(), st.floats(0, 2000)),
)
@settings(max_examples=200)
def test_prop_classify_total_and_revenue_consistent(
    composite_score, margin_percent, revenue, units_sold, stock_units, stock_age_days
):
    """Every item gets a tier; any revenue rules out trapped."""
    metrics = {
        "composite_score": composite_score,
        "margin_percent": margin_percent,
        "revenue": revenue,
        "units_sold": units_sold,
        "stock_units": stock_units,
        "stock_age_days": stock_age_days,
    }
    tier = TierClassifier(TierThresholds()).classify(metrics)
    assert isinstance(tier, Tier)
    if revenue > 0:
        assert tier != Tier.TRAPPED
    if tier == Tier.TOP:
        assert not math.isclose(revenue, 0.0)
