import random
from math import isclose

import numpy as np
import pytest
from scipy import stats as sp_stats

from chess_insights.analysis.stats import (
    correlate_feature,
    correlation_p_value,
    mean_p_value,
    pearson_correlation,
    regression_slope,
)


def test_pearson_recovers_linear_relationship():
    rng = random.Random(7)
    target = [rng.uniform(-300, 100) for _ in range(50)]
    feature = [-0.5 * t for t in target]
    r = pearson_correlation(feature, target)
    assert r is not None
    assert isclose(abs(r), 1.0, abs_tol=1e-9), f"Expected |r| ~ 1, got {r}"
    assert r < 0


@pytest.mark.parametrize(
    "x, y",
    [
        ([], []),
        ([1.0], [2.0]),
        ([3, 3, 3, 3], [1, 2, 3, 4]),
        ([1, 2, 3, 4], [5, 5, 5, 5]),
    ],
)
def test_pearson_is_undefined_for_degenerate_data(x, y):
    assert pearson_correlation(x, y) is None


def test_pearson_rejects_length_mismatch():
    with pytest.raises(ValueError):
        pearson_correlation([1, 2, 3], [1, 2])


def test_pearson_matches_numpy():
    rng = np.random.default_rng(3)
    x = rng.normal(size=200)
    y = 0.3 * x + rng.normal(size=200)
    assert isclose(pearson_correlation(x, y), np.corrcoef(x, y)[0, 1], rel_tol=1e-9)


def test_correlation_p_value_matches_scipy():
    rng = np.random.default_rng(11)
    x = rng.normal(size=40)
    y = -0.4 * x + rng.normal(size=40)
    r = pearson_correlation(x, y)
    expected = sp_stats.pearsonr(x, y).pvalue
    assert isclose(correlation_p_value(r, 40), expected, rel_tol=1e-6), (
        f"Expected p={expected}, got {correlation_p_value(r, 40)}"
    )


@pytest.mark.parametrize(
    "r, n, expected",
    [
        (0.9, 2, 1.0),
        (0.9, 1, 1.0),
        (1.0, 10, 0.0),
        (-1.0, 10, 0.0),
        (0.0, 10, 1.0),
    ],
)
def test_correlation_p_value_edges(r, n, expected):
    assert isclose(correlation_p_value(r, n), expected, abs_tol=1e-12)


def test_regression_slope():
    assert isclose(regression_slope([0, 1, 2, 3], [10, 8, 6, 4]), -2.0)
    assert regression_slope([1, 1, 1], [1, 2, 3]) is None


def test_correlate_feature_effect_size():
    x = [0, 1, 0, 1, 0, 1, 0, 1]
    y = [0, -100, 0, -100, 0, -100, 0, -100]
    result = correlate_feature(x, y)
    assert result is not None
    assert isclose(result.coefficient, -1.0)
    assert isclose(result.slope, -100.0)
    assert isclose(result.effect_cp, -100.0)
    assert isclose(result.mean_swing_cp, -100.0)
    assert result.sample_size == 8
    assert result.p_value == 0.0


def test_correlate_feature_degenerate():
    assert correlate_feature([1, 1, 1], [-10, 20, 30]) is None


@pytest.mark.parametrize(
    "values, expected",
    [
        ([], 1.0),
        ([-50], 1.0),
        ([-50, -50, -50], 0.0),
        ([0, 0, 0], 1.0),
    ],
)
def test_mean_p_value_edges(values, expected):
    assert mean_p_value(values) == expected


def test_mean_p_value_matches_scipy():
    values = [-80, -120, -95, -60, -140, -100, -30]
    expected = sp_stats.ttest_1samp(values, 0.0).pvalue
    assert isclose(mean_p_value(values), expected, rel_tol=1e-6)


@pytest.mark.parametrize("background", [80, 400, 2000])
def test_effect_of_rare_feature_does_not_shrink_with_background(background):
    x = [1] * 20 + [0] * background
    y = [-200 + (10 if i % 2 else -10) for i in range(20)]
    y += [10 if i % 2 else -10 for i in range(background)]
    result = correlate_feature(x, y)
    assert result is not None
    assert isclose(result.effect_cp, -200.0, abs_tol=1e-6), f"Got {result.effect_cp}"


def test_effect_of_count_feature_uses_mean_count_where_present():
    x = [0, 0, 1, 2, 3, 0]
    y = [0, 0, -50, -100, -150, 0]
    result = correlate_feature(x, y)
    assert isclose(result.slope, -50.0)
    assert isclose(result.effect_cp, -100.0)
