import math

import msgspec
import numpy as np
from numpy.typing import ArrayLike
from scipy import stats as sp_stats


class CorrelationResult(msgspec.Struct, frozen=True):
    """Linear relationship between one feature and the eval swing.

    Attributes:
        coefficient: Pearson correlation coefficient r
        p_value: Two-sided p-value of r
        slope: Regression slope of the swing on the feature (cp per feature unit)
        effect_cp: Implied swing change when the feature is present, the slope times the
            mean magnitude of the feature over the positions where it is present
        mean_swing_cp: Mean swing of the positions where the feature is present
        sample_size: Number of positions the statistic was computed over
    """

    coefficient: float
    p_value: float
    slope: float
    effect_cp: float
    mean_swing_cp: float
    sample_size: int


def _is_constant(values: np.ndarray) -> bool:
    return values.size == 0 or values.max() == values.min()


def pearson_correlation(x: ArrayLike, y: ArrayLike) -> float | None:
    """Pearson correlation coefficient of x and y.

    Returns:
        r in [-1, 1], or None when it is undefined (fewer than two samples or a
        variable without variance)
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size != y.size:
        raise ValueError(f"Length mismatch: {x.size} != {y.size}")
    if x.size < 2 or _is_constant(x) or _is_constant(y):
        return None

    dx = x - x.mean()
    dy = y - y.mean()
    r = (dx @ dy) / math.sqrt((dx @ dx) * (dy @ dy))
    return float(np.clip(r, -1.0, 1.0))


def correlation_p_value(r: float, n: int) -> float:
    """Two-sided p-value of a correlation coefficient with n samples.

    Uses t = |r| * sqrt((n - 2) / (1 - r^2)) with n - 2 degrees of freedom.
    """
    if n <= 2:
        return 1.0
    if abs(r) >= 1:
        return 0.0
    t = abs(r) * math.sqrt((n - 2) / (1 - r * r))
    return float(2 * sp_stats.t.sf(t, n - 2))


def regression_slope(x: ArrayLike, y: ArrayLike) -> float | None:
    """Least squares slope of y on x, None if x has no variance."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < 2 or _is_constant(x):
        return None
    dx = x - x.mean()
    return float((dx @ (y - y.mean())) / (dx @ dx))


def correlate_feature(x: ArrayLike, y: ArrayLike) -> CorrelationResult | None:
    """Correlate a feature with the swing, None for degenerate data."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    r = pearson_correlation(x, y)
    if r is None:
        return None

    slope = regression_slope(x, y)
    if slope is None:
        return None

    present = x != 0
    typical = float(np.abs(x[present]).mean()) if present.any() else 0.0

    return CorrelationResult(
        coefficient=r,
        p_value=correlation_p_value(r, x.size),
        slope=slope,
        effect_cp=slope * typical,
        mean_swing_cp=float(y[present].mean()) if present.any() else 0.0,
        sample_size=int(x.size),
    )


def mean_p_value(values: ArrayLike) -> float:
    """Two-sided p-value of a one-sample t-test of the mean against zero."""
    values = np.asarray(values, dtype=float)
    n = values.size
    if n < 2:
        return 1.0

    mean = float(values.mean())
    std = float(values.std(ddof=1))
    if std == 0 or _is_constant(values):
        return 0.0 if mean != 0 else 1.0

    t = abs(mean) / (std / math.sqrt(n))
    return float(2 * sp_stats.t.sf(t, n - 1))
