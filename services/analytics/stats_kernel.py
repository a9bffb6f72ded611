"""Pure numeric helpers shared by the detectors, forecaster and scorers."""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from services.report_errors import InsufficientDataError


def require_length(values: Sequence[float], minimum: int, *, label: str = "series") -> None:
    """Raise ``InsufficientDataError`` when ``values`` is shorter than ``minimum``."""
    if len(values) < minimum:
        raise InsufficientDataError(f"{label} needs at least {minimum} values (got {len(values)}).")


def mean(values: Sequence[float]) -> float:
    require_length(values, 1, label="mean")
    return math.fsum(values) / len(values)


def population_stddev(values: Sequence[float]) -> float:
    """Standard deviation over the whole population (divides by ``n``)."""
    require_length(values, 1, label="stddev")
    avg = mean(values)
    variance = math.fsum((value - avg) ** 2 for value in values) / len(values)
    # Rounding noise on constant series must not read as spread.
    if variance <= 1e-24 * max(1.0, avg * avg):
        return 0.0
    return math.sqrt(variance)


def quantile(values: Sequence[float], p: float) -> float:
    """Quantile at rank ``p`` using linear interpolation between order statistics."""
    require_length(values, 1, label="quantile")
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"quantile rank must be within [0, 1], got {p}")
    ordered = sorted(values)
    position = (len(ordered) - 1) * p
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return float(ordered[lower])
    fraction = position - lower
    return ordered[lower] + (ordered[upper] - ordered[lower]) * fraction


def linear_regression(points: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    """Least squares fit returning ``(slope, intercept)``."""
    require_length(points, 1, label="regression")
    if len(points) == 1:
        return 0.0, float(points[0][1])
    xs = [float(x) for x, _ in points]
    ys = [float(y) for _, y in points]
    mean_x = mean(xs)
    mean_y = mean(ys)
    sxx = math.fsum((x - mean_x) ** 2 for x in xs)
    if sxx == 0:
        return 0.0, mean_y
    sxy = math.fsum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    slope = sxy / sxx
    return slope, mean_y - slope * mean_x


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation; zero when either side has no variance."""
    if len(xs) != len(ys):
        raise ValueError("pearson requires sequences of equal length")
    require_length(xs, 2, label="correlation")
    mean_x = mean(xs)
    mean_y = mean(ys)
    sxx = math.fsum((x - mean_x) ** 2 for x in xs)
    syy = math.fsum((y - mean_y) ** 2 for y in ys)
    if sxx == 0 or syy == 0:
        return 0.0
    sxy = math.fsum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    r = sxy / math.sqrt(sxx * syy)
    return max(-1.0, min(1.0, r))


def r_squared(actual: Sequence[float], predicted: Sequence[float]) -> float:
    avg = mean(actual)
    total = math.fsum((value - avg) ** 2 for value in actual)
    if total == 0:
        return 1.0
    residual = math.fsum((value - guess) ** 2 for value, guess in zip(actual, predicted))
    return 1.0 - residual / total


def mape(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Mean absolute percentage error in percent, skipping zero actuals."""
    errors: List[float] = [
        abs((value - guess) / value) for value, guess in zip(actual, predicted) if value != 0
    ]
    if not errors:
        return 0.0
    return math.fsum(errors) / len(errors) * 100.0


def differences(values: Sequence[float]) -> List[float]:
    """Period-over-period changes."""
    return [values[index] - values[index - 1] for index in range(1, len(values))]


__all__ = [
    "differences",
    "linear_regression",
    "mape",
    "mean",
    "pearson",
    "population_stddev",
    "quantile",
    "r_squared",
    "require_length",
]
