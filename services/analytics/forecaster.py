"""Short-horizon projections for business time series."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.logging import get_logger
from services.analytics import stats_kernel as sk
from services.report_errors import ValidationError

logger = get_logger(__name__)

MIN_POINTS = 3
MOVING_AVERAGE_MIN_POINTS = 10
MOVING_AVERAGE_WINDOW = 10
SMOOTHING_FACTOR = 0.3
MAX_PERIODS = 24
DEFAULT_SEASONAL_PERIOD = 12
SEASONAL_CONFIDENCE_FACTOR = 0.9

METHOD_LINEAR = "linear_regression"
METHOD_MOVING_AVERAGE = "weighted_moving_average"
METHOD_SEASONAL = "seasonal_decomposition"

TREND_UP = "upward"
TREND_DOWN = "downward"
TREND_STABLE = "stable"


@dataclass
class ForecastResult:
    method: str
    trend: str
    forecasts: List[float] = field(default_factory=list)
    confidence: float = 0.0
    mape: float = 0.0
    r_squared: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "method": self.method,
            "trend": self.trend,
            "forecasts": list(self.forecasts),
            "confidence": self.confidence,
            "mape": self.mape,
        }
        if self.r_squared is not None:
            payload["rSquared"] = self.r_squared
        return payload


def _floor(values: Sequence[float]) -> List[float]:
    return [max(0.0, value) for value in values]


def _classify(change: float, noise: float) -> str:
    if abs(change) < noise:
        return TREND_STABLE
    return TREND_UP if change > 0 else TREND_DOWN


def linear_forecast(series: Sequence[float], periods: int) -> ForecastResult:
    points = [(float(index), value) for index, value in enumerate(series)]
    slope, intercept = sk.linear_regression(points)
    fitted = [intercept + slope * index for index in range(len(series))]
    last = len(series) - 1
    projections = [intercept + slope * (last + step) for step in range(1, periods + 1)]
    error = sk.mape(series, fitted)
    return ForecastResult(
        method=METHOD_LINEAR,
        trend=_classify(slope, 0.01 * abs(sk.mean(series))),
        forecasts=_floor(projections),
        confidence=max(0.0, 1.0 - error / 100.0),
        mape=error,
        r_squared=sk.r_squared(series, fitted),
    )


def _recency_weights(size: int) -> List[float]:
    return [(1 - SMOOTHING_FACTOR) ** (size - index - 1) for index in range(size)]


def weighted_moving_average_forecast(series: Sequence[float], periods: int) -> ForecastResult:
    """Exponentially weighted level over the recent window plus the mean period-over-period change.

    The weighted level sits at the window's weighted centre of mass, so projections
    carry the mean change across that lag before stepping forward.
    """
    size = min(MOVING_AVERAGE_WINDOW, len(series))
    window = list(series[-size:])
    weights = _recency_weights(size)
    weight_total = sum(weights)
    level = sum(value * weight for value, weight in zip(window, weights)) / weight_total
    lag = sum(weight * (size - 1 - index) for index, weight in enumerate(weights)) / weight_total

    changes = sk.differences(series)
    avg_change = sk.mean(changes)
    change_spread = sk.population_stddev(changes)
    projections = [level + avg_change * (lag + step) for step in range(1, periods + 1)]

    series_mean = abs(sk.mean(series))
    if series_mean == 0:
        variation = 0.0 if change_spread == 0 else 1.0
    else:
        variation = change_spread / series_mean
    return ForecastResult(
        method=METHOD_MOVING_AVERAGE,
        trend=_classify(avg_change, 0.5 * change_spread),
        forecasts=_floor(projections),
        confidence=max(0.5, min(0.95, 1.0 - variation)),
        mape=variation * 100.0,
    )


def decompose(series: Sequence[float], period: int) -> Tuple[List[float], List[float], List[float]]:
    """Split into (trend, seasonal, residual) using a centred moving average."""
    half = period // 2
    trend: List[float] = []
    for index in range(len(series)):
        window = series[max(0, index - half): min(len(series), index + half + 1)]
        trend.append(sk.mean(window))
    detrended = [value - level for value, level in zip(series, trend)]
    seasonal: List[float] = []
    for offset in range(period):
        bucket = detrended[offset::period]
        seasonal.append(sk.mean(bucket) if bucket else 0.0)
    residual = [
        value - trend[index] - seasonal[index % period] for index, value in enumerate(series)
    ]
    return trend, seasonal, residual


def seasonal_forecast(series: Sequence[float], periods: int, period: int = DEFAULT_SEASONAL_PERIOD) -> ForecastResult:
    if len(series) < 2 * period:
        logger.debug("Series too short for seasonal period %d; using linear regression.", period)
        return linear_forecast(series, periods)
    trend, seasonal, _ = decompose(series, period)
    trend_result = _select(trend, periods)
    projections = [
        trend_result.forecasts[step] + seasonal[(len(series) + step) % period] for step in range(periods)
    ]
    return ForecastResult(
        method=METHOD_SEASONAL,
        trend=trend_result.trend,
        forecasts=_floor(projections),
        confidence=trend_result.confidence * SEASONAL_CONFIDENCE_FACTOR,
        mape=trend_result.mape,
    )


def _select(series: Sequence[float], periods: int) -> ForecastResult:
    if len(series) < MOVING_AVERAGE_MIN_POINTS:
        return linear_forecast(series, periods)
    return weighted_moving_average_forecast(series, periods)


def forecast(
    values: Sequence[float],
    periods: int,
    confidence: float = 0.95,
    *,
    seasonal_period: Optional[int] = None,
) -> ForecastResult:
    """Project ``periods`` future values.

    Fewer than 10 points use linear regression, longer series the weighted
    moving average. Seasonal decomposition only runs when ``seasonal_period``
    is given. ``confidence`` is the caller's target and is recorded in logs;
    the reported confidence is always derived from the fit.
    """
    series = [float(value) for value in values]
    sk.require_length(series, MIN_POINTS, label="forecast input")
    if not 1 <= periods <= MAX_PERIODS:
        raise ValidationError(f"periods must be between 1 and {MAX_PERIODS}")
    if seasonal_period is not None:
        if seasonal_period < 2:
            raise ValidationError("seasonal_period must be at least 2")
        result = seasonal_forecast(series, periods, seasonal_period)
    else:
        result = _select(series, periods)
    logger.debug(
        "Forecast method=%s points=%d periods=%d target=%.2f confidence=%.3f",
        result.method,
        len(series),
        periods,
        confidence,
        result.confidence,
    )
    return result


__all__ = [
    "ForecastResult",
    "METHOD_LINEAR",
    "METHOD_MOVING_AVERAGE",
    "METHOD_SEASONAL",
    "decompose",
    "forecast",
    "linear_forecast",
    "seasonal_forecast",
    "weighted_moving_average_forecast",
]
