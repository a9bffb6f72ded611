"""Outlier scoring for numeric sequences (z-score, IQR and an isolation proxy)."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from core.logging import get_logger
from services.analytics import stats_kernel as sk
from services.report_errors import ValidationError

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 2.5
IQR_FACTOR = 1.5
ISOLATION_MULTIPLIER = 3.0
DEFAULT_WINDOW = 10

METHOD_ZSCORE = "zscore"
METHOD_IQR = "iqr"
METHOD_ISOLATION = "isolation_forest"
METHOD_TIME_SERIES = "time_series_zscore"

_METHOD_ALIASES = {
    "zscore": METHOD_ZSCORE,
    "z-score": METHOD_ZSCORE,
    "iqr": METHOD_IQR,
    "isolation": METHOD_ISOLATION,
    "isolation_forest": METHOD_ISOLATION,
    "isolation-proxy": METHOD_ISOLATION,
}


@dataclass(frozen=True)
class PointScore:
    index: int
    value: float
    score: float
    is_anomaly: bool

    def as_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "value": self.value, "score": self.score, "isAnomaly": self.is_anomaly}


@dataclass
class AnomalyResult:
    method: str
    threshold: float
    per_point: List[PointScore] = field(default_factory=list)

    @property
    def anomalies(self) -> List[PointScore]:
        return [point for point in self.per_point if point.is_anomaly]

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    @property
    def anomaly_percentage(self) -> float:
        if not self.per_point:
            return 0.0
        return self.anomaly_count / len(self.per_point) * 100.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "threshold": self.threshold,
            "perPoint": [point.as_dict() for point in self.per_point],
            "anomalyCount": self.anomaly_count,
            "anomalyPercentage": self.anomaly_percentage,
        }


def _as_floats(values: Sequence[float]) -> List[float]:
    series = [float(value) for value in values]
    sk.require_length(series, 1, label="anomaly input")
    return series


def _build(method: str, threshold: float, series: Sequence[float], scores: Sequence[float], cutoff: float) -> AnomalyResult:
    points = [
        PointScore(index=index, value=value, score=score, is_anomaly=score > cutoff)
        for index, (value, score) in enumerate(zip(series, scores))
    ]
    return AnomalyResult(method=method, threshold=threshold, per_point=points)


def _zscores(series: Sequence[float]) -> List[float]:
    """Externally studentized z-scores: each point against the mean and spread of the others."""
    spread = sk.population_stddev(series)
    if spread == 0:
        return [0.0] * len(series)
    count = len(series)
    if count < 3:
        avg = sk.mean(series)
        return [abs(value - avg) / spread for value in series]
    total = sum(series)
    total_sq = sum(value * value for value in series)
    scores: List[float] = []
    for value in series:
        rest = count - 1
        rest_mean = (total - value) / rest
        rest_var = max(0.0, (total_sq - value * value) / rest - rest_mean * rest_mean)
        rest_std = rest_var ** 0.5
        if rest_std <= 1e-12 * max(1.0, abs(rest_mean)):
            rest_std = spread
        scores.append(abs(value - rest_mean) / rest_std)
    return scores


def _global_zscores(series: Sequence[float]) -> List[float]:
    spread = sk.population_stddev(series)
    if spread == 0:
        return [0.0] * len(series)
    avg = sk.mean(series)
    return [abs(value - avg) / spread for value in series]


def detect_zscore(values: Sequence[float], threshold: float = DEFAULT_THRESHOLD) -> AnomalyResult:
    series = _as_floats(values)
    return _build(METHOD_ZSCORE, threshold, series, _zscores(series), threshold)


def detect_iqr(values: Sequence[float]) -> AnomalyResult:
    series = _as_floats(values)
    q1 = sk.quantile(series, 0.25)
    q3 = sk.quantile(series, 0.75)
    iqr = q3 - q1
    spread = sk.population_stddev(series)
    # Degenerate quartiles fall back to the population spread as the unit.
    unit = iqr if iqr > 0 else spread
    lower = q1 - IQR_FACTOR * iqr
    upper = q3 + IQR_FACTOR * iqr
    points: List[PointScore] = []
    for index, value in enumerate(series):
        outside = value < lower or value > upper
        if unit == 0:
            outside = False
        score = 0.0
        if outside:
            distance = lower - value if value < lower else value - upper
            score = abs(distance) / unit
        points.append(PointScore(index=index, value=value, score=score, is_anomaly=outside))
    return AnomalyResult(method=METHOD_IQR, threshold=IQR_FACTOR, per_point=points)


def detect_isolation(values: Sequence[float]) -> AnomalyResult:
    """Z-score scaled by the distance to sorted neighbours; flags above a fixed multiplier."""
    series = _as_floats(values)
    spread = sk.population_stddev(series)
    if spread == 0:
        return _build(METHOD_ISOLATION, ISOLATION_MULTIPLIER, series, [0.0] * len(series), ISOLATION_MULTIPLIER)
    zscores = _global_zscores(series)
    ordered = sorted(series)
    scores: List[float] = []
    for value, zscore in zip(series, zscores):
        position = bisect.bisect_left(ordered, value)
        left = ordered[position - 1] if position > 0 else value
        right = ordered[position + 1] if position < len(ordered) - 1 else value
        neighbour_distance = (abs(value - left) + abs(value - right)) / 2
        scores.append(zscore * (1 + neighbour_distance / spread))
    return _build(METHOD_ISOLATION, ISOLATION_MULTIPLIER, series, scores, ISOLATION_MULTIPLIER)


def detect_time_series(
    values: Sequence[float],
    window: int = DEFAULT_WINDOW,
    threshold: float = DEFAULT_THRESHOLD,
) -> AnomalyResult:
    """Z-score against a sliding local window of half-width ``window``."""
    series = _as_floats(values)
    if window < 1:
        raise ValidationError("window must be a positive integer")
    if len(series) < window:
        return detect_zscore(series, threshold)
    scores: List[float] = []
    for index, value in enumerate(series):
        local = series[max(0, index - window): min(len(series), index + window + 1)]
        spread = sk.population_stddev(local)
        scores.append(0.0 if spread == 0 else abs(value - sk.mean(local)) / spread)
    return _build(METHOD_TIME_SERIES, threshold, series, scores, threshold)


def detect(values: Sequence[float], threshold: float = DEFAULT_THRESHOLD, method: str = METHOD_ZSCORE) -> AnomalyResult:
    """Score every point with the requested method."""
    resolved = _METHOD_ALIASES.get((method or "").strip().lower())
    if resolved is None:
        raise ValidationError(f"Unknown anomaly detection method: {method}")
    if resolved == METHOD_IQR:
        result = detect_iqr(values)
    elif resolved == METHOD_ISOLATION:
        result = detect_isolation(values)
    else:
        result = detect_zscore(values, threshold)
    logger.debug(
        "Anomaly detection method=%s points=%d anomalies=%d",
        result.method,
        len(result.per_point),
        result.anomaly_count,
    )
    return result


__all__ = [
    "AnomalyResult",
    "DEFAULT_THRESHOLD",
    "PointScore",
    "detect",
    "detect_iqr",
    "detect_isolation",
    "detect_time_series",
    "detect_zscore",
]
