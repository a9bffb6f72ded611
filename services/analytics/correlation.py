"""Pairwise Pearson correlation discovery among numeric fields."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Sequence

from services.analytics import stats_kernel as sk
from services.analytics.records import Record, field_names, is_number, is_numeric_field

MIN_ABS_CORRELATION = 0.5
MIN_PAIRED_SAMPLES = 4
MAX_RESULTS = 3


@dataclass(frozen=True)
class Correlation:
    field1: str
    field2: str
    correlation: float
    samples: int

    @property
    def strength(self) -> str:
        magnitude = abs(self.correlation)
        if magnitude > 0.8:
            return "strong"
        if magnitude > 0.6:
            return "moderate"
        return "weak"

    @property
    def direction(self) -> str:
        return "positive" if self.correlation > 0 else "negative"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "field1": self.field1,
            "field2": self.field2,
            "correlation": self.correlation,
            "strength": self.strength,
            "direction": self.direction,
            "samples": self.samples,
        }


def _paired(records: Sequence[Record], left: str, right: str) -> tuple[List[float], List[float]]:
    xs: List[float] = []
    ys: List[float] = []
    for record in records:
        a = record.get(left)
        b = record.get(right)
        if is_number(a) and is_number(b):
            xs.append(float(a))
            ys.append(float(b))
    return xs, ys


def find_correlations(
    records: Sequence[Record],
    fields: Optional[Iterable[str]] = None,
    *,
    limit: int = MAX_RESULTS,
) -> List[Correlation]:
    """Return the strongest pairs (|r| >= 0.5 over at least 4 paired rows), strongest first."""
    numeric = [field for field in field_names(records, fields) if is_numeric_field(records, field)]
    found: List[Correlation] = []
    for left, right in combinations(numeric, 2):
        xs, ys = _paired(records, left, right)
        if len(xs) < MIN_PAIRED_SAMPLES:
            continue
        r = sk.pearson(xs, ys)
        if abs(r) >= MIN_ABS_CORRELATION:
            found.append(Correlation(field1=left, field2=right, correlation=r, samples=len(xs)))
    found.sort(key=lambda item: abs(item.correlation), reverse=True)
    return found[:limit]


__all__ = ["Correlation", "find_correlations"]
