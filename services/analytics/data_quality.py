"""Completeness, accuracy and consistency scoring over homogeneous record sets."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from services.analytics import stats_kernel as sk
from services.analytics.field_rules import DEFAULT_RULE_TABLE, FieldRuleTable, classify_value
from services.analytics.records import Record, field_names, is_empty, numeric_values

OUTLIER_MIN_SAMPLES = 10
IQR_FACTOR = 1.5


@dataclass(frozen=True)
class DataQualityMetrics:
    completeness: float = 0.0
    accuracy: float = 0.0
    consistency: float = 0.0
    outliers: int = 0
    missing_values: int = 0
    duplicates: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "completeness": self.completeness,
            "accuracy": self.accuracy,
            "consistency": self.consistency,
            "outliers": self.outliers,
            "missingValues": self.missing_values,
            "duplicates": self.duplicates,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DataQualityMetrics":
        return cls(
            completeness=float(payload.get("completeness", 0.0)),
            accuracy=float(payload.get("accuracy", 0.0)),
            consistency=float(payload.get("consistency", 0.0)),
            outliers=int(payload.get("outliers", 0)),
            missing_values=int(payload.get("missingValues", 0)),
            duplicates=int(payload.get("duplicates", 0)),
        )


def _count_outliers(records: Sequence[Record], fields: Iterable[str]) -> int:
    total = 0
    for field in fields:
        values = numeric_values(records, field)
        if len(values) <= OUTLIER_MIN_SAMPLES:
            continue
        q1 = sk.quantile(values, 0.25)
        q3 = sk.quantile(values, 0.75)
        spread = q3 - q1
        lower = q1 - IQR_FACTOR * spread
        upper = q3 + IQR_FACTOR * spread
        total += sum(1 for value in values if value < lower or value > upper)
    return total


def _fingerprint(record: Record) -> str:
    return json.dumps(record, sort_keys=True, default=str)


def _count_duplicates(records: Sequence[Record]) -> int:
    seen = set()
    duplicates = 0
    for record in records:
        key = _fingerprint(record)
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates


def score(
    records: Sequence[Record],
    fields: Optional[Iterable[str]] = None,
    *,
    rules: FieldRuleTable = DEFAULT_RULE_TABLE,
) -> DataQualityMetrics:
    """Compute quality metrics; an empty record set scores zero everywhere."""
    if not records:
        return DataQualityMetrics()
    columns = field_names(records, fields)
    if not columns:
        return DataQualityMetrics(duplicates=_count_duplicates(records))

    row_count = len(records)
    total_cells = row_count * len(columns)
    filled = 0
    valid = 0
    type_counts: Dict[str, Counter] = {field: Counter() for field in columns}
    for record in records:
        for field in columns:
            value = record.get(field)
            if not is_empty(value):
                filled += 1
            if rules.is_valid(field, value):
                valid += 1
            type_counts[field][classify_value(value)] += 1

    consistency = sum(
        max(counts.values()) / row_count * 100.0 for counts in type_counts.values()
    ) / len(columns)

    return DataQualityMetrics(
        completeness=filled / total_cells * 100.0,
        accuracy=valid / total_cells * 100.0,
        consistency=consistency,
        outliers=_count_outliers(records, columns),
        missing_values=total_cells - filled,
        duplicates=_count_duplicates(records),
    )


def quality_grade(percentage: float) -> str:
    if percentage >= 95:
        return "excellent"
    if percentage >= 80:
        return "good"
    if percentage >= 60:
        return "fair"
    return "poor"


def recommendations(metrics: DataQualityMetrics, row_count: int) -> List[str]:
    items: List[str] = []
    if metrics.completeness < 95:
        items.append("Review and fill in missing values")
    if metrics.accuracy < 90:
        items.append("Validate data formats (emails, dates, numbers)")
    if metrics.duplicates > 0:
        items.append("Remove duplicate records")
    if metrics.outliers > row_count * 0.05:
        items.append("Investigate outliers to decide whether they are errors or valid cases")
    return items


def build_quality_report(metrics: DataQualityMetrics, row_count: int) -> str:
    """Plain text summary of a quality snapshot with follow-up recommendations."""
    lines = [
        "Data quality analysis:",
        f"- Completeness: {metrics.completeness:.2f}% ({quality_grade(metrics.completeness)})",
        f"  {metrics.missing_values} missing values" if metrics.missing_values else "  No missing values",
        f"- Accuracy: {metrics.accuracy:.2f}% ({quality_grade(metrics.accuracy)})",
        f"- Consistency: {metrics.consistency:.2f}% ({quality_grade(metrics.consistency)})",
        "- Integrity:",
        f"  {metrics.duplicates} duplicate records" if metrics.duplicates else "  No duplicates",
        f"  {metrics.outliers} outliers detected" if metrics.outliers else "  No significant outliers",
    ]
    advice = recommendations(metrics, row_count)
    if advice:
        lines.append("")
        lines.append("Recommendations:")
        lines.extend(f"- {item}" for item in advice)
    else:
        lines.append("")
        lines.append("Data quality is excellent. No corrective action required.")
    return "\n".join(lines)


__all__ = [
    "DataQualityMetrics",
    "build_quality_report",
    "quality_grade",
    "recommendations",
    "score",
]
