"""Helpers for pulling numeric columns out of homogeneous record sets."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

Record = Mapping[str, Any]

NUMERIC_FIELD_RATIO = 0.5


def is_number(value: Any) -> bool:
    """True for finite ints/floats; booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def field_names(records: Sequence[Record], fields: Optional[Iterable[str]] = None) -> List[str]:
    """Explicit field list, or the key set of the first record."""
    if fields is not None:
        return list(fields)
    if not records:
        return []
    return list(records[0].keys())


def numeric_values(records: Iterable[Record], field: str) -> List[float]:
    return [float(record.get(field)) for record in records if is_number(record.get(field))]


def is_numeric_field(records: Sequence[Record], field: str) -> bool:
    """A field is numeric when more than half of its values are finite numbers."""
    if not records:
        return False
    numeric = sum(1 for record in records if is_number(record.get(field)))
    return numeric / len(records) > NUMERIC_FIELD_RATIO


def numeric_columns(
    records: Sequence[Record],
    fields: Optional[Iterable[str]] = None,
) -> Dict[str, List[float]]:
    """Map each numeric field to its numeric values, preserving record order."""
    return {
        field: numeric_values(records, field)
        for field in field_names(records, fields)
        if is_numeric_field(records, field)
    }


__all__ = [
    "NUMERIC_FIELD_RATIO",
    "Record",
    "field_names",
    "is_empty",
    "is_number",
    "is_numeric_field",
    "numeric_columns",
    "numeric_values",
]
