"""Insight records attached to report metadata and their read-time projections."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

INSIGHT_KINDS = ("anomaly", "forecast", "correlation", "trend", "suggestion")
_PRIORITY = {kind: rank for rank, kind in enumerate(INSIGHT_KINDS)}
LOW_CONFIDENCE_THRESHOLD = 0.6


@dataclass
class Insight:
    kind: str
    title: str
    description: str
    confidence: float
    actionable: bool = False
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind not in _PRIORITY:
            raise ValueError(f"Unknown insight kind: {self.kind}")
        self.confidence = max(0.0, min(1.0, float(self.confidence)))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "actionable": self.actionable,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "runId": self.run_id,
        }


def prioritize(insights: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Kind order (anomaly first, suggestion last), then confidence descending.

    Returns a new list; the stored order is left untouched.
    """
    return sorted(
        insights,
        key=lambda item: (_PRIORITY.get(str(item.get("type")), len(_PRIORITY)), -float(item.get("confidence", 0.0))),
    )


def filter_low_confidence(
    insights: Iterable[Mapping[str, Any]],
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> List[Mapping[str, Any]]:
    return [item for item in insights if float(item.get("confidence", 0.0)) >= threshold]


def replace_run(
    existing: Sequence[Mapping[str, Any]],
    fresh: Sequence[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Drop analysis-generated insights from earlier attempts and append this run's."""
    kept = [dict(item) for item in existing if not item.get("runId")]
    return kept + [dict(item) for item in fresh]


__all__ = [
    "INSIGHT_KINDS",
    "Insight",
    "LOW_CONFIDENCE_THRESHOLD",
    "filter_low_confidence",
    "prioritize",
    "replace_run",
]
