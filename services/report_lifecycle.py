"""Report state machine.

Transitions mutate a detached :class:`ReportSnapshot` and return the field mask
that the repository applies with a compare-and-set on ``status``. The ORM row is
never mutated in place, so the render and analysis workers can update the same
report without overwriting each other's columns.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from core.logging import get_logger
from models.report import (
    STATUS_ANALYZING,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    TERMINAL_STATUSES,
)
from services.report_errors import InvalidTransitionError

logger = get_logger(__name__)

DEFAULT_RETENTION = timedelta(days=7)

ALLOWED_SOURCES: Dict[str, FrozenSet[str]] = {
    STATUS_PROCESSING: frozenset({STATUS_PENDING}),
    STATUS_ANALYZING: frozenset({STATUS_PENDING, STATUS_PROCESSING}),
    STATUS_COMPLETED: frozenset({STATUS_PENDING, STATUS_PROCESSING, STATUS_ANALYZING}),
    STATUS_FAILED: frozenset({STATUS_PENDING, STATUS_PROCESSING, STATUS_ANALYZING}),
}

# Analysis output may land after the render finished; only FAILED reports reject it.
ANALYSIS_WRITABLE: FrozenSet[str] = frozenset(
    {STATUS_PENDING, STATUS_PROCESSING, STATUS_ANALYZING, STATUS_COMPLETED}
)

FieldMask = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on reload)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Artifact:
    file_path: str
    file_size: int
    download_url: str


@dataclass
class ReportSnapshot:
    """Detached copy of a report row used by workers and use cases."""

    id: uuid.UUID
    user_id: str
    type: str
    format: str
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    email_to: Optional[str] = None
    analysis_enabled: bool = False
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    download_url: Optional[str] = None
    error: Optional[str] = None
    download_count: int = 0
    processing_ms: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, report: Any) -> "ReportSnapshot":
        return cls(
            id=report.id,
            user_id=report.user_id,
            type=report.type,
            format=report.format,
            status=report.status,
            metadata=copy.deepcopy(dict(report.metadata_json or {})),
            email_to=report.email_to,
            analysis_enabled=bool(report.analysis_enabled),
            file_path=report.file_path,
            file_size=report.file_size,
            download_url=report.download_url,
            error=report.error,
            download_count=int(report.download_count or 0),
            processing_ms=report.processing_ms,
            created_at=ensure_utc(report.created_at),
            completed_at=ensure_utc(report.completed_at),
            expires_at=ensure_utc(report.expires_at),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def artifact(self) -> Optional[Artifact]:
        if self.status != STATUS_COMPLETED or not self.file_path:
            return None
        return Artifact(self.file_path, int(self.file_size or 0), self.download_url or "")

    @property
    def insights(self) -> List[Dict[str, Any]]:
        return list(self.metadata.get("insights") or [])

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return ensure_utc(self.expires_at) <= (now or utcnow())


def can_transition(current: str, target: str) -> bool:
    return current in ALLOWED_SOURCES.get(target, frozenset())


def _guard(report: ReportSnapshot, target: str) -> None:
    if not can_transition(report.status, target):
        raise InvalidTransitionError(report.status, target)


def mark_processing(report: ReportSnapshot) -> FieldMask:
    """PENDING -> PROCESSING, when the render job starts."""
    _guard(report, STATUS_PROCESSING)
    report.status = STATUS_PROCESSING
    return {"status": STATUS_PROCESSING}


def mark_analyzing(report: ReportSnapshot) -> FieldMask:
    """PENDING|PROCESSING -> ANALYZING, when the analysis job starts."""
    _guard(report, STATUS_ANALYZING)
    report.status = STATUS_ANALYZING
    return {"status": STATUS_ANALYZING}


def mark_completed(
    report: ReportSnapshot,
    artifact: Artifact,
    *,
    now: Optional[datetime] = None,
    retention: timedelta = DEFAULT_RETENTION,
) -> FieldMask:
    """Any non-terminal state -> COMPLETED with the artifact and expiry set."""
    _guard(report, STATUS_COMPLETED)
    completed_at = now or utcnow()
    created_at = ensure_utc(report.created_at) or completed_at
    processing_ms = max(0, int((completed_at - created_at).total_seconds() * 1000))
    mask: FieldMask = {
        "status": STATUS_COMPLETED,
        "file_path": artifact.file_path,
        "file_size": int(artifact.file_size),
        "download_url": artifact.download_url,
        "error": None,
        "completed_at": completed_at,
        "expires_at": completed_at + retention,
        "processing_ms": processing_ms,
    }
    _apply(report, mask)
    return mask


def mark_failed(report: ReportSnapshot, error: str, *, now: Optional[datetime] = None) -> FieldMask:
    """Any non-terminal state -> FAILED.

    ``expires_at`` stays empty; failed rows are removed by the separate
    stale-failure sweep in :mod:`services.report_retention`.
    """
    _guard(report, STATUS_FAILED)
    completed_at = now or utcnow()
    mask: FieldMask = {
        "status": STATUS_FAILED,
        "error": (error or "Unknown error")[:4000],
        "file_path": None,
        "file_size": None,
        "download_url": None,
        "completed_at": completed_at,
    }
    _apply(report, mask)
    return mask


def _apply(report: ReportSnapshot, mask: Mapping[str, Any]) -> None:
    for key, value in mask.items():
        setattr(report, key, value)


def _ensure_analysis_writable(report: ReportSnapshot) -> None:
    if report.status not in ANALYSIS_WRITABLE:
        raise InvalidTransitionError(report.status, "analysis update")


def add_insights(report: ReportSnapshot, insights: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Append insights in order; returns the metadata keys to merge."""
    _ensure_analysis_writable(report)
    merged = report.insights + [dict(item) for item in insights]
    report.metadata["insights"] = merged
    return {"insights": merged}


def add_insight(report: ReportSnapshot, insight: Mapping[str, Any]) -> Dict[str, Any]:
    return add_insights(report, [insight])


def set_data_quality(report: ReportSnapshot, quality: Mapping[str, Any]) -> Dict[str, Any]:
    _ensure_analysis_writable(report)
    report.metadata["dataQuality"] = dict(quality)
    return {"dataQuality": dict(quality)}


def add_kpi_suggestions(report: ReportSnapshot, suggestions: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    _ensure_analysis_writable(report)
    merged = list(report.metadata.get("kpiSuggestions") or []) + [dict(item) for item in suggestions]
    report.metadata["kpiSuggestions"] = merged
    return {"kpiSuggestions": merged}


__all__ = [
    "ALLOWED_SOURCES",
    "ANALYSIS_WRITABLE",
    "Artifact",
    "DEFAULT_RETENTION",
    "FieldMask",
    "ReportSnapshot",
    "add_insight",
    "add_insights",
    "add_kpi_suggestions",
    "can_transition",
    "ensure_utc",
    "mark_analyzing",
    "mark_completed",
    "mark_failed",
    "mark_processing",
    "set_data_quality",
    "utcnow",
]
