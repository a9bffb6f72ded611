"""Utilities for persisting and maintaining job dead-letter entries."""

from __future__ import annotations

import json
import uuid
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from core.logging import get_logger
from models.job_dead_letter import (
    DLQ_STATUS_PENDING,
    DLQ_STATUS_REQUEUED,
    DLQ_STATUS_RESOLVED,
    JobDeadLetter,
)
from services.report_errors import DeadLetterPayload
from services.report_metrics import set_dlq_size

logger = get_logger(__name__)
_MAX_ERROR_LENGTH = 4000
_KNOWN_STATUSES: Sequence[str] = (DLQ_STATUS_PENDING, DLQ_STATUS_REQUEUED, DLQ_STATUS_RESOLVED)


def _normalize_payload(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    def coerce(value: Any) -> Any:
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Mapping):
            return {str(key): coerce(val) for key, val in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [coerce(item) for item in value]
        return str(value)

    return {str(key): coerce(val) for key, val in payload.items()}


def _refresh_gauge(db: Session) -> None:
    try:
        for status in _KNOWN_STATUSES:
            count = db.query(JobDeadLetter).filter(JobDeadLetter.status == status).count()
            set_dlq_size(status, count)
    except Exception as exc:  # pragma: no cover - metrics best effort
        logger.debug("Failed to refresh DLQ gauge: %s", exc)


def record_dead_letter(
    db: Session,
    entry: DeadLetterPayload,
    *,
    job_id: Optional[str] = None,
) -> JobDeadLetter:
    """Persist a dead-letter entry and return it."""
    normalized_payload = dict(_normalize_payload(entry.context))
    try:
        json.dumps(normalized_payload)
    except TypeError:
        normalized_payload = {"__raw__": str(entry.context)}

    letter = JobDeadLetter(
        task_name=entry.task_name,
        queue=entry.queue,
        job_id=job_id,
        report_id=entry.report_id,
        payload=normalized_payload,
        error=(entry.error or "")[:_MAX_ERROR_LENGTH],
        attempts=max(0, int(entry.retries)),
        status=DLQ_STATUS_PENDING,
    )
    db.add(letter)
    db.commit()
    db.refresh(letter)
    _refresh_gauge(db)
    logger.warning(
        "Recorded job DLQ entry (task=%s queue=%s report=%s attempts=%s).",
        entry.task_name,
        entry.queue,
        entry.report_id,
        entry.retries,
    )
    return letter


def mark_requeued(db: Session, letter: JobDeadLetter) -> None:
    letter.status = DLQ_STATUS_REQUEUED
    db.add(letter)
    db.commit()
    _refresh_gauge(db)


def mark_resolved(db: Session, letter: JobDeadLetter) -> None:
    letter.status = DLQ_STATUS_RESOLVED
    db.add(letter)
    db.commit()
    _refresh_gauge(db)


def list_dead_letters(
    db: Session,
    *,
    status: Optional[str] = None,
    queue: Optional[str] = None,
    limit: int = 50,
) -> Sequence[JobDeadLetter]:
    """Return DLQ entries filtered by status and queue, newest first."""
    query = db.query(JobDeadLetter)
    if status and status.lower() != "all":
        query = query.filter(JobDeadLetter.status == status.lower())
    if queue:
        query = query.filter(JobDeadLetter.queue == queue)
    limit = max(1, min(int(limit), 500))
    return query.order_by(JobDeadLetter.created_at.desc()).limit(limit).all()


def get_dead_letter(db: Session, letter_id: str | uuid.UUID) -> Optional[JobDeadLetter]:
    try:
        identifier = letter_id if isinstance(letter_id, uuid.UUID) else uuid.UUID(str(letter_id))
    except (ValueError, TypeError):
        return None
    return db.get(JobDeadLetter, identifier)


__all__ = [
    "get_dead_letter",
    "list_dead_letters",
    "mark_requeued",
    "mark_resolved",
    "record_dead_letter",
]
