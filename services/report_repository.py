"""Persistence helpers for business reports.

All writes are partial: status changes go through a compare-and-set on the
current status, and analysis output is merged into the metadata document under
a row lock. No helper writes back a whole report from a stale copy.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.logging import get_logger
from database import SessionLocal
from models.report import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING, Report
from services.report_lifecycle import FieldMask, ReportSnapshot, utcnow
from services.report_policy import ReportRequest

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class ReportFilters:
    type: Optional[str] = None
    status: Optional[str] = None
    format: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def _get_session(session: Optional[Session]) -> tuple[Session, bool]:
    if session is not None:
        return session, False
    return SessionLocal(), True


def coerce_report_id(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def create_report(
    request: ReportRequest,
    *,
    record_count: int,
    report_id: Optional[uuid.UUID] = None,
    session: Optional[Session] = None,
) -> ReportSnapshot:
    """Persist a PENDING report and return its snapshot."""
    db, managed = _get_session(session)
    try:
        metadata: Dict[str, Any] = {
            "title": request.title.strip(),
            "description": request.description,
            "columns": list(request.columns or []),
            "chartConfig": request.chart_config,
            "filters": request.filters or {},
            "dataSource": request.data_source,
            "recordCount": record_count,
            "insights": [],
            "kpiSuggestions": [],
        }
        record = Report(
            id=report_id or uuid.uuid4(),
            user_id=request.user_id,
            type=request.type,
            format=request.format,
            status=STATUS_PENDING,
            metadata_json=metadata,
            email_to=request.email_to,
            analysis_enabled=bool(request.analysis_enabled),
            download_count=0,
            created_at=utcnow(),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return ReportSnapshot.from_model(record)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def get_report(report_id: Any, *, session: Optional[Session] = None) -> Optional[ReportSnapshot]:
    identifier = coerce_report_id(report_id)
    if identifier is None:
        return None
    db, managed = _get_session(session)
    try:
        record = db.query(Report).populate_existing().filter(Report.id == identifier).first()
        if record is None:
            return None
        return ReportSnapshot.from_model(record)
    finally:
        if managed:
            db.close()


def apply_changes(
    report_id: Any,
    mask: FieldMask,
    *,
    expected_statuses: Iterable[str],
    session: Optional[Session] = None,
) -> bool:
    """Write ``mask`` only if the row is still in one of ``expected_statuses``."""
    identifier = coerce_report_id(report_id)
    if identifier is None or not mask:
        return False
    allowed = list(expected_statuses)
    db, managed = _get_session(session)
    try:
        values = dict(mask)
        values["updated_at"] = utcnow()
        updated = (
            db.query(Report)
            .filter(Report.id == identifier, Report.status.in_(allowed))
            .update(values, synchronize_session=False)
        )
        db.commit()
        if not updated:
            logger.info("Compare-and-set rejected for report %s (expected %s).", identifier, allowed)
        return bool(updated)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def merge_metadata(
    report_id: Any,
    updates: Union[Mapping[str, Any], Callable[[Mapping[str, Any]], Mapping[str, Any]]],
    *,
    allowed_statuses: Iterable[str],
    session: Optional[Session] = None,
) -> bool:
    """Read-merge-write of selected metadata keys under a row lock.

    ``updates`` may be a callable; it receives the locked metadata document and
    returns the keys to overwrite.
    """
    identifier = coerce_report_id(report_id)
    if identifier is None:
        return False
    allowed = set(allowed_statuses)
    db, managed = _get_session(session)
    try:
        row = (
            db.query(Report.status, Report.metadata_json)
            .filter(Report.id == identifier)
            .with_for_update()
            .first()
        )
        if row is None:
            db.rollback()
            return False
        current_status, current_metadata = row
        if current_status not in allowed:
            db.rollback()
            return False
        merged = dict(current_metadata or {})
        merged.update(updates(dict(merged)) if callable(updates) else updates)
        (
            db.query(Report)
            .filter(Report.id == identifier, Report.status.in_(list(allowed)))
            .update({"metadata_json": merged, "updated_at": utcnow()}, synchronize_session=False)
        )
        db.commit()
        return True
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def increment_download_count(report_id: Any, *, session: Optional[Session] = None) -> bool:
    identifier = coerce_report_id(report_id)
    if identifier is None:
        return False
    db, managed = _get_session(session)
    try:
        updated = (
            db.query(Report)
            .filter(Report.id == identifier, Report.status == STATUS_COMPLETED)
            .update({"download_count": Report.download_count + 1}, synchronize_session=False)
        )
        db.commit()
        return bool(updated)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def list_reports(
    user_id: str,
    *,
    filters: Optional[ReportFilters] = None,
    page: int = 1,
    limit: int = 20,
    session: Optional[Session] = None,
) -> Tuple[List[ReportSnapshot], int]:
    """Owner's reports, newest first, with the total count for pagination."""
    filters = filters or ReportFilters()
    page = max(1, int(page))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    db, managed = _get_session(session)
    try:
        query = db.query(Report).populate_existing().filter(Report.user_id == user_id)
        if filters.type:
            query = query.filter(Report.type == filters.type)
        if filters.status:
            query = query.filter(Report.status == filters.status)
        if filters.format:
            query = query.filter(Report.format == filters.format)
        if filters.start_date:
            query = query.filter(Report.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Report.created_at <= filters.end_date)
        total = query.count()
        rows = (
            query.order_by(Report.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return [ReportSnapshot.from_model(row) for row in rows], total
    finally:
        if managed:
            db.close()


def delete_report(report_id: Any, *, session: Optional[Session] = None) -> bool:
    identifier = coerce_report_id(report_id)
    if identifier is None:
        return False
    db, managed = _get_session(session)
    try:
        deleted = db.query(Report).filter(Report.id == identifier).delete(synchronize_session=False)
        db.commit()
        return bool(deleted)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def _delete_matching(db: Session, query) -> List[ReportSnapshot]:
    rows = query.all()
    snapshots = [ReportSnapshot.from_model(row) for row in rows]
    if rows:
        ids = [row.id for row in rows]
        db.query(Report).filter(Report.id.in_(ids)).delete(synchronize_session=False)
    db.commit()
    return snapshots


def delete_expired(now: Optional[datetime] = None, *, session: Optional[Session] = None) -> List[ReportSnapshot]:
    """Remove completed reports whose retention window has passed."""
    cutoff = now or utcnow()
    db, managed = _get_session(session)
    try:
        query = db.query(Report).filter(
            Report.status == STATUS_COMPLETED,
            Report.expires_at.isnot(None),
            Report.expires_at <= cutoff,
        )
        return _delete_matching(db, query)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def delete_failed_before(cutoff: datetime, *, session: Optional[Session] = None) -> List[ReportSnapshot]:
    """Remove failed reports that reached their terminal state before ``cutoff``."""
    db, managed = _get_session(session)
    try:
        query = db.query(Report).filter(
            Report.status == STATUS_FAILED,
            Report.completed_at.isnot(None),
            Report.completed_at <= cutoff,
        )
        return _delete_matching(db, query)
    except Exception:
        db.rollback()
        raise
    finally:
        if managed:
            db.close()


def count_by_user(user_id: str, *, session: Optional[Session] = None) -> int:
    db, managed = _get_session(session)
    try:
        return db.query(func.count(Report.id)).filter(Report.user_id == user_id).scalar() or 0
    finally:
        if managed:
            db.close()


__all__ = [
    "ReportFilters",
    "apply_changes",
    "coerce_report_id",
    "count_by_user",
    "create_report",
    "delete_expired",
    "delete_failed_before",
    "delete_report",
    "get_report",
    "increment_download_count",
    "list_reports",
    "merge_metadata",
]
