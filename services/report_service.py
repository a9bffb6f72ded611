"""Owner-facing report use cases: download, email, listing and deletion."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.config import ServiceSettings
from core.logging import get_logger
from models.report import STATUS_COMPLETED
from services import notification_service, report_repository
from services.insights import filter_low_confidence, prioritize
from services.report_errors import (
    EmailDeliveryError,
    NotFoundError,
    ReportPermissionError,
    ReportUnavailableError,
)
from services.report_lifecycle import ReportSnapshot, utcnow
from services.report_policy import build_file_name, format_file_size, mime_type, validate_email_message
from services.report_repository import ReportFilters
from services.report_retention import remove_artifact

logger = get_logger(__name__)


@dataclass(frozen=True)
class DownloadTicket:
    file_path: str
    file_name: str
    mime_type: str
    file_size: int


def _load_owned(report_id: Any, user_id: str, session: Optional[Session]) -> ReportSnapshot:
    report = report_repository.get_report(report_id, session=session)
    if report is None:
        raise NotFoundError(f"Report {report_id} not found")
    if report.user_id != user_id:
        raise ReportPermissionError("You do not have access to this report")
    return report


def _ensure_available(report: ReportSnapshot) -> str:
    if report.status != STATUS_COMPLETED:
        raise ReportUnavailableError(f"Report is not available (status {report.status})")
    if report.is_expired(utcnow()):
        raise ReportUnavailableError("Report has expired")
    if not report.file_path or not Path(report.file_path).is_file():
        raise ReportUnavailableError("Report file does not exist")
    return report.file_path


def _created_millis(report: ReportSnapshot) -> int:
    return int(report.created_at.timestamp() * 1000) if report.created_at else 0


def get_owned_report(report_id: Any, user_id: str, *, session: Optional[Session] = None) -> ReportSnapshot:
    return _load_owned(report_id, user_id, session)


def download_report(report_id: Any, user_id: str, *, session: Optional[Session] = None) -> DownloadTicket:
    """Check ownership and availability, then count the download."""
    report = _load_owned(report_id, user_id, session)
    file_path = _ensure_available(report)
    if not report_repository.increment_download_count(report.id, session=session):
        raise ReportUnavailableError("Report is no longer available")
    return DownloadTicket(
        file_path=file_path,
        file_name=build_file_name(report.type, report.format, _created_millis(report)),
        mime_type=mime_type(report.format),
        file_size=int(report.file_size or 0),
    )


def email_report(
    report_id: Any,
    user_id: str,
    email_to: str,
    *,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    settings: Optional[ServiceSettings] = None,
    session: Optional[Session] = None,
) -> notification_service.NotificationResult:
    validate_email_message(email_to, subject, message)
    report = _load_owned(report_id, user_id, session)
    _ensure_available(report)
    result = notification_service.send_report_email(
        report,
        email_to,
        subject=subject,
        message=message,
        settings=settings,
    )
    if not result.ok:
        raise EmailDeliveryError(f"Failed to send email: {result.error}")
    return result


def list_reports(
    user_id: str,
    *,
    filters: Optional[ReportFilters] = None,
    page: int = 1,
    limit: int = 20,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    reports, total = report_repository.list_reports(
        user_id,
        filters=filters,
        page=page,
        limit=limit,
        session=session,
    )
    limit = max(1, min(int(limit), report_repository.MAX_PAGE_SIZE))
    return {
        "reports": reports,
        "total": total,
        "page": max(1, int(page)),
        "limit": limit,
        "totalPages": (total + limit - 1) // limit,
    }


def delete_report(report_id: Any, user_id: str, *, session: Optional[Session] = None) -> bool:
    """Owner-only removal of the row and its artifact."""
    report = _load_owned(report_id, user_id, session)
    deleted = report_repository.delete_report(report.id, session=session)
    if deleted:
        remove_artifact(report.file_path)
        logger.info("Report %s deleted by owner.", report.id)
    return deleted


def describe(report: ReportSnapshot, *, confident_only: bool = False) -> Dict[str, Any]:
    """Read model for API responses; insights are returned in priority order.

    With ``confident_only`` insights below the 0.6 confidence floor are left out.
    """
    metadata = report.metadata or {}
    insights = metadata.get("insights") or []
    if confident_only:
        insights = filter_low_confidence(insights)
    return {
        "id": str(report.id),
        "userId": report.user_id,
        "type": report.type,
        "format": report.format,
        "status": report.status,
        "title": metadata.get("title"),
        "description": metadata.get("description"),
        "recordCount": metadata.get("recordCount"),
        "insights": [dict(item) for item in prioritize(insights)],
        "kpiSuggestions": list(metadata.get("kpiSuggestions") or []),
        "dataQuality": metadata.get("dataQuality"),
        "downloadUrl": report.download_url if report.status == STATUS_COMPLETED else None,
        "fileSize": report.file_size,
        "fileSizeLabel": format_file_size(report.file_size) if report.file_size else None,
        "error": report.error,
        "downloadCount": report.download_count,
        "processingMs": report.processing_ms,
        "createdAt": report.created_at,
        "completedAt": report.completed_at,
        "expiresAt": report.expires_at,
    }


def summarize_reports(reports: List[ReportSnapshot]) -> List[Dict[str, Any]]:
    return [describe(report) for report in reports]


__all__ = [
    "DownloadTicket",
    "delete_report",
    "describe",
    "download_report",
    "email_report",
    "get_owned_report",
    "list_reports",
    "summarize_reports",
]
