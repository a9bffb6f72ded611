"""Format policy and presentation helpers for reports."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.config import StorageSettings
from models.report import REPORT_FORMATS, REPORT_TYPES
from services.report_errors import ValidationError

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 500
EMAIL_SUBJECT_MAX_LENGTH = 200
EMAIL_MESSAGE_MAX_LENGTH = 1000

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FILE_EXTENSIONS: Dict[str, str] = {
    "PDF": "pdf",
    "EXCEL": "xlsx",
    "CSV": "csv",
    "HTML": "html",
    "JSON": "json",
}

MIME_TYPES: Dict[str, str] = {
    "PDF": "application/pdf",
    "EXCEL": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "CSV": "text/csv",
    "HTML": "text/html",
    "JSON": "application/json",
}

_BASE_SIZE = {"EXCEL": 50000, "CSV": 1000, "PDF": 100000, "HTML": 5000, "JSON": 2000}
_BYTES_PER_CELL = {"EXCEL": 50, "CSV": 20, "PDF": 100, "HTML": 30, "JSON": 40}


@dataclass
class ReportRequest:
    """Caller supplied description of the report to build."""

    user_id: str
    type: str
    format: str
    title: str
    description: Optional[str] = None
    columns: Optional[List[str]] = None
    chart_config: Optional[Dict[str, Any]] = None
    filters: Optional[Dict[str, Any]] = None
    data_source: Optional[str] = None
    email_to: Optional[str] = None
    analysis_enabled: bool = False
    analysis_flags: Dict[str, bool] = field(default_factory=dict)


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(_EMAIL_PATTERN.match(value or ""))


def normalize_format(value: str) -> str:
    normalized = (value or "").strip().upper()
    if normalized not in REPORT_FORMATS:
        raise ValidationError(f"Invalid report format: {value}")
    return normalized


def normalize_type(value: str) -> str:
    normalized = (value or "").strip().upper()
    if normalized not in REPORT_TYPES:
        raise ValidationError(f"Invalid report type: {value}")
    return normalized


def max_rows(report_format: str, settings: Optional[StorageSettings] = None) -> int:
    limits = (settings or StorageSettings.load()).max_rows
    return limits[normalize_format(report_format)]


def validate_request(
    request: ReportRequest,
    records: Sequence[Mapping[str, Any]],
    *,
    settings: Optional[StorageSettings] = None,
) -> None:
    """Reject malformed requests before anything is persisted or enqueued."""
    if not request.user_id or not request.user_id.strip():
        raise ValidationError("User ID is required")
    request.type = normalize_type(request.type)
    request.format = normalize_format(request.format)
    title = (request.title or "").strip()
    if not title:
        raise ValidationError("Report title is required")
    if len(request.title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Report title must be at most {TITLE_MAX_LENGTH} characters")
    if request.description and len(request.description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    if request.email_to and not is_valid_email(request.email_to):
        raise ValidationError("Invalid email address")
    if not records:
        raise ValidationError("Data is required")
    if any(not isinstance(record, Mapping) for record in records):
        raise ValidationError("Every record must be an object")
    limit = max_rows(request.format, settings)
    if len(records) > limit:
        raise ValidationError(f"{request.format} reports support at most {limit} rows (got {len(records)})")


def validate_email_message(email_to: str, subject: Optional[str], message: Optional[str]) -> None:
    if not is_valid_email(email_to):
        raise ValidationError("Invalid email address")
    if subject and len(subject) > EMAIL_SUBJECT_MAX_LENGTH:
        raise ValidationError(f"Subject must be at most {EMAIL_SUBJECT_MAX_LENGTH} characters")
    if message and len(message) > EMAIL_MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message must be at most {EMAIL_MESSAGE_MAX_LENGTH} characters")


def file_extension(report_format: str) -> str:
    return FILE_EXTENSIONS[normalize_format(report_format)]


def mime_type(report_format: str) -> str:
    return MIME_TYPES[normalize_format(report_format)]


def build_file_name(report_type: str, report_format: str, created_millis: int) -> str:
    return f"{report_type.lower()}_{created_millis}.{file_extension(report_format)}"


def build_download_url(api_base_url: str, report_id: Any) -> str:
    return f"{api_base_url.rstrip('/')}/api/v1/reports/{report_id}/download"


def estimate_size(row_count: int, column_count: int, report_format: str) -> int:
    key = normalize_format(report_format)
    return _BASE_SIZE[key] + row_count * column_count * _BYTES_PER_CELL[key]


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.2f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.2f} MB"
    return f"{size / 1024 ** 3:.2f} GB"


def build_summary(report: Any) -> str:
    """Short plain-text digest used in email bodies and logs."""
    metadata = report.metadata or {}
    lines = [
        f"Report: {metadata.get('title', '')}",
        f"Type: {report.type}, Format: {report.format}",
    ]
    record_count = metadata.get("recordCount")
    if record_count:
        lines.append(f"Records: {int(record_count):,}")
    insights = metadata.get("insights") or []
    if insights:
        lines.append("")
        lines.append(f"Insights ({len(insights)}):")
        for insight in insights[:3]:
            lines.append(f"- {insight.get('title')} (confidence {float(insight.get('confidence', 0)) * 100:.1f}%)")
    kpis = metadata.get("kpiSuggestions") or []
    if kpis:
        lines.append("")
        lines.append(f"Suggested KPIs ({len(kpis)}):")
        for kpi in kpis[:3]:
            lines.append(f"- {kpi.get('name')} ({kpi.get('importance')})")
    return "\n".join(lines)


__all__ = [
    "FILE_EXTENSIONS",
    "MIME_TYPES",
    "ReportRequest",
    "build_download_url",
    "build_file_name",
    "build_summary",
    "estimate_size",
    "file_extension",
    "format_file_size",
    "is_valid_email",
    "max_rows",
    "mime_type",
    "normalize_format",
    "normalize_type",
    "validate_email_message",
    "validate_request",
]
