"""Email delivery of report artifacts through the messaging service."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from core.config import ServiceSettings
from core.logging import get_logger
from services.report_policy import build_file_name, build_summary, mime_type

logger = get_logger(__name__)

EMAIL_TEMPLATE_NAME = "report-email"
DEFAULT_MESSAGE = "Your report is ready"


@dataclass
class NotificationResult:
    status: str
    error: Optional[str] = None
    delivered: int = 0
    failed: int = 0
    metadata: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == "delivered"


def build_email_payload(
    report: Any,
    email_to: str,
    content: bytes,
    *,
    subject: Optional[str] = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    metadata = report.metadata or {}
    title = metadata.get("title") or ""
    created_at = report.created_at
    created_millis = int(created_at.timestamp() * 1000) if created_at else 0
    return {
        "to": email_to,
        "subject": subject or f"Report: {title}",
        "templateName": EMAIL_TEMPLATE_NAME,
        "variables": {
            "reportTitle": title,
            "reportType": report.type,
            "recordCount": metadata.get("recordCount"),
            "createdAt": created_at.isoformat() if created_at else None,
            "message": message or DEFAULT_MESSAGE,
            "summary": build_summary(report),
        },
        "attachments": [
            {
                "filename": build_file_name(report.type, report.format, created_millis),
                "content": base64.b64encode(content).decode("ascii"),
                "encoding": "base64",
                "contentType": mime_type(report.format),
            }
        ],
    }


def _post(url: str, payload: Dict[str, Any], *, headers: Dict[str, str], timeout: float) -> NotificationResult:
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        return NotificationResult(status="delivered", delivered=1, metadata={"to": payload.get("to")})
    except httpx.HTTPStatusError as exc:
        logger.warning("Report email rejected by messaging service: %s", exc.response.text)
        error_message = exc.response.text or str(exc)
    except httpx.RequestError as exc:
        logger.warning("Report email request error: %s", exc)
        error_message = str(exc)
    return NotificationResult(status="failed", error=error_message, failed=1, metadata={"to": payload.get("to")})


def send_report_email(
    report: Any,
    email_to: str,
    *,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    settings: Optional[ServiceSettings] = None,
) -> NotificationResult:
    """Send the report artifact as an attachment. Single attempt, never raises."""
    settings = settings or ServiceSettings.load()
    if not report.file_path:
        return NotificationResult(status="failed", error="report has no artifact", failed=1)
    try:
        content = Path(report.file_path).read_bytes()
    except OSError as exc:
        logger.warning("Report email skipped; artifact unreadable for %s: %s", report.id, exc)
        return NotificationResult(status="failed", error=str(exc), failed=1)

    payload = build_email_payload(report, email_to, content, subject=subject, message=message)
    headers = {"Content-Type": "application/json", "x-api-key": settings.messaging_api_key}
    result = _post(
        f"{settings.messaging_url}/api/email/send",
        payload,
        headers=headers,
        timeout=settings.messaging_timeout_seconds,
    )
    if result.ok:
        logger.info("Report %s emailed to %s.", report.id, email_to)
    return result


__all__ = ["NotificationResult", "build_email_payload", "send_report_email"]
