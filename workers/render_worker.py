"""Render job: encode the records, complete the report and notify collaborators."""

from __future__ import annotations

import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from core.config import ServiceSettings, StorageSettings
from core.logging import get_logger
from models.report import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING
from services import document_encoder, event_publisher, notification_service
from services import report_lifecycle as lifecycle
from services import report_repository
from services.report_errors import InvalidTransitionError, RenderFailure
from services.report_metrics import observe_latency, record_result
from services.report_policy import build_download_url, file_extension

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int], None]

STAGE = "render"


def _noop_progress(_stage: str, _progress: int) -> None:
    return None


def artifact_path(storage_path: str, report_id: Any, report_format: str) -> Path:
    return Path(storage_path) / f"{report_id}.{file_extension(report_format)}"


def _start(report: lifecycle.ReportSnapshot, db: Optional[Session]) -> Optional[lifecycle.ReportSnapshot]:
    """Move a PENDING report to PROCESSING; returns the current snapshot or None to stop."""
    if report.status != STATUS_PENDING:
        # Redelivery, or the analysis job already moved the report to ANALYZING.
        return report
    mask = lifecycle.mark_processing(report)
    if report_repository.apply_changes(report.id, mask, expected_statuses={STATUS_PENDING}, session=db):
        return report
    current = report_repository.get_report(report.id, session=db)
    if current is None or current.is_terminal:
        return None
    return current


def fail_report(report_id: Any, error: str, *, session: Optional[Session] = None) -> bool:
    """Mark the report FAILED unless it already reached a terminal state."""
    report = report_repository.get_report(report_id, session=session)
    if report is None or report.is_terminal:
        return False
    try:
        mask = lifecycle.mark_failed(report, error)
    except InvalidTransitionError:
        return False
    applied = report_repository.apply_changes(
        report.id,
        mask,
        expected_statuses=lifecycle.ALLOWED_SOURCES[STATUS_FAILED],
        session=session,
    )
    if applied:
        logger.warning("Report %s marked FAILED: %s", report.id, error)
    return applied


def process_render_job(
    payload: Mapping[str, Any],
    *,
    session: Optional[Session] = None,
    storage: Optional[StorageSettings] = None,
    services: Optional[ServiceSettings] = None,
    progress: ProgressCallback = _noop_progress,
    encoder: Callable[..., int] = document_encoder.encode,
) -> Dict[str, Any]:
    """Run one render job. Safe to run again for the same report."""
    storage = storage or StorageSettings.load()
    report_id = payload.get("reportId")
    started = time.perf_counter()

    report = report_repository.get_report(report_id, session=session)
    if report is None:
        logger.warning("Render job for unknown report %s dropped.", report_id)
        return {"reportId": report_id, "status": "missing"}
    if report.is_terminal:
        logger.info("Report %s already %s; render skipped.", report.id, report.status)
        return {"reportId": str(report.id), "status": report.status}

    report = _start(report, session)
    if report is None:
        logger.info("Report %s reached a terminal state before rendering; skipped.", report_id)
        return {"reportId": report_id, "status": "skipped"}

    progress("generating", 10)
    records = list(payload.get("records") or [])
    metadata = dict(report.metadata)
    metadata.update(payload.get("metadata") or {})
    path = artifact_path(storage.storage_path, report.id, report.format)
    try:
        size = encoder(report.format, records, metadata, path)
    except RenderFailure as exc:
        fail_report(report.id, exc.message, session=session)
        record_result(STAGE, "failure")
        raise

    progress("uploading", 80)
    artifact = lifecycle.Artifact(str(path), size, build_download_url(storage.api_base_url, report.id))
    mask = lifecycle.mark_completed(report, artifact, retention=timedelta(days=storage.retention_days))
    if not report_repository.apply_changes(
        report.id,
        mask,
        expected_statuses=lifecycle.ALLOWED_SOURCES[STATUS_COMPLETED],
        session=session,
    ):
        path.unlink(missing_ok=True)
        logger.warning("Report %s left the render path concurrently; artifact discarded.", report.id)
        return {"reportId": str(report.id), "status": "skipped"}

    progress("completed", 90)
    services = services or ServiceSettings.load()
    email_to = payload.get("emailTo") or report.email_to
    if email_to:
        result = notification_service.send_report_email(report, email_to, settings=services)
        if not result.ok:
            logger.warning("Report %s completed but email delivery failed: %s", report.id, result.error)

    progress("done", 100)
    event_publisher.publish_report_completed(report, settings=services)

    elapsed = time.perf_counter() - started
    observe_latency(STAGE, elapsed)
    record_result(STAGE, "success")
    logger.info("Report %s rendered as %s (%d bytes) in %.2fs.", report.id, report.format, size, elapsed)
    return {"reportId": str(report.id), "status": report.status, "fileSize": size}


__all__ = ["artifact_path", "fail_report", "process_render_job"]
