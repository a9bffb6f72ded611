"""Celery tasks driving report rendering, analysis and retention."""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from core.config import QueueSettings
from core.logging import get_logger
from database import SessionLocal
from services import dead_letter_service, report_retention
from services.analysis_orchestrator import run_analysis
from services.report_errors import DeadLetterPayload, RenderFailure, TransientJobError
from services.report_metrics import record_error, record_result, record_retry
from workers import render_worker

logger = get_logger(__name__)

QUEUE_SETTINGS = QueueSettings.load()

RETRYABLE_ERRORS = (TransientJobError, SQLAlchemyError)


def _retry_delay(attempt: int, base_seconds: int, max_seconds: int) -> int:
    clamped = max(0, attempt)
    delay = base_seconds * (2 ** clamped)
    return min(delay, max_seconds)


def _progress_reporter(task) -> Callable[[str, int], None]:
    def report(stage: str, progress: int) -> None:
        try:
            task.update_state(state="PROGRESS", meta={"stage": stage, "progress": progress})
        except Exception as exc:  # progress is advisory
            logger.debug("Progress update for %s skipped: %s", getattr(task.request, "id", None), exc)

    return report


def _handle_job_exception(
    task,
    exc: Exception,
    *,
    queue: str,
    payload: Mapping[str, Any],
    max_attempts: int,
    backoff_seconds: int,
    backoff_max_seconds: int,
    on_exhausted: Optional[Callable[[str], Any]] = None,
) -> None:
    """Retry transient failures; dead-letter the job once it cannot succeed."""
    task_name = getattr(task, "name", "report-task")
    retries = getattr(task.request, "retries", 0) or 0
    record_error(task_name, exc)
    if isinstance(exc, RETRYABLE_ERRORS) and retries + 1 < max_attempts:
        countdown = _retry_delay(retries, backoff_seconds, backoff_max_seconds)
        record_retry(task_name)
        logger.warning(
            "%s failed (attempt %s/%s); retrying in %ss: %s",
            task_name,
            retries + 1,
            max_attempts,
            countdown,
            exc,
        )
        raise task.retry(exc=exc, countdown=countdown)

    report_id = payload.get("reportId")
    if on_exhausted is not None:
        try:
            on_exhausted(str(exc))
        except SQLAlchemyError as cleanup_exc:
            logger.error("Failed to finalise report %s after %s: %s", report_id, task_name, cleanup_exc, exc_info=True)

    entry = DeadLetterPayload(
        task_name=task_name,
        queue=queue,
        retries=retries,
        context={key: value for key, value in payload.items() if key != "records"},
        error=str(exc),
        report_id=str(report_id) if report_id else None,
    )
    session = SessionLocal()
    try:
        dead_letter_service.record_dead_letter(session, entry, job_id=getattr(task.request, "id", None))
    except SQLAlchemyError as dlq_exc:
        session.rollback()
        logger.error("Failed to record dead letter for %s: %s", task_name, dlq_exc, exc_info=True)
    finally:
        session.close()
    record_result(task_name, "failure")
    raise exc


@shared_task(name="reports.render", bind=True, max_retries=None)
def render_report(
    self,
    payload: Dict[str, Any],
    max_attempts: int = QUEUE_SETTINGS.report_max_attempts,
    backoff_seconds: int = QUEUE_SETTINGS.report_backoff_seconds,
    backoff_max_seconds: int = QUEUE_SETTINGS.backoff_max_seconds,
) -> Dict[str, Any]:
    try:
        return render_worker.process_render_job(payload, progress=_progress_reporter(self))
    except Exception as exc:
        # Render failures already marked the report; other exhausted errors still need it.
        on_exhausted = None if isinstance(exc, RenderFailure) else (
            lambda error: render_worker.fail_report(payload.get("reportId"), error)
        )
        _handle_job_exception(
            self,
            exc,
            queue=QUEUE_SETTINGS.report_queue,
            payload=payload,
            max_attempts=max_attempts,
            backoff_seconds=backoff_seconds,
            backoff_max_seconds=backoff_max_seconds,
            on_exhausted=on_exhausted,
        )
        raise


@shared_task(name="reports.analyze", bind=True, max_retries=None)
def analyze_report(
    self,
    payload: Dict[str, Any],
    max_attempts: int = QUEUE_SETTINGS.analysis_max_attempts,
    backoff_seconds: int = QUEUE_SETTINGS.analysis_backoff_seconds,
    backoff_max_seconds: int = QUEUE_SETTINGS.backoff_max_seconds,
) -> Dict[str, Any]:
    try:
        return run_analysis(payload, progress=_progress_reporter(self)).as_dict()
    except Exception as exc:
        _handle_job_exception(
            self,
            exc,
            queue=QUEUE_SETTINGS.analysis_queue,
            payload=payload,
            max_attempts=max_attempts,
            backoff_seconds=backoff_seconds,
            backoff_max_seconds=backoff_max_seconds,
        )
        raise


@shared_task(name="reports.purge_expired")
def purge_expired_reports() -> Dict[str, int]:
    return report_retention.purge().as_dict()


__all__ = ["analyze_report", "purge_expired_reports", "render_report"]
