"""Hand report and analysis jobs to the Celery broker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from celery.exceptions import CeleryError
from kombu.exceptions import KombuError

from core.config import QueueSettings
from core.logging import get_logger
from services.report_errors import DispatchFailure
from services.report_metrics import record_dispatch

logger = get_logger(__name__)

RENDER_TASK = "reports.render"
ANALYSIS_TASK = "reports.analyze"
PURGE_TASK = "reports.purge_expired"

# Result states that prove a job with the same id was already accepted by a worker.
_KNOWN_JOB_STATES = frozenset({"STARTED", "PROGRESS", "RETRY", "SUCCESS"})
_BROKER_ERRORS = (KombuError, CeleryError, OSError)


@dataclass(frozen=True)
class EnqueueOptions:
    idempotency_key: str
    max_attempts: int
    backoff_seconds: int
    backoff_max_seconds: int = 300


def render_job_options(report_id: Any, settings: QueueSettings) -> EnqueueOptions:
    return EnqueueOptions(
        idempotency_key=str(report_id),
        max_attempts=settings.report_max_attempts,
        backoff_seconds=settings.report_backoff_seconds,
        backoff_max_seconds=settings.backoff_max_seconds,
    )


def analysis_job_options(report_id: Any, settings: QueueSettings) -> EnqueueOptions:
    return EnqueueOptions(
        idempotency_key=f"ml-{report_id}",
        max_attempts=settings.analysis_max_attempts,
        backoff_seconds=settings.analysis_backoff_seconds,
        backoff_max_seconds=settings.backoff_max_seconds,
    )


class JobDispatcher:
    """Publishes jobs to named queues; one task per queue."""

    def __init__(self, app: Any = None, settings: Optional[QueueSettings] = None) -> None:
        if app is None:
            from workers.celery_app import app as celery_app

            app = celery_app
        self._app = app
        self._settings = settings or QueueSettings.load()
        self._tasks: Dict[str, str] = {
            self._settings.report_queue: RENDER_TASK,
            self._settings.analysis_queue: ANALYSIS_TASK,
        }

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    def task_for(self, queue_name: str) -> str:
        try:
            return self._tasks[queue_name]
        except KeyError as exc:
            raise DispatchFailure(f"Unknown queue: {queue_name}") from exc

    def queue_depth(self, queue_name: str) -> int:
        """Messages waiting in ``queue_name`` according to the broker."""
        try:
            with self._app.connection_for_write() as connection:
                with connection.channel() as channel:
                    declared = channel.queue_declare(queue=queue_name, passive=True)
        except _BROKER_ERRORS as exc:
            raise DispatchFailure(f"Queue {queue_name} unavailable: {exc}") from exc
        return int(getattr(declared, "message_count", 0) or 0)

    def ensure_capacity(self, queue_name: str) -> None:
        limit = self._settings.max_queue_depth
        if limit <= 0:
            return
        depth = self.queue_depth(queue_name)
        if depth >= limit:
            record_dispatch(queue_name, "saturated")
            raise DispatchFailure(f"Queue {queue_name} is saturated ({depth} waiting, limit {limit}).")

    def _already_accepted(self, job_id: str) -> bool:
        try:
            state = self._app.AsyncResult(job_id).state
        except Exception as exc:  # result backend lookups are advisory
            logger.debug("Job state lookup failed for %s: %s", job_id, exc)
            return False
        return state in _KNOWN_JOB_STATES

    def enqueue(self, queue_name: str, payload: Mapping[str, Any], options: EnqueueOptions) -> str:
        """Publish ``payload`` and return the job id (the idempotency key)."""
        task_name = self.task_for(queue_name)
        job_id = options.idempotency_key
        if self._already_accepted(job_id):
            logger.info("Job %s already accepted on %s; not enqueuing again.", job_id, queue_name)
            record_dispatch(queue_name, "duplicate")
            return job_id
        try:
            self._app.tasks[task_name].apply_async(
                kwargs={
                    "payload": dict(payload),
                    "max_attempts": options.max_attempts,
                    "backoff_seconds": options.backoff_seconds,
                    "backoff_max_seconds": options.backoff_max_seconds,
                },
                queue=queue_name,
                task_id=job_id,
            )
        except _BROKER_ERRORS as exc:
            record_dispatch(queue_name, "error")
            logger.error("Failed to enqueue %s on %s: %s", job_id, queue_name, exc, exc_info=True)
            raise DispatchFailure(f"Could not enqueue job {job_id} on {queue_name}: {exc}") from exc
        record_dispatch(queue_name, "accepted")
        logger.info("Enqueued %s on %s (task=%s).", job_id, queue_name, task_name)
        return job_id


__all__ = [
    "ANALYSIS_TASK",
    "EnqueueOptions",
    "JobDispatcher",
    "PURGE_TASK",
    "RENDER_TASK",
    "analysis_job_options",
    "render_job_options",
]
