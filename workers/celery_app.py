from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from core.config import QueueSettings
from core.env import env_int, env_str

QUEUE_SETTINGS = QueueSettings.load()
CELERY_TIMEZONE = env_str("CELERY_TIMEZONE", "UTC") or "UTC"
RETENTION_SWEEP_HOUR = env_int("RETENTION_SWEEP_HOUR", 3, minimum=0, maximum=23)

app = Celery(
    "reports",
    broker=QUEUE_SETTINGS.broker_url,
    backend=QUEUE_SETTINGS.result_backend,
    include=["workers.tasks"],
)

app.conf.update(
    task_track_started=True,
    timezone=CELERY_TIMEZONE,
    enable_utc=True,
    task_default_queue=QUEUE_SETTINGS.report_queue,
    task_queues=(
        Queue(QUEUE_SETTINGS.report_queue),
        Queue(QUEUE_SETTINGS.analysis_queue),
    ),
    task_routes={
        "reports.render": {"queue": QUEUE_SETTINGS.report_queue},
        "reports.analyze": {"queue": QUEUE_SETTINGS.analysis_queue},
        "reports.purge_expired": {"queue": QUEUE_SETTINGS.report_queue},
    },
    task_annotations={
        "reports.render": {"rate_limit": QUEUE_SETTINGS.report_rate_limit},
        "reports.analyze": {"rate_limit": QUEUE_SETTINGS.analysis_rate_limit},
    },
    # At-least-once: unacked jobs return to the queue after a worker crash or the visibility timeout.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    broker_transport_options={"visibility_timeout": QUEUE_SETTINGS.visibility_timeout_seconds},
    result_expires=QUEUE_SETTINGS.visibility_timeout_seconds * 24,
    beat_schedule={
        "reports-purge-expired": {
            "task": "reports.purge_expired",
            "schedule": crontab(hour=RETENTION_SWEEP_HOUR, minute=0),
        },
    },
)
