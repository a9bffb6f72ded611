"""Prometheus collectors for the report and analysis job pipeline."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Sequence, TypeVar

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

from core.logging import get_logger

logger = get_logger(__name__)

C = TypeVar("C")

_LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)


def _collector(factory: Callable[..., C], name: str, documentation: str, labels: Sequence[str], **kwargs: Any) -> Optional[C]:
    """Register a collector, reusing the existing one when the module is imported twice."""
    try:
        return factory(name, documentation, tuple(labels), **kwargs)
    except ValueError:
        registered = getattr(REGISTRY, "_names_to_collectors", {})
        # Counters are registered under ``name_total`` as well.
        existing = registered.get(name) or registered.get(f"{name}_total")
        if existing is None:
            logger.debug("Collector %s already registered but not found in registry.", name)
        return existing


_RESULT_COUNTER = _collector(
    Counter,
    "report_job_result_total",
    "Report pipeline job outcomes per stage.",
    ("stage", "result"),
)
_ERROR_COUNTER = _collector(
    Counter,
    "report_job_errors_total",
    "Report pipeline failures grouped by stage and exception.",
    ("stage", "exception"),
)
_RETRY_COUNTER = _collector(
    Counter,
    "report_job_retries_total",
    "Celery retries triggered for report tasks.",
    ("task",),
)
_DISPATCH_COUNTER = _collector(
    Counter,
    "report_job_dispatch_total",
    "Jobs handed to the broker, grouped by queue and result.",
    ("queue", "result"),
)
_LATENCY_HISTOGRAM = _collector(
    Histogram,
    "report_job_latency_seconds",
    "Latency distribution for report pipeline stages.",
    ("stage",),
    buckets=_LATENCY_BUCKETS,
)
_LAST_SUCCESS_GAUGE = _collector(
    Gauge,
    "report_job_last_success_timestamp",
    "Unix timestamp of the last successful execution per stage.",
    ("stage",),
)
_DLQ_GAUGE = _collector(
    Gauge,
    "report_dlq_entries",
    "Number of job dead-letter entries grouped by status.",
    ("status",),
)


def record_result(stage: str, result: str) -> None:
    if _RESULT_COUNTER is None:
        return
    normalized = result or "unknown"
    _RESULT_COUNTER.labels(stage=stage, result=normalized).inc()
    if normalized == "success" and _LAST_SUCCESS_GAUGE is not None:
        _LAST_SUCCESS_GAUGE.labels(stage=stage).set(time.time())


def record_error(stage: str, exception: Exception | str) -> None:
    if _ERROR_COUNTER is None:
        return
    if isinstance(exception, Exception):
        exc_name = exception.__class__.__name__
    else:
        exc_name = str(exception) or "UnknownError"
    _ERROR_COUNTER.labels(stage=stage, exception=exc_name).inc()


def record_retry(task_name: str) -> None:
    if _RETRY_COUNTER is not None:
        _RETRY_COUNTER.labels(task=task_name).inc()


def record_dispatch(queue: str, result: str) -> None:
    if _DISPATCH_COUNTER is not None:
        _DISPATCH_COUNTER.labels(queue=queue, result=result).inc()


def observe_latency(stage: str, seconds: float) -> None:
    if _LATENCY_HISTOGRAM is None or seconds < 0:
        return
    _LATENCY_HISTOGRAM.labels(stage=stage).observe(seconds)


def set_dlq_size(status: str, count: int) -> None:
    if _DLQ_GAUGE is not None:
        _DLQ_GAUGE.labels(status=status).set(float(max(0, count)))


__all__ = [
    "observe_latency",
    "record_dispatch",
    "record_error",
    "record_result",
    "record_retry",
    "set_dlq_size",
]
