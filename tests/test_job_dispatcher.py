from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from kombu.exceptions import OperationalError

from services.job_dispatcher import (
    ANALYSIS_TASK,
    RENDER_TASK,
    JobDispatcher,
    analysis_job_options,
    render_job_options,
)
from services.report_errors import DispatchFailure


class _FakeTask:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.error = error

    def apply_async(self, **kwargs: Any) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        self.calls.append(kwargs)
        return SimpleNamespace(id=kwargs.get("task_id"))


def _fake_app(state: str = "PENDING", error: Exception | None = None) -> SimpleNamespace:
    render_task = _FakeTask(error)
    analysis_task = _FakeTask(error)
    return SimpleNamespace(
        tasks={RENDER_TASK: render_task, ANALYSIS_TASK: analysis_task},
        AsyncResult=lambda job_id: SimpleNamespace(id=job_id, state=state),
    )


def test_enqueue_uses_report_id_as_job_id(queue_settings) -> None:
    app = _fake_app()
    dispatcher = JobDispatcher(app, queue_settings)

    job_id = dispatcher.enqueue("reports", {"reportId": "r-1"}, render_job_options("r-1", queue_settings))

    assert job_id == "r-1"
    call = app.tasks[RENDER_TASK].calls[0]
    assert call["task_id"] == "r-1"
    assert call["queue"] == "reports"
    assert call["kwargs"]["payload"] == {"reportId": "r-1"}
    assert call["kwargs"]["max_attempts"] == 3
    assert call["kwargs"]["backoff_seconds"] == 5


def test_analysis_jobs_use_prefixed_key_and_own_limits(queue_settings) -> None:
    app = _fake_app()
    dispatcher = JobDispatcher(app, queue_settings)

    job_id = dispatcher.enqueue("ml-analysis", {"reportId": "r-1"}, analysis_job_options("r-1", queue_settings))

    assert job_id == "ml-r-1"
    call = app.tasks[ANALYSIS_TASK].calls[0]
    assert call["kwargs"]["max_attempts"] == 2
    assert call["kwargs"]["backoff_seconds"] == 10


def test_already_accepted_job_is_not_enqueued_twice(queue_settings) -> None:
    app = _fake_app(state="SUCCESS")
    dispatcher = JobDispatcher(app, queue_settings)

    job_id = dispatcher.enqueue("reports", {"reportId": "r-1"}, render_job_options("r-1", queue_settings))

    assert job_id == "r-1"
    assert app.tasks[RENDER_TASK].calls == []


def test_broker_errors_become_dispatch_failures(queue_settings) -> None:
    dispatcher = JobDispatcher(_fake_app(error=OperationalError("broker down")), queue_settings)

    with pytest.raises(DispatchFailure):
        dispatcher.enqueue("reports", {"reportId": "r-1"}, render_job_options("r-1", queue_settings))


def test_unknown_queue_is_rejected(queue_settings) -> None:
    dispatcher = JobDispatcher(_fake_app(), queue_settings)
    with pytest.raises(DispatchFailure):
        dispatcher.task_for("nope")


def test_capacity_check_rejects_saturated_queue(monkeypatch: pytest.MonkeyPatch, queue_settings) -> None:
    from dataclasses import replace

    dispatcher = JobDispatcher(_fake_app(), replace(queue_settings, max_queue_depth=10))
    monkeypatch.setattr(dispatcher, "queue_depth", lambda _queue: 10)

    with pytest.raises(DispatchFailure):
        dispatcher.ensure_capacity("reports")


def test_capacity_check_disabled_by_default(queue_settings) -> None:
    dispatcher = JobDispatcher(_fake_app(), queue_settings)
    dispatcher.ensure_capacity("reports")
