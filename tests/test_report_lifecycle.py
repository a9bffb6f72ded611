from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from models.report import STATUS_ANALYZING, STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING, STATUS_PROCESSING
from services import report_lifecycle as lifecycle
from services.insights import Insight, prioritize, replace_run
from services.report_errors import InvalidTransitionError


def _snapshot(status: str = STATUS_PENDING) -> lifecycle.ReportSnapshot:
    return lifecycle.ReportSnapshot(
        id=uuid.uuid4(),
        user_id="user-1",
        type="SALES",
        format="CSV",
        status=status,
        metadata={"title": "Q1", "insights": []},
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_mark_completed_sets_artifact_and_seven_day_expiry() -> None:
    report = _snapshot(STATUS_PROCESSING)
    now = datetime(2024, 1, 1, 0, 0, 5, tzinfo=timezone.utc)
    mask = lifecycle.mark_completed(report, lifecycle.Artifact("/tmp/r.csv", 42, "http://x/d"), now=now)

    assert mask["status"] == STATUS_COMPLETED
    assert mask["expires_at"] - mask["completed_at"] == timedelta(days=7)
    assert mask["processing_ms"] == 5000
    assert report.status == STATUS_COMPLETED
    assert report.artifact == lifecycle.Artifact("/tmp/r.csv", 42, "http://x/d")


def test_mark_failed_clears_artifact_and_leaves_expiry_unset() -> None:
    report = _snapshot(STATUS_ANALYZING)
    mask = lifecycle.mark_failed(report, "boom")

    assert mask["status"] == STATUS_FAILED
    assert mask["file_path"] is None
    assert "expires_at" not in mask
    assert report.error == "boom"


@pytest.mark.parametrize("terminal", [STATUS_COMPLETED, STATUS_FAILED])
def test_terminal_reports_reject_every_transition(terminal: str) -> None:
    report = _snapshot(terminal)
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_processing(report)
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_analyzing(report)
    with pytest.raises(InvalidTransitionError):
        lifecycle.mark_failed(report, "late")
    assert report.status == terminal


def test_processing_cannot_go_back_to_processing() -> None:
    assert not lifecycle.can_transition(STATUS_PROCESSING, STATUS_PROCESSING)
    assert lifecycle.can_transition(STATUS_PROCESSING, STATUS_ANALYZING)


def test_analysis_updates_allowed_on_completed_but_not_failed() -> None:
    completed = _snapshot(STATUS_COMPLETED)
    assert lifecycle.add_insight(completed, {"type": "trend", "title": "t", "confidence": 0.5})["insights"]

    failed = _snapshot(STATUS_FAILED)
    with pytest.raises(InvalidTransitionError):
        lifecycle.set_data_quality(failed, {"completeness": 10})


def test_insights_are_appended_in_order() -> None:
    report = _snapshot()
    lifecycle.add_insights(report, [{"title": "a"}, {"title": "b"}])
    lifecycle.add_insight(report, {"title": "c"})
    assert [item["title"] for item in report.insights] == ["a", "b", "c"]


def test_insight_confidence_is_clamped_and_kind_checked() -> None:
    assert Insight(kind="trend", title="t", description="d", confidence=1.7).confidence == 1.0
    with pytest.raises(ValueError):
        Insight(kind="rumour", title="t", description="d", confidence=0.5)


def test_prioritize_orders_by_kind_then_confidence() -> None:
    items = [
        {"type": "suggestion", "confidence": 0.99},
        {"type": "forecast", "confidence": 0.5},
        {"type": "anomaly", "confidence": 0.4},
        {"type": "forecast", "confidence": 0.9},
    ]
    ordered = prioritize(items)
    assert [(item["type"], item["confidence"]) for item in ordered] == [
        ("anomaly", 0.4),
        ("forecast", 0.9),
        ("forecast", 0.5),
        ("suggestion", 0.99),
    ]
    assert items[0]["type"] == "suggestion"


def test_replace_run_keeps_manual_insights_only() -> None:
    existing = [{"title": "manual"}, {"title": "old", "runId": "run-1"}]
    fresh = [{"title": "new", "runId": "run-2"}]
    assert [item["title"] for item in replace_run(existing, fresh)] == ["manual", "new"]
