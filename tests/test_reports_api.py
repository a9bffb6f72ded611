from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from database import get_db
from services import report_repository
from services.job_dispatcher import ANALYSIS_TASK, RENDER_TASK, JobDispatcher
from services.kpi_suggestion_service import KpiSuggestionService
from services.report_submission import ReportSubmissionService
from services.suggestion_cache import TTLCache
from web import deps
from web.main import app
from workers import render_worker

HEADERS = {"X-User-Id": "owner"}


class _RecordingTask:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def apply_async(self, **kwargs: Any) -> None:
        self.calls.append(kwargs)


@pytest.fixture()
def submission(queue_settings, storage_settings, analytics_settings) -> ReportSubmissionService:
    fake_app = SimpleNamespace(
        tasks={RENDER_TASK: _RecordingTask(), ANALYSIS_TASK: _RecordingTask()},
        AsyncResult=lambda job_id: SimpleNamespace(state="PENDING"),
    )
    return ReportSubmissionService(
        JobDispatcher(fake_app, queue_settings),
        storage=storage_settings,
        analytics=analytics_settings,
    )


@pytest.fixture()
def client(db_session, submission):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_submission_service] = lambda: submission
    app.dependency_overrides[deps.get_kpi_service] = lambda: KpiSuggestionService(
        TTLCache(ttl_seconds=60), generator=lambda *args, **kwargs: {"error": "offline"}
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create(client: TestClient, **overrides: Any) -> Dict[str, Any]:
    body = {
        "type": "SALES",
        "format": "CSV",
        "title": "Weekly sales",
        "data": [{"day": 1, "revenue": 10}, {"day": 2, "revenue": 12}],
    }
    body.update(overrides)
    response = client.post("/api/v1/reports", json=body, headers=HEADERS)
    assert response.status_code == 202, response.text
    return response.json()


def test_requests_without_identity_are_rejected(client: TestClient) -> None:
    response = client.get("/api/v1/reports")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "auth.required"


def test_create_and_read_report(client: TestClient) -> None:
    created = _create(client)

    assert created["status"] == "PENDING"
    assert created["jobId"] == created["reportId"]

    detail = client.get(f"/api/v1/reports/{created['reportId']}", headers=HEADERS)
    assert detail.status_code == 200
    body = detail.json()
    assert body["title"] == "Weekly sales"
    assert body["recordCount"] == 2
    assert body["downloadUrl"] is None


def test_validation_errors_map_to_400(client: TestClient) -> None:
    response = client.post(
        "/api/v1/reports",
        json={"type": "SALES", "format": "CSV", "title": "x", "data": [{"a": 1}], "emailTo": "bad"},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "report.invalid"


def test_other_users_get_403(client: TestClient) -> None:
    created = _create(client)
    response = client.get(f"/api/v1/reports/{created['reportId']}", headers={"X-User-Id": "intruder"})
    assert response.status_code == 403


def test_download_after_render(
    client: TestClient, submission, db_session, storage_settings, service_settings, monkeypatch
) -> None:
    from services import event_publisher

    monkeypatch.setattr(event_publisher, "publish_report_completed", lambda *args, **kwargs: True)
    created = _create(client)

    pending = client.get(f"/api/v1/reports/{created['reportId']}/download", headers=HEADERS)
    assert pending.status_code == 409

    payload = submission.dispatcher._app.tasks[RENDER_TASK].calls[0]["kwargs"]["payload"]
    render_worker.process_render_job(payload, session=db_session, storage=storage_settings, services=service_settings)

    response = client.get(f"/api/v1/reports/{created['reportId']}/download", headers=HEADERS)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0] == "day,revenue"
    assert report_repository.get_report(created["reportId"], session=db_session).download_count == 1


def test_list_and_delete(client: TestClient) -> None:
    first = _create(client)
    _create(client, type="INVENTORY")

    listing = client.get("/api/v1/reports", params={"type": "inventory"}, headers=HEADERS).json()
    assert listing["total"] == 1
    assert listing["totalPages"] == 1

    deleted = client.delete(f"/api/v1/reports/{first['reportId']}", headers=HEADERS)
    assert deleted.status_code == 204
    assert client.get(f"/api/v1/reports/{first['reportId']}", headers=HEADERS).status_code == 404


def test_analytics_endpoints(client: TestClient) -> None:
    anomalies = client.post(
        "/api/v1/analytics/anomalies",
        json={"values": [100, 120, 115, 300, 125, 130], "threshold": 2.5},
        headers=HEADERS,
    ).json()
    assert anomalies["anomalyCount"] == 1
    assert [point["index"] for point in anomalies["perPoint"] if point["isAnomaly"]] == [3]

    forecast = client.post(
        "/api/v1/analytics/forecast",
        json={"values": [1000, 1050, 1100, 1200, 1250, 1300], "periods": 3},
        headers=HEADERS,
    ).json()
    assert forecast["trend"] == "upward"
    assert len(forecast["forecasts"]) == 3

    short = client.post("/api/v1/analytics/forecast", json={"values": [1, 2]}, headers=HEADERS)
    assert short.status_code == 422
    assert short.json()["detail"]["code"] == "analysis.insufficient_data"

    quality = client.post(
        "/api/v1/analytics/quality",
        json={"data": [{"a": 1, "b": None}, {"a": None, "b": 2}]},
        headers=HEADERS,
    ).json()
    assert quality["completeness"] == pytest.approx(50.0)
    assert quality["grade"] == "poor"

    kpis = client.post("/api/v1/analytics/kpis", json={"dataSource": "erp", "maxSuggestions": 2}, headers=HEADERS)
    assert kpis.status_code == 200
    assert len(kpis.json()["suggestions"]) == 2


def test_metrics_endpoint_exposes_report_collectors(client: TestClient) -> None:
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "report_job_result_total" in response.text


def test_confident_only_hides_low_confidence_insights(client: TestClient, db_session) -> None:
    created = _create(client)
    insights = [
        {"type": "suggestion", "title": "Weak hint", "description": "d", "confidence": 0.4, "runId": "r"},
        {"type": "anomaly", "title": "Spike", "description": "d", "confidence": 0.85, "runId": "r"},
        {"type": "correlation", "title": "Exactly at floor", "description": "d", "confidence": 0.6, "runId": "r"},
    ]
    assert report_repository.merge_metadata(
        created["reportId"], {"insights": insights}, allowed_statuses={"PENDING"}, session=db_session
    )

    everything = client.get(f"/api/v1/reports/{created['reportId']}", headers=HEADERS).json()
    assert [item["title"] for item in everything["insights"]] == ["Spike", "Exactly at floor", "Weak hint"]

    confident = client.get(
        f"/api/v1/reports/{created['reportId']}", params={"confidentOnly": "true"}, headers=HEADERS
    ).json()
    assert [item["title"] for item in confident["insights"]] == ["Spike", "Exactly at floor"]
