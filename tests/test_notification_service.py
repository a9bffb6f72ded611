"""Tests for report email delivery and completion events."""

from __future__ import annotations

import base64
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest

from services import event_publisher, notification_service
from services.report_lifecycle import ReportSnapshot


def _report(tmp_path, content: bytes = b"a,b\n1,2\n") -> ReportSnapshot:
    path = tmp_path / "r.csv"
    path.write_bytes(content)
    return ReportSnapshot(
        id=uuid.uuid4(),
        user_id="owner",
        type="SALES",
        format="CSV",
        status="COMPLETED",
        metadata={"title": "Q1 Sales", "recordCount": 1, "insights": [{"title": "Spike", "confidence": 0.9}]},
        file_path=str(path),
        file_size=len(content),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        completed_at=datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc),
    )


class _FakeClient:
    def __init__(self, captured: List[Dict[str, Any]], status_code: int = 200, **kwargs: Any) -> None:
        self.captured = captured
        self.status_code = status_code
        self.kwargs = kwargs

    def __enter__(self) -> "_FakeClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        self.captured.append({"url": url, "json": json, "headers": headers, "timeout": self.kwargs.get("timeout")})
        return httpx.Response(self.status_code, text="nope" if self.status_code >= 400 else "ok", request=httpx.Request("POST", url))


def test_email_payload_attaches_artifact(monkeypatch: pytest.MonkeyPatch, tmp_path, service_settings) -> None:
    captured: List[Dict[str, Any]] = []
    monkeypatch.setattr(notification_service.httpx, "Client", lambda **kwargs: _FakeClient(captured, **kwargs))

    report = _report(tmp_path)
    result = notification_service.send_report_email(report, "ana@example.com", settings=service_settings)

    assert result.ok
    call = captured[0]
    assert call["url"] == "http://messaging.test/api/email/send"
    assert call["headers"]["x-api-key"] == "test-key"
    assert call["timeout"] == 5.0
    payload = call["json"]
    assert payload["subject"] == "Report: Q1 Sales"
    assert payload["templateName"] == "report-email"
    assert payload["variables"]["message"] == "Your report is ready"
    assert "Spike" in payload["variables"]["summary"]
    attachment = payload["attachments"][0]
    assert base64.b64decode(attachment["content"]) == b"a,b\n1,2\n"
    assert attachment["contentType"] == "text/csv"
    assert attachment["filename"] == "sales_1704067200000.csv"


def test_rejected_email_is_reported_not_raised(monkeypatch: pytest.MonkeyPatch, tmp_path, service_settings) -> None:
    captured: List[Dict[str, Any]] = []
    monkeypatch.setattr(
        notification_service.httpx, "Client", lambda **kwargs: _FakeClient(captured, status_code=500, **kwargs)
    )

    result = notification_service.send_report_email(
        _report(tmp_path), "ana@example.com", subject="Custom", settings=service_settings
    )

    assert not result.ok
    assert result.error == "nope"
    assert captured[0]["json"]["subject"] == "Custom"


def test_transport_error_is_reported(monkeypatch: pytest.MonkeyPatch, tmp_path, service_settings) -> None:
    class _Unreachable(_FakeClient):
        def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
            raise httpx.ConnectError("refused")

    monkeypatch.setattr(notification_service.httpx, "Client", lambda **kwargs: _Unreachable([], **kwargs))

    result = notification_service.send_report_email(_report(tmp_path), "ana@example.com", settings=service_settings)
    assert result.status == "failed"
    assert "refused" in result.error


def test_missing_artifact_is_not_sent(tmp_path, service_settings) -> None:
    report = _report(tmp_path)
    report.file_path = str(tmp_path / "gone.csv")
    assert not notification_service.send_report_email(report, "ana@example.com", settings=service_settings).ok


def test_completed_event_is_published(monkeypatch: pytest.MonkeyPatch, tmp_path, service_settings) -> None:
    published: List[Any] = []

    class _FakeRedis:
        def publish(self, channel: str, message: str) -> int:
            published.append((channel, json.loads(message)))
            return 1

    monkeypatch.setattr(event_publisher, "_CLIENT", _FakeRedis())
    report = _report(tmp_path)

    assert event_publisher.publish_report_completed(report, settings=service_settings)
    channel, event = published[0]
    assert channel == "report.completed"
    assert event["reportId"] == str(report.id)
    assert event["recordCount"] == 1


def test_publish_failures_return_false(monkeypatch: pytest.MonkeyPatch, tmp_path, service_settings) -> None:
    import redis

    class _BrokenRedis:
        def publish(self, channel: str, message: str) -> int:
            raise redis.ConnectionError("down")

    monkeypatch.setattr(event_publisher, "_CLIENT", _BrokenRedis())
    assert not event_publisher.publish_report_completed(_report(tmp_path), settings=service_settings)
