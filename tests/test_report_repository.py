from __future__ import annotations

from datetime import timedelta

from models.report import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING, STATUS_PROCESSING
from services import report_lifecycle as lifecycle
from services import report_repository
from services.report_policy import ReportRequest
from services.report_repository import ReportFilters


def _create(db_session, user_id: str = "owner", report_type: str = "SALES"):
    request = ReportRequest(user_id=user_id, type=report_type, format="CSV", title="  Monthly sales  ")
    return report_repository.create_report(request, record_count=3, session=db_session)


def test_create_report_starts_pending_with_metadata(db_session) -> None:
    report = _create(db_session)
    loaded = report_repository.get_report(report.id, session=db_session)

    assert loaded.status == STATUS_PENDING
    assert loaded.metadata["title"] == "Monthly sales"
    assert loaded.metadata["recordCount"] == 3
    assert loaded.download_count == 0
    assert loaded.created_at.tzinfo is not None


def test_apply_changes_is_compare_and_set(db_session) -> None:
    report = _create(db_session)

    assert report_repository.apply_changes(
        report.id, {"status": STATUS_PROCESSING}, expected_statuses={STATUS_PENDING}, session=db_session
    )
    assert not report_repository.apply_changes(
        report.id, {"status": STATUS_PROCESSING}, expected_statuses={STATUS_PENDING}, session=db_session
    )
    assert report_repository.get_report(report.id, session=db_session).status == STATUS_PROCESSING


def test_failed_report_cannot_be_completed_by_a_late_writer(db_session) -> None:
    report = _create(db_session)
    stale = report_repository.get_report(report.id, session=db_session)
    failed = report_repository.get_report(report.id, session=db_session)
    report_repository.apply_changes(
        report.id,
        lifecycle.mark_failed(failed, "boom"),
        expected_statuses=lifecycle.ALLOWED_SOURCES[STATUS_FAILED],
        session=db_session,
    )

    mask = lifecycle.mark_completed(stale, lifecycle.Artifact("/tmp/x.csv", 1, "u"))
    assert not report_repository.apply_changes(
        report.id, mask, expected_statuses=lifecycle.ALLOWED_SOURCES[STATUS_COMPLETED], session=db_session
    )
    assert report_repository.get_report(report.id, session=db_session).status == STATUS_FAILED


def test_merge_metadata_keeps_other_keys(db_session) -> None:
    report = _create(db_session)

    merged = report_repository.merge_metadata(
        report.id,
        lambda current: {"insights": list(current.get("insights") or []) + [{"title": "x"}]},
        allowed_statuses=lifecycle.ANALYSIS_WRITABLE,
        session=db_session,
    )
    assert merged
    metadata = report_repository.get_report(report.id, session=db_session).metadata
    assert metadata["insights"] == [{"title": "x"}]
    assert metadata["title"] == "Monthly sales"


def test_increment_download_count_only_for_completed(db_session) -> None:
    report = _create(db_session)
    assert not report_repository.increment_download_count(report.id, session=db_session)

    report_repository.apply_changes(
        report.id, {"status": STATUS_COMPLETED}, expected_statuses={STATUS_PENDING}, session=db_session
    )
    assert report_repository.increment_download_count(report.id, session=db_session)
    assert report_repository.get_report(report.id, session=db_session).download_count == 1


def test_list_reports_filters_and_paginates(db_session) -> None:
    for _ in range(3):
        _create(db_session)
    _create(db_session, report_type="INVENTORY")
    _create(db_session, user_id="someone-else")

    reports, total = report_repository.list_reports("owner", page=1, limit=2, session=db_session)
    assert total == 4
    assert len(reports) == 2
    assert reports[0].created_at >= reports[1].created_at

    inventory, inventory_total = report_repository.list_reports(
        "owner", filters=ReportFilters(type="INVENTORY"), session=db_session
    )
    assert inventory_total == 1
    assert inventory[0].type == "INVENTORY"


def test_delete_expired_only_removes_completed_past_expiry(db_session) -> None:
    expired = _create(db_session)
    fresh = _create(db_session)
    now = lifecycle.utcnow()
    report_repository.apply_changes(
        expired.id,
        {"status": STATUS_COMPLETED, "expires_at": now - timedelta(minutes=1)},
        expected_statuses={STATUS_PENDING},
        session=db_session,
    )
    report_repository.apply_changes(
        fresh.id,
        {"status": STATUS_COMPLETED, "expires_at": now + timedelta(days=1)},
        expected_statuses={STATUS_PENDING},
        session=db_session,
    )

    removed = report_repository.delete_expired(now, session=db_session)

    assert [item.id for item in removed] == [expired.id]
    assert report_repository.get_report(expired.id, session=db_session) is None
    assert report_repository.get_report(fresh.id, session=db_session) is not None


def test_unknown_or_malformed_ids_are_not_found(db_session) -> None:
    assert report_repository.get_report("not-a-uuid", session=db_session) is None
    assert not report_repository.delete_report("not-a-uuid", session=db_session)
