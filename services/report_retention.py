"""Retention sweep for expired and stale failed reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from core.config import StorageSettings
from core.logging import get_logger
from services import report_repository
from services.report_lifecycle import ReportSnapshot, utcnow

logger = get_logger(__name__)


@dataclass
class PurgeSummary:
    expired: int = 0
    failed: int = 0
    files_removed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"expired": self.expired, "failed": self.failed, "filesRemoved": self.files_removed}


def remove_artifact(file_path: Optional[str]) -> bool:
    if not file_path:
        return False
    try:
        Path(file_path).unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("Failed to remove report artifact %s: %s", file_path, exc)
        return False
    return True


def _remove_artifacts(reports: Iterable[ReportSnapshot]) -> int:
    return sum(1 for report in reports if remove_artifact(report.file_path))


def purge_expired_reports(now: Optional[datetime] = None, *, session: Optional[Session] = None) -> PurgeSummary:
    removed = report_repository.delete_expired(now or utcnow(), session=session)
    summary = PurgeSummary(expired=len(removed), files_removed=_remove_artifacts(removed))
    if removed:
        logger.info("Purged %d expired reports.", len(removed))
    return summary


def purge_stale_failed_reports(
    now: Optional[datetime] = None,
    *,
    settings: Optional[StorageSettings] = None,
    session: Optional[Session] = None,
) -> PurgeSummary:
    settings = settings or StorageSettings.load()
    cutoff = (now or utcnow()) - timedelta(days=settings.failed_retention_days)
    removed = report_repository.delete_failed_before(cutoff, session=session)
    summary = PurgeSummary(failed=len(removed), files_removed=_remove_artifacts(removed))
    if removed:
        logger.info("Purged %d failed reports older than %s.", len(removed), cutoff.isoformat())
    return summary


def purge(
    now: Optional[datetime] = None,
    *,
    settings: Optional[StorageSettings] = None,
    session: Optional[Session] = None,
) -> PurgeSummary:
    """Run both sweeps and return the combined counts."""
    now = now or utcnow()
    expired = purge_expired_reports(now, session=session)
    failed = purge_stale_failed_reports(now, settings=settings, session=session)
    return PurgeSummary(
        expired=expired.expired,
        failed=failed.failed,
        files_removed=expired.files_removed + failed.files_removed,
    )


__all__ = [
    "PurgeSummary",
    "purge",
    "purge_expired_reports",
    "purge_stale_failed_reports",
    "remove_artifact",
]
