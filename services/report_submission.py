"""Report creation: validate, persist PENDING and enqueue the jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from core.config import AnalyticsSettings, StorageSettings
from core.logging import get_logger
from services import report_repository
from services.job_dispatcher import JobDispatcher, analysis_job_options, render_job_options
from services.report_errors import DispatchFailure
from services.report_lifecycle import ReportSnapshot
from services.report_policy import ReportRequest, estimate_size, validate_request

logger = get_logger(__name__)


@dataclass
class SubmissionResult:
    report: ReportSnapshot
    job_id: str
    analysis_job_id: Optional[str]
    estimated_size: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "reportId": str(self.report.id),
            "status": self.report.status,
            "jobId": self.job_id,
            "analysisJobId": self.analysis_job_id,
            "estimatedSize": self.estimated_size,
        }


def render_payload(report: ReportSnapshot, records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    return {
        "reportId": str(report.id),
        "ownerUserId": report.user_id,
        "records": [dict(record) for record in records],
        "format": report.format,
        "metadata": {
            "title": report.metadata.get("title"),
            "description": report.metadata.get("description"),
            "columns": report.metadata.get("columns") or [],
            "chartConfig": report.metadata.get("chartConfig"),
        },
        "emailTo": report.email_to,
    }


def analysis_payload(
    report: ReportSnapshot,
    records: Sequence[Mapping[str, Any]],
    flags: Mapping[str, bool],
) -> Dict[str, Any]:
    return {
        "reportId": str(report.id),
        "ownerUserId": report.user_id,
        "records": [dict(record) for record in records],
        "enableAnomalyDetection": bool(flags.get("anomalyDetection", True)),
        "enableForecasting": bool(flags.get("forecasting", True)),
        "enableKpiSuggestions": bool(flags.get("kpiSuggestions", True)),
    }


class ReportSubmissionService:
    def __init__(
        self,
        dispatcher: Optional[JobDispatcher] = None,
        *,
        storage: Optional[StorageSettings] = None,
        analytics: Optional[AnalyticsSettings] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._storage = storage or StorageSettings.load()
        self._analytics = analytics or AnalyticsSettings.load()

    @property
    def dispatcher(self) -> JobDispatcher:
        if self._dispatcher is None:
            self._dispatcher = JobDispatcher()
        return self._dispatcher

    def submit(
        self,
        request: ReportRequest,
        records: Sequence[Mapping[str, Any]],
        *,
        session: Optional[Session] = None,
    ) -> SubmissionResult:
        """Create the report and enqueue its render (and maybe analysis) job.

        Raises ValidationError before anything is stored, and DispatchFailure
        after removing the PENDING row when the broker refuses a job.
        """
        validate_request(request, records, settings=self._storage)
        dispatcher = self.dispatcher
        queues = dispatcher.settings
        run_analysis = bool(request.analysis_enabled) and self._analytics.should_enable_analysis(len(records))
        dispatcher.ensure_capacity(queues.report_queue)

        report = report_repository.create_report(request, record_count=len(records), session=session)
        analysis_job_id: Optional[str] = None
        try:
            job_id = dispatcher.enqueue(
                queues.report_queue,
                render_payload(report, records),
                render_job_options(report.id, queues),
            )
            if run_analysis:
                analysis_job_id = dispatcher.enqueue(
                    queues.analysis_queue,
                    analysis_payload(report, records, request.analysis_flags),
                    analysis_job_options(report.id, queues),
                )
        except DispatchFailure:
            report_repository.delete_report(report.id, session=session)
            logger.error("Report %s removed after enqueue failure.", report.id)
            raise

        if request.analysis_enabled and not run_analysis:
            logger.info(
                "Analysis skipped for report %s: %d records below the %d minimum.",
                report.id,
                len(records),
                self._analytics.min_records,
            )
        columns: List[str] = list(request.columns or (records[0].keys() if records else []))
        logger.info("Report %s accepted (%s, %d records).", report.id, report.format, len(records))
        return SubmissionResult(
            report=report,
            job_id=job_id,
            analysis_job_id=analysis_job_id,
            estimated_size=estimate_size(len(records), len(columns), report.format),
        )


__all__ = ["ReportSubmissionService", "SubmissionResult", "analysis_payload", "render_payload"]
