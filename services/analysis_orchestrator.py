"""Analysis job: quality, anomalies, forecasts, KPI suggestions and correlations.

Steps run in a fixed order and each one appends insights tagged with the run
id. Whatever was accumulated is merged into the report metadata at the end,
also when a step fails; a failed analysis never fails the report.
Database errors are left to the queue retry.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import AnalyticsSettings
from core.logging import get_logger
from models.report import STATUS_PENDING, STATUS_PROCESSING
from services import report_lifecycle as lifecycle
from services import report_repository
from services.analytics import anomaly_detector, correlation, data_quality, forecaster
from services.analytics.records import numeric_columns
from services.insights import Insight, replace_run
from services.kpi_suggestion_service import KpiSuggestionService
from services.report_errors import (
    AnalysisFailure,
    InsufficientDataError,
    InvalidTransitionError,
)
from services.report_metrics import observe_latency, record_error, record_result

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int], None]

STAGE = "analysis"
COMPLETENESS_WARNING = 90.0
ANOMALY_MIN_SAMPLES = 10
FORECAST_MIN_SAMPLES = 5
FORECAST_CONFIDENCE = 0.95
KPI_SUGGESTION_LIMIT = 3
MAX_ANOMALIES_IN_INSIGHT = 5


def _noop_progress(_stage: str, _progress: int) -> None:
    return None


@dataclass
class AnalysisJob:
    report_id: str
    records: List[Mapping[str, Any]]
    enable_anomaly_detection: bool = True
    enable_forecasting: bool = True
    enable_kpi_suggestions: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AnalysisJob":
        return cls(
            report_id=str(payload.get("reportId")),
            records=[record for record in payload.get("records") or [] if isinstance(record, Mapping)],
            enable_anomaly_detection=bool(payload.get("enableAnomalyDetection", True)),
            enable_forecasting=bool(payload.get("enableForecasting", True)),
            enable_kpi_suggestions=bool(payload.get("enableKpiSuggestions", True)),
        )


@dataclass
class AnalysisOutcome:
    report_id: str
    run_id: str
    insights: List[Dict[str, Any]] = field(default_factory=list)
    data_quality: Optional[Dict[str, Any]] = None
    kpi_suggestions: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    persisted: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "runId": self.run_id,
            "insightCount": len(self.insights),
            "error": self.error,
            "persisted": self.persisted,
        }


class AnalysisOrchestrator:
    def __init__(
        self,
        *,
        settings: Optional[AnalyticsSettings] = None,
        kpi_service: Optional[KpiSuggestionService] = None,
    ) -> None:
        self._settings = settings or AnalyticsSettings.load()
        self._kpi_service = kpi_service

    @property
    def kpi_service(self) -> KpiSuggestionService:
        if self._kpi_service is None:
            self._kpi_service = KpiSuggestionService.from_settings()
        return self._kpi_service

    def run(
        self,
        payload: Mapping[str, Any],
        *,
        session: Optional[Session] = None,
        progress: ProgressCallback = _noop_progress,
        run_id: Optional[str] = None,
    ) -> AnalysisOutcome:
        job = AnalysisJob.from_payload(payload)
        outcome = AnalysisOutcome(report_id=job.report_id, run_id=run_id or uuid.uuid4().hex)
        started = time.perf_counter()

        report = report_repository.get_report(job.report_id, session=session)
        if report is None:
            logger.warning("Analysis job for unknown report %s dropped.", job.report_id)
            outcome.error = "report not found"
            return outcome
        if report.status not in lifecycle.ANALYSIS_WRITABLE:
            logger.info("Report %s is %s; analysis skipped.", report.id, report.status)
            outcome.error = f"report is {report.status}"
            return outcome
        self._start(report, session)

        try:
            self._quality_step(report, job, outcome, progress)
            if job.enable_anomaly_detection and self._settings.anomaly_detection_enabled:
                self._anomaly_step(report, job, outcome, progress)
            if job.enable_forecasting and self._settings.forecasting_enabled:
                self._forecast_step(report, job, outcome, progress)
            if job.enable_kpi_suggestions and self._settings.kpi_suggestions_enabled:
                self._kpi_step(report, job, outcome, progress)
            self._correlation_step(report, job, outcome, progress)
        except SQLAlchemyError:
            # Database errors go back to the queue for a retry.
            raise
        except Exception as exc:
            failure = exc if isinstance(exc, AnalysisFailure) else AnalysisFailure(f"Analysis step failed: {exc!r}")
            outcome.error = failure.message
            record_error(STAGE, exc)
            logger.error("Analysis of report %s stopped early: %s", report.id, exc, exc_info=True)

        progress("saving", 95)
        outcome.persisted = self._persist(outcome, session)

        progress("completed", 100)
        observe_latency(STAGE, time.perf_counter() - started)
        record_result(STAGE, "partial" if outcome.error else "success")
        logger.info(
            "Analysis of report %s finished with %d insights (run=%s).",
            report.id,
            len(outcome.insights),
            outcome.run_id,
        )
        return outcome

    def _start(self, report: lifecycle.ReportSnapshot, session: Optional[Session]) -> None:
        if report.is_terminal:
            logger.info("Report %s already %s; merging analysis without a status change.", report.id, report.status)
            return
        try:
            mask = lifecycle.mark_analyzing(report)
        except InvalidTransitionError as exc:
            logger.info("Report %s not moved to ANALYZING: %s", report.id, exc)
            return
        report_repository.apply_changes(
            report.id,
            mask,
            expected_statuses={STATUS_PENDING, STATUS_PROCESSING},
            session=session,
        )

    def _add(self, report: lifecycle.ReportSnapshot, outcome: AnalysisOutcome, insight: Insight) -> None:
        insight.run_id = outcome.run_id
        payload = insight.as_dict()
        lifecycle.add_insight(report, payload)
        outcome.insights.append(payload)

    def _quality_step(self, report, job: AnalysisJob, outcome: AnalysisOutcome, progress: ProgressCallback) -> None:
        progress("quality_analysis", 10)
        metrics = data_quality.score(job.records)
        outcome.data_quality = lifecycle.set_data_quality(report, metrics.as_dict())["dataQuality"]
        if metrics.completeness < COMPLETENESS_WARNING:
            self._add(
                report,
                outcome,
                Insight(
                    kind="suggestion",
                    title="Low data quality",
                    description=(
                        f"Only {metrics.completeness:.1f}% of the data is complete. "
                        "Consider cleaning the data before relying on the analysis."
                    ),
                    confidence=0.95,
                    actionable=True,
                ),
            )

    def _anomaly_step(self, report, job: AnalysisJob, outcome: AnalysisOutcome, progress: ProgressCallback) -> None:
        progress("anomaly_detection", 30)
        for name, values in numeric_columns(job.records).items():
            if len(values) <= ANOMALY_MIN_SAMPLES:
                continue
            result = anomaly_detector.detect(values, self._settings.anomaly_threshold, anomaly_detector.METHOD_ZSCORE)
            if not result.anomaly_count:
                continue
            self._add(
                report,
                outcome,
                Insight(
                    kind="anomaly",
                    title=f"Anomalies detected in {name}",
                    description=(
                        f"{result.anomaly_count} outliers ({result.anomaly_percentage:.1f}% of values) "
                        f"were found in {name}."
                    ),
                    confidence=0.85,
                    actionable=True,
                    data={
                        "field": name,
                        "anomalies": [point.as_dict() for point in result.anomalies[:MAX_ANOMALIES_IN_INSIGHT]],
                    },
                ),
            )

    def _forecast_step(self, report, job: AnalysisJob, outcome: AnalysisOutcome, progress: ProgressCallback) -> None:
        progress("forecasting", 50)
        for name, values in numeric_columns(job.records).items():
            if len(values) < FORECAST_MIN_SAMPLES:
                continue
            try:
                result = forecaster.forecast(values, self._settings.forecast_periods, FORECAST_CONFIDENCE)
            except InsufficientDataError as exc:
                logger.debug("Forecast for %s skipped: %s", name, exc)
                continue
            self._add(
                report,
                outcome,
                Insight(
                    kind="forecast",
                    title=f"Forecast for {name}",
                    description=f"Based on a {result.trend} trend, the next values are projected.",
                    confidence=result.confidence,
                    actionable=True,
                    data={
                        "field": name,
                        "forecasts": result.forecasts,
                        "trend": result.trend,
                        "method": result.method,
                    },
                ),
            )

    def _kpi_step(self, report, job: AnalysisJob, outcome: AnalysisOutcome, progress: ProgressCallback) -> None:
        progress("kpi_suggestions", 70)
        try:
            suggestions = self.kpi_service.suggest_kpis(
                report.metadata.get("dataSource") or "unknown",
                report.metadata.get("description"),
                KPI_SUGGESTION_LIMIT,
            )
        except Exception as exc:  # KPI suggestions never fail the analysis
            logger.warning("KPI suggestions for report %s failed: %s", report.id, exc, exc_info=True)
            return
        if not suggestions:
            return
        kpis = [item.as_dict() for item in suggestions]
        lifecycle.add_kpi_suggestions(report, kpis)
        outcome.kpi_suggestions = kpis
        self._add(
            report,
            outcome,
            Insight(
                kind="suggestion",
                title="Suggested KPIs",
                description=f"{len(kpis)} key performance indicators are suggested for this data.",
                confidence=0.80,
                actionable=True,
                data={"kpis": kpis},
            ),
        )

    def _correlation_step(self, report, job: AnalysisJob, outcome: AnalysisOutcome, progress: ProgressCallback) -> None:
        progress("correlation_analysis", 85)
        for pair in correlation.find_correlations(job.records):
            self._add(
                report,
                outcome,
                Insight(
                    kind="correlation",
                    title=f"Correlation: {pair.field1} / {pair.field2}",
                    description=(
                        f"There is a {pair.strength} {pair.direction} correlation "
                        f"({pair.correlation * 100:.1f}%) between {pair.field1} and {pair.field2}."
                    ),
                    confidence=abs(pair.correlation),
                    actionable=True,
                    data=pair.as_dict(),
                ),
            )

    def _persist(self, outcome: AnalysisOutcome, session: Optional[Session]) -> bool:
        def updates(current: Mapping[str, Any]) -> Dict[str, Any]:
            values: Dict[str, Any] = {
                "insights": replace_run(current.get("insights") or [], outcome.insights),
                "analysisRunId": outcome.run_id,
                "analysisError": outcome.error,
            }
            if outcome.data_quality is not None:
                values["dataQuality"] = outcome.data_quality
            if outcome.kpi_suggestions:
                values["kpiSuggestions"] = outcome.kpi_suggestions
            return values

        persisted = report_repository.merge_metadata(
            outcome.report_id,
            updates,
            allowed_statuses=lifecycle.ANALYSIS_WRITABLE,
            session=session,
        )
        if not persisted:
            logger.warning("Analysis results for report %s were not stored (report failed or removed).", outcome.report_id)
        return persisted


def run_analysis(
    payload: Mapping[str, Any],
    *,
    session: Optional[Session] = None,
    progress: ProgressCallback = _noop_progress,
    orchestrator: Optional[AnalysisOrchestrator] = None,
) -> AnalysisOutcome:
    return (orchestrator or AnalysisOrchestrator()).run(payload, session=session, progress=progress)


__all__ = ["AnalysisJob", "AnalysisOrchestrator", "AnalysisOutcome", "run_analysis"]
