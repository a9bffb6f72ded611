"""Stateless statistical analysis endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from schemas.api.reports import (
    AnomalyRequest,
    AnomalyResponse,
    ForecastRequest,
    ForecastResponse,
    KpiRequest,
    KpiResponse,
    QualityRequest,
    QualityResponse,
)
from services.analytics import anomaly_detector, data_quality, forecaster
from services.kpi_suggestion_service import KpiSuggestionService
from services.report_errors import ReportServiceError
from web.deps import get_kpi_service, get_user_id

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.post("/anomalies", response_model=AnomalyResponse, summary="Score a series for anomalies.")
def detect_anomalies(payload: AnomalyRequest, _: str = Depends(get_user_id)) -> AnomalyResponse:
    try:
        if payload.method.strip().lower() == anomaly_detector.METHOD_TIME_SERIES:
            result = anomaly_detector.detect_time_series(
                payload.values,
                window=payload.window or anomaly_detector.DEFAULT_WINDOW,
                threshold=payload.threshold,
            )
        else:
            result = anomaly_detector.detect(payload.values, threshold=payload.threshold, method=payload.method)
    except ReportServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    return AnomalyResponse(**result.as_dict())


@router.post("/forecast", response_model=ForecastResponse, summary="Project future values of a series.")
def forecast_series(payload: ForecastRequest, _: str = Depends(get_user_id)) -> ForecastResponse:
    try:
        result = forecaster.forecast(
            payload.values,
            payload.periods,
            payload.confidence,
            seasonal_period=payload.seasonalPeriod,
        )
    except ReportServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    return ForecastResponse(**result.as_dict())


@router.post("/quality", response_model=QualityResponse, summary="Score the quality of a record set.")
def score_quality(payload: QualityRequest, _: str = Depends(get_user_id)) -> QualityResponse:
    metrics = data_quality.score(payload.data, payload.fields)
    return QualityResponse(
        **metrics.as_dict(),
        grade=data_quality.quality_grade(metrics.completeness),
        report=data_quality.build_quality_report(metrics, len(payload.data)),
    )


@router.post("/kpis", response_model=KpiResponse, summary="Suggest KPIs for a data source.")
def suggest_kpis(
    payload: KpiRequest,
    _: str = Depends(get_user_id),
    service: KpiSuggestionService = Depends(get_kpi_service),
) -> KpiResponse:
    suggestions = service.suggest_kpis(
        payload.dataSource,
        payload.businessContext,
        max_suggestions=payload.maxSuggestions,
        existing_kpis=payload.existingKpis,
    )
    return KpiResponse(suggestions=[item.as_dict() for item in suggestions])
