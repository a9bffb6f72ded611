from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from core.logging import get_logger
from database import get_db
from schemas.api.reports import (
    ReportCreateRequest,
    ReportCreateResponse,
    ReportEmailRequest,
    ReportEmailResponse,
    ReportListResponse,
    ReportResponse,
)
from services import report_service
from services.report_errors import ReportServiceError
from services.report_policy import ReportRequest
from services.report_repository import ReportFilters
from services.report_submission import ReportSubmissionService
from web.deps import get_submission_service, get_user_id

router = APIRouter(prefix="/reports", tags=["Reports"])
logger = get_logger(__name__)


def _raise_http(exc: ReportServiceError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


def _upper(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if value else None


@router.post("", response_model=ReportCreateResponse, status_code=status.HTTP_202_ACCEPTED)
def create_report(
    payload: ReportCreateRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    submission: ReportSubmissionService = Depends(get_submission_service),
) -> ReportCreateResponse:
    request = ReportRequest(
        user_id=user_id,
        type=payload.type,
        format=payload.format,
        title=payload.title,
        description=payload.description,
        columns=payload.columns,
        chart_config=payload.chartConfig,
        filters=payload.filters,
        data_source=payload.dataSource,
        email_to=payload.emailTo,
        analysis_enabled=payload.enableAnalysis,
        analysis_flags=payload.analysis.model_dump(),
    )
    try:
        result = submission.submit(request, payload.data, session=db)
    except ReportServiceError as exc:
        _raise_http(exc)
    return ReportCreateResponse(**result.as_dict())


@router.get("", response_model=ReportListResponse)
def list_reports(
    type: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    format: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ReportListResponse:
    filters = ReportFilters(
        type=_upper(type),
        status=_upper(status_filter),
        format=_upper(format),
        start_date=start_date,
        end_date=end_date,
    )
    listing = report_service.list_reports(user_id, filters=filters, page=page, limit=limit, session=db)
    listing["reports"] = report_service.summarize_reports(listing["reports"])
    return ReportListResponse(**listing)


@router.get("/{report_id}", response_model=ReportResponse)
def read_report(
    report_id: str,
    confident_only: bool = Query(False, alias="confidentOnly"),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ReportResponse:
    try:
        report = report_service.get_owned_report(report_id, user_id, session=db)
    except ReportServiceError as exc:
        _raise_http(exc)
    return ReportResponse(**report_service.describe(report, confident_only=confident_only))


@router.get("/{report_id}/download")
def download_report(
    report_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> FileResponse:
    try:
        ticket = report_service.download_report(report_id, user_id, session=db)
    except ReportServiceError as exc:
        _raise_http(exc)
    return FileResponse(ticket.file_path, media_type=ticket.mime_type, filename=ticket.file_name)


@router.post("/{report_id}/email", response_model=ReportEmailResponse)
def email_report(
    report_id: str,
    payload: ReportEmailRequest,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ReportEmailResponse:
    try:
        report_service.email_report(
            report_id,
            user_id,
            payload.emailTo,
            subject=payload.subject,
            message=payload.message,
            session=db,
        )
    except ReportServiceError as exc:
        _raise_http(exc)
    return ReportEmailResponse(status="sent", emailTo=payload.emailTo)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> Response:
    try:
        report_service.delete_report(report_id, user_id, session=db)
    except ReportServiceError as exc:
        _raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
