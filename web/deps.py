"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from services.job_dispatcher import JobDispatcher
from services.kpi_suggestion_service import KpiSuggestionService
from services.report_submission import ReportSubmissionService

_submission_service: Optional[ReportSubmissionService] = None
_kpi_service: Optional[KpiSuggestionService] = None


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    """Identity is asserted by the upstream gateway through the X-User-Id header."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "auth.required", "message": "Authentication is required for this request."},
        )
    return user_id


def get_submission_service() -> ReportSubmissionService:
    global _submission_service
    if _submission_service is None:
        _submission_service = ReportSubmissionService(JobDispatcher())
    return _submission_service


def get_kpi_service() -> KpiSuggestionService:
    global _kpi_service
    if _kpi_service is None:
        _kpi_service = KpiSuggestionService.from_settings()
    return _kpi_service
