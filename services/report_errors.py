"""Error taxonomy shared by the report submission path, workers and analytics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


class ReportServiceError(RuntimeError):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "report.error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_detail(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(ReportServiceError):
    """Bad input shape or size, rejected before anything is enqueued."""

    code = "report.invalid"
    status_code = 400


class InsufficientDataError(ReportServiceError):
    """A statistical precondition was not met; callers skip the computation."""

    code = "analysis.insufficient_data"
    status_code = 422


class NotFoundError(ReportServiceError):
    code = "report.not_found"
    status_code = 404


class ReportPermissionError(ReportServiceError):
    """Caller is not the owner of the report."""

    code = "report.forbidden"
    status_code = 403


PermissionError = ReportPermissionError


class ReportUnavailableError(ReportServiceError):
    """Report exists but its artifact cannot be served (not ready, expired or missing)."""

    code = "report.unavailable"
    status_code = 409


class InvalidTransitionError(ReportServiceError):
    code = "report.invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move report from {current} to {target}.")
        self.current = current
        self.target = target


class RenderFailure(ReportServiceError):
    """Document encoding failed; fatal to the report."""

    code = "report.render_failed"


class AnalysisFailure(ReportServiceError):
    """An analysis step failed; contained, partial insights are kept."""

    code = "analysis.failed"


class DispatchFailure(ReportServiceError):
    """Queue unavailable or saturated; the job was not enqueued."""

    code = "queue.unavailable"
    status_code = 503


class EmailDeliveryError(ReportServiceError):
    """The messaging service did not accept the report email."""

    code = "report.email_failed"
    status_code = 502


class TransientJobError(RuntimeError):
    """Raised by workers when the failure is worth retrying."""


@dataclass(frozen=True, slots=True)
class DeadLetterPayload:
    """Structured payload recorded when a job exhausts its retries."""

    task_name: str
    queue: str
    retries: int
    context: Mapping[str, Any]
    error: str
    report_id: Optional[str] = None


__all__ = [
    "AnalysisFailure",
    "DeadLetterPayload",
    "DispatchFailure",
    "EmailDeliveryError",
    "InsufficientDataError",
    "InvalidTransitionError",
    "NotFoundError",
    "PermissionError",
    "RenderFailure",
    "ReportPermissionError",
    "ReportServiceError",
    "ReportUnavailableError",
    "TransientJobError",
    "ValidationError",
]
