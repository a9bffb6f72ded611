"""Health-related API endpoints."""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from database import session_scope
from services import dead_letter_service
from services.job_dispatcher import JobDispatcher
from services.report_errors import DispatchFailure

router = APIRouter(prefix="/health", tags=["Health"])


def ping_database() -> Tuple[bool, Optional[str]]:
    """Return database connectivity status and optional error message."""
    try:
        with session_scope() as db:
            db.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        return False, str(exc)


def _queue_depths() -> dict:
    dispatcher = JobDispatcher()
    queues = dispatcher.settings
    depths = {}
    for queue in (queues.report_queue, queues.analysis_queue):
        try:
            depths[queue] = dispatcher.queue_depth(queue)
        except DispatchFailure as exc:
            depths[queue] = {"error": exc.message}
    return depths


@router.get(
    "/status",
    summary="Service runtime status",
    description="Database connectivity, queue depths and pending dead letters.",
)
def read_service_status():
    db_ok, db_error = ping_database()
    status = "ok" if db_ok else "degraded"
    payload = {"status": status, "database": {"ok": db_ok}, "queues": _queue_depths()}
    if db_error:
        payload["database"]["error"] = db_error
    else:
        with session_scope() as db:
            pending = dead_letter_service.list_dead_letters(db, status="pending", limit=500)
        payload["deadLetters"] = {"pending": len(pending)}
    return payload
