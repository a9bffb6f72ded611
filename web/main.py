"""FastAPI entrypoint for the report service API."""

from __future__ import annotations

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.env import env_csv
from core.logging import get_logger, setup_logging
from services.report_errors import ReportServiceError
from web.routers import analytics, health, reports

setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Business Report Service",
    description="Asynchronous report rendering with statistical insights.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=env_csv("CORS_ALLOW_ORIGINS", ["http://localhost:3000"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReportServiceError)
async def report_error_handler(request: Request, exc: ReportServiceError) -> JSONResponse:
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.get("/", summary="Health Check", tags=["Default"])
def health_check():
    """Liveness endpoint."""
    return {"status": "ok", "message": "Business Report Service API is running."}


@app.get("/healthz", include_in_schema=False)
def readiness_check():
    db_ok, db_error = health.ping_database()
    payload = {"status": "ok" if db_ok else "unhealthy", "database": {"ok": db_ok}}
    if db_error:
        payload["database"]["error"] = db_error
    status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(reports.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")
