"""Grouped runtime settings for the report pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from core.env import env_bool, env_float, env_int, env_str


@dataclass(frozen=True)
class QueueSettings:
    """Broker, queue names and per-queue consumption limits."""

    broker_url: str
    result_backend: str
    report_queue: str
    analysis_queue: str
    report_max_attempts: int
    report_backoff_seconds: int
    analysis_max_attempts: int
    analysis_backoff_seconds: int
    backoff_max_seconds: int
    report_concurrency: int
    analysis_concurrency: int
    report_rate_limit: str
    analysis_rate_limit: str
    visibility_timeout_seconds: int
    max_queue_depth: int

    @classmethod
    def load(cls) -> "QueueSettings":
        return cls(
            broker_url=env_str("CELERY_BROKER_URL", "redis://redis:6379/0") or "redis://redis:6379/0",
            result_backend=env_str("CELERY_RESULT_BACKEND", "redis://redis:6379/1") or "redis://redis:6379/1",
            report_queue=env_str("QUEUE_REPORT_NAME", "reports") or "reports",
            analysis_queue=env_str("QUEUE_ML_NAME", "ml-analysis") or "ml-analysis",
            report_max_attempts=env_int("QUEUE_MAX_RETRIES", 3, minimum=1),
            report_backoff_seconds=env_int("QUEUE_REPORT_BACKOFF_SECONDS", 5, minimum=1),
            analysis_max_attempts=env_int("QUEUE_ML_MAX_ATTEMPTS", 2, minimum=1),
            analysis_backoff_seconds=env_int("QUEUE_ML_BACKOFF_SECONDS", 10, minimum=1),
            backoff_max_seconds=env_int("QUEUE_BACKOFF_MAX_SECONDS", 300, minimum=1),
            report_concurrency=env_int("QUEUE_REPORT_CONCURRENCY", 5, minimum=1),
            analysis_concurrency=env_int("QUEUE_ML_CONCURRENCY", 2, minimum=1),
            report_rate_limit=env_str("QUEUE_REPORT_RATE_LIMIT", "10/s") or "10/s",
            analysis_rate_limit=env_str("QUEUE_ML_RATE_LIMIT", "5/s") or "5/s",
            visibility_timeout_seconds=env_int("QUEUE_VISIBILITY_TIMEOUT_SECONDS", 3600, minimum=60),
            # 0 disables the depth check at submission time.
            max_queue_depth=env_int("REPORT_QUEUE_MAX_DEPTH", 0, minimum=0),
        )


@dataclass(frozen=True)
class StorageSettings:
    """Artifact location, retention and per-format row ceilings."""

    storage_path: str
    retention_days: int
    failed_retention_days: int
    api_base_url: str
    max_rows: Dict[str, int]

    @classmethod
    def load(cls) -> "StorageSettings":
        return cls(
            storage_path=env_str("STORAGE_PATH", "./storage/reports") or "./storage/reports",
            retention_days=env_int("FILE_RETENTION_DAYS", 7, minimum=1),
            failed_retention_days=env_int("FAILED_REPORT_RETENTION_DAYS", 7, minimum=1),
            api_base_url=(env_str("API_BASE_URL", "http://localhost:3000") or "").rstrip("/"),
            max_rows={
                "EXCEL": env_int("MAX_ROWS_EXCEL", 100000, minimum=1),
                "CSV": env_int("MAX_ROWS_CSV", 1000000, minimum=1),
                "PDF": env_int("MAX_ROWS_PDF", 10000, minimum=1),
                "HTML": env_int("MAX_ROWS_HTML", 50000, minimum=1),
                "JSON": env_int("MAX_ROWS_JSON", 1000000, minimum=1),
            },
        )


@dataclass(frozen=True)
class AnalyticsSettings:
    """Analysis gates and statistical defaults."""

    min_records: int
    anomaly_detection_enabled: bool
    forecasting_enabled: bool
    kpi_suggestions_enabled: bool
    anomaly_threshold: float
    forecast_periods: int

    @classmethod
    def load(cls) -> "AnalyticsSettings":
        return cls(
            min_records=env_int("ML_MIN_DATA_POINTS", 100, minimum=1),
            anomaly_detection_enabled=env_bool("ENABLE_ANOMALY_DETECTION", True),
            forecasting_enabled=env_bool("ENABLE_FORECASTING", True),
            kpi_suggestions_enabled=env_bool("ENABLE_KPI_SUGGESTIONS", True),
            anomaly_threshold=env_float("ANOMALY_THRESHOLD", 2.5, minimum=0.1),
            forecast_periods=env_int("FORECAST_PERIODS", 3, minimum=1, maximum=24),
        )

    def should_enable_analysis(self, record_count: int) -> bool:
        return record_count >= self.min_records


@dataclass(frozen=True)
class ServiceSettings:
    """Endpoints of the collaborating services."""

    messaging_url: str
    messaging_api_key: str
    messaging_timeout_seconds: float
    events_redis_url: str
    events_channel: str
    kpi_model: str
    kpi_fallback_model: str
    kpi_cache_ttl_seconds: int
    kpi_cache_max_entries: int

    @classmethod
    def load(cls) -> "ServiceSettings":
        return cls(
            messaging_url=(env_str("MESSAGING_SERVICE_URL", "http://localhost:3003") or "").rstrip("/"),
            messaging_api_key=env_str("MESSAGING_API_KEY", "") or "",
            messaging_timeout_seconds=env_float("MESSAGING_TIMEOUT_SECONDS", 30.0, minimum=1.0),
            events_redis_url=env_str("EVENTS_REDIS_URL", "redis://redis:6379/2") or "redis://redis:6379/2",
            events_channel=env_str("EVENTS_CHANNEL", "report.completed") or "report.completed",
            kpi_model=env_str("LLM_KPI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            kpi_fallback_model=env_str("LLM_KPI_FALLBACK_MODEL", "") or "",
            kpi_cache_ttl_seconds=env_int("KPI_CACHE_TTL_SECONDS", 86400, minimum=1),
            kpi_cache_max_entries=env_int("KPI_CACHE_MAX_ENTRIES", 256, minimum=1),
        )


__all__ = ["AnalyticsSettings", "QueueSettings", "ServiceSettings", "StorageSettings"]
