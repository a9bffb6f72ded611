import os
from typing import Generator

import pytest

os.environ.setdefault("DATABASE_ALLOW_NON_POSTGRES", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session, scoped_session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import database as database_module  # noqa: E402
import models  # noqa: E402,F401
from database import Base  # noqa: E402


# Report columns use PostgreSQL types; render them as TEXT on SQLite.
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(_element, _compiler, **_kw):
    return "TEXT"


@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(_element, _compiler, **_kw):
    return "TEXT"


@compiles(ARRAY, "sqlite")
def _compile_array_sqlite(_element, _compiler, **_kw):
    return "TEXT"


def _test_engine() -> Engine:
    url = os.environ["TEST_DATABASE_URL"]
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


@pytest.fixture(scope="session", autouse=True)
def engine() -> Generator[Engine, None, None]:
    """Create the report schema once and point ``database.SessionLocal`` at it."""
    test_engine = _test_engine()
    Base.metadata.create_all(bind=test_engine)

    factory = scoped_session(sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False))
    original_session_local, original_engine = database_module.SessionLocal, database_module.engine
    database_module.SessionLocal, database_module.engine = factory, test_engine
    try:
        yield test_engine
    finally:
        database_module.SessionLocal, database_module.engine = original_session_local, original_engine
        factory.remove()
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Plain session; repository helpers commit, so every table is emptied afterwards."""
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as connection:
            for table in reversed(Base.metadata.sorted_tables):
                connection.execute(table.delete())


@pytest.fixture()
def storage_settings(tmp_path):
    from core.config import StorageSettings

    return StorageSettings(
        storage_path=str(tmp_path / "reports"),
        retention_days=7,
        failed_retention_days=7,
        api_base_url="http://reports.test",
        max_rows={"EXCEL": 100000, "CSV": 1000000, "PDF": 10000, "HTML": 50000, "JSON": 1000000},
    )


@pytest.fixture()
def service_settings():
    from core.config import ServiceSettings

    return ServiceSettings(
        messaging_url="http://messaging.test",
        messaging_api_key="test-key",
        messaging_timeout_seconds=5.0,
        events_redis_url="",
        events_channel="report.completed",
        kpi_model="test-model",
        kpi_fallback_model="",
        kpi_cache_ttl_seconds=60,
        kpi_cache_max_entries=8,
    )


@pytest.fixture()
def analytics_settings():
    from core.config import AnalyticsSettings

    return AnalyticsSettings(
        min_records=100,
        anomaly_detection_enabled=True,
        forecasting_enabled=True,
        kpi_suggestions_enabled=True,
        anomaly_threshold=2.5,
        forecast_periods=3,
    )


@pytest.fixture()
def queue_settings():
    from core.config import QueueSettings

    return QueueSettings(
        broker_url="memory://",
        result_backend="cache+memory://",
        report_queue="reports",
        analysis_queue="ml-analysis",
        report_max_attempts=3,
        report_backoff_seconds=5,
        analysis_max_attempts=2,
        analysis_backoff_seconds=10,
        backoff_max_seconds=300,
        report_concurrency=5,
        analysis_concurrency=2,
        report_rate_limit="10/s",
        analysis_rate_limit="5/s",
        visibility_timeout_seconds=3600,
        max_queue_depth=0,
    )
