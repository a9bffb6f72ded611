"""Database engine, session factory and declarative base for report storage."""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

load_dotenv()

TEST_DATABASE_URL: Optional[str] = os.getenv("TEST_DATABASE_URL")
DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or TEST_DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL or TEST_DATABASE_URL must be set.")

# Row locks and JSONB metadata merges rely on PostgreSQL; SQLite is for local runs only.
ALLOW_NON_POSTGRES = os.getenv("DATABASE_ALLOW_NON_POSTGRES", "0") == "1"
IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")
if not IS_POSTGRES and not ALLOW_NON_POSTGRES:
    raise RuntimeError(f"DATABASE_URL must be a PostgreSQL DSN (got {DATABASE_URL}).")


def _engine_options(url: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}, {}
    return {}, {
        "pool_pre_ping": True,
        "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
    }


_connect_args, _engine_kwargs = _engine_options(DATABASE_URL)
engine = create_engine(DATABASE_URL, connect_args=_connect_args, **_engine_kwargs)
# Workers hand detached Report rows back to callers after commit.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base shared by reports and job dead letters."""


@contextmanager
def session_scope() -> Iterator[Session]:
    """Yield a short-lived session that is always closed."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_db():
    with session_scope() as db:
        yield db
