"""SQLAlchemy ORM for asynchronously generated business reports."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from database import Base

STATUS_PENDING = "PENDING"
STATUS_PROCESSING = "PROCESSING"
STATUS_ANALYZING = "ANALYZING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

REPORT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_ANALYZING, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

REPORT_TYPES = ("SALES", "INVENTORY", "FINANCIAL", "USERS", "LOGS", "ANALYTICS", "PREDICTIVE", "CUSTOM")
REPORT_FORMATS = ("PDF", "EXCEL", "CSV", "HTML", "JSON")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Report(Base):
    """Report request, its processing status and the resulting artifact."""

    __tablename__ = "business_reports"
    __table_args__ = (Index("ix_business_reports_user_created", "user_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    format = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    metadata_json = Column("metadata", JSONB, nullable=False, default=dict)
    email_to = Column(String(320), nullable=True)
    analysis_enabled = Column(Boolean, nullable=False, default=False)
    file_path = Column(Text, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    download_url = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    processing_ms = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


__all__ = [
    "REPORT_FORMATS",
    "REPORT_STATUSES",
    "REPORT_TYPES",
    "Report",
    "STATUS_ANALYZING",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "STATUS_PROCESSING",
    "TERMINAL_STATUSES",
]
