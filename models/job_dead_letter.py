import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from database import Base

DLQ_STATUS_PENDING = "pending"
DLQ_STATUS_REQUEUED = "requeued"
DLQ_STATUS_RESOLVED = "resolved"


class JobDeadLetter(Base):
    """Queue job that exhausted its retry budget."""

    __tablename__ = "job_dead_letters"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_name = Column(String, nullable=False, index=True)
    queue = Column(String(64), nullable=False, index=True)
    job_id = Column(String(128), nullable=True)
    report_id = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    error = Column(Text, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=DLQ_STATUS_PENDING)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
