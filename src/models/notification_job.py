"""Queued notification jobs."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from src.database import Base

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"


class NotificationJobRecord(Base):
    __tablename__ = "notification_jobs"

    id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    # Serialised NotificationJob; the columns below are for claiming and inspection.
    payload_json = Column(Text, nullable=False)
    subject_key = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    run_at = Column(DateTime(timezone=True), nullable=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    deliveries = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_notification_jobs_status_run_at", "status", "run_at"),)
