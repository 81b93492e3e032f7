from datetime import datetime
from typing import Optional, Any
from uuid import UUID, uuid4

from sqlalchemy import String, Integer, Boolean, Text, Index, Uuid, true
from sqlalchemy.orm import Mapped, mapped_column

from jobqueue.db.session import Base
from jobqueue.db.types import UTCDateTime, JSONDocument
from jobqueue.domain.states import JobStatus, WorkerRunStatus, TriggerSource
from jobqueue.utils.clock import utcnow

class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    task_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Core orchestration fields
    status: Mapped[JobStatus] = mapped_column(String(16), default=JobStatus.PENDING, nullable=False)

    # Scheduling fields
    run_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Retry logic
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_interval_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    # Operator switch; a disabled recurring job keeps its row but is never leased
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, server_default=true())

    # Payload
    payload: Mapped[Any] = mapped_column(JSONDocument, default=dict)
    output: Mapped[Optional[Any]] = mapped_column(JSONDocument, nullable=True)

    __table_args__ = (
        # Optimization for "poll" query: status=pending + run_at <= now
        Index("ix_jobs_poll", "status", "run_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.task_type} {self.status} attempts={self.attempts}/{self.max_attempts}>"

class WorkerRun(Base):
    __tablename__ = "worker_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    source: Mapped[TriggerSource] = mapped_column(String(16), default=TriggerSource.MANUAL, nullable=False)
    status: Mapped[WorkerRunStatus] = mapped_column(String(16), default=WorkerRunStatus.RUNNING, nullable=False)

    processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

class QueueSettings(Base):
    """Single-row operational switch (id = 1), read fresh by every dispatcher invocation."""
    __tablename__ = "job_queue_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    processing_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, server_default=true())
    paused_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

SETTINGS_ROW_ID = 1
