from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any
from uuid import UUID

from jobqueue.domain.states import JobOutcome

@dataclass
class JobRunResult:
    """What happened to one leased job during a dispatcher invocation."""
    id: UUID
    task_type: str
    status: str
    outcome: JobOutcome
    handler_succeeded: bool
    attempts: int
    last_error: Optional[str] = None

@dataclass
class DispatchResult:
    run: Any  # WorkerRun row, detached
    paused: bool = False
    results: list[JobRunResult] = field(default_factory=list)

@dataclass
class StuckJob:
    id: UUID
    task_type: str
    age_minutes: int
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    updated_at: datetime

@dataclass
class OverdueJob:
    id: UUID
    task_type: str
    overdue_minutes: int
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    run_at: datetime

@dataclass
class TriggerHealth:
    last_triggered_at: Optional[datetime]
    age_minutes: Optional[int]
    expected_interval_minutes: int
    stale: bool

@dataclass
class HealthReport:
    generated_at: datetime
    queue_counts: dict[str, int]
    stuck_running: list[StuckJob]
    overdue_pending: list[OverdueJob]
    recent_worker_runs: list[Any]
    last_trigger: TriggerHealth
    processing_enabled: bool
    paused_reason: Optional[str]
    oldest_pending_age_minutes: Optional[int]
    recent_jobs: list[Any] = field(default_factory=list)
