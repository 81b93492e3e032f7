import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus
from jobqueue.domain.errors import JobValidationError
from jobqueue.api.v1.metrics import JOBS_ENQUEUED
from jobqueue.settings import settings
from jobqueue.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0

async def enqueue_job(
    session: AsyncSession,
    task_type: str,
    payload: Any = None,
    run_at: Optional[datetime] = None,
    max_attempts: Optional[int] = None,
    is_recurring: bool = False,
    recurrence_interval_minutes: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Job:
    """
    Inserts a new pending job (one-off or recurring template).

    Validation happens before anything touches the session, so a rejected
    request never leaves a partial row behind. The caller owns the commit.
    """
    now = now or utcnow()

    task_type = (task_type or "").strip()
    if not task_type:
        raise JobValidationError("task_type must be a non-empty string")

    if payload is None:
        payload = {}
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise JobValidationError(f"payload must be JSON-serializable: {e}")

    if max_attempts is None:
        max_attempts = settings.DEFAULT_MAX_ATTEMPTS
    if not _is_positive_int(max_attempts):
        raise JobValidationError("max_attempts must be a positive integer")

    if is_recurring:
        if recurrence_interval_minutes is None:
            raise JobValidationError("Recurring jobs must have recurrence_interval_minutes")
        if not _is_positive_int(recurrence_interval_minutes):
            raise JobValidationError("recurrence_interval_minutes must be a positive integer")
    else:
        # Interval is meaningless without recurrence
        recurrence_interval_minutes = None

    job = Job(
        task_type=task_type,
        payload=payload,
        status=JobStatus.PENDING,
        run_at=ensure_utc(run_at) or now,
        attempts=0,
        max_attempts=max_attempts,
        is_recurring=bool(is_recurring),
        recurrence_interval_minutes=recurrence_interval_minutes,
        expires_at=ensure_utc(expires_at),
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    await session.flush()

    JOBS_ENQUEUED.labels(task_type=task_type).inc()
    logger.info(
        "Enqueued job %s (%s) run_at=%s recurring=%s",
        job.id, task_type, job.run_at.isoformat(), job.is_recurring,
    )
    return job
