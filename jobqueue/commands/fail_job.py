import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus, JobOutcome
from jobqueue.domain.retry import calculate_next_run, calculate_next_recurrence, is_expired
from jobqueue.domain.errors import JobNotFoundError
from jobqueue.commands.transition import transition_running_job, reload_job
from jobqueue.api.v1.metrics import JOB_OUTCOMES
from jobqueue.utils.clock import utcnow

logger = logging.getLogger(__name__)

async def fail_job(
    session: AsyncSession,
    job_id: UUID,
    error: str,
    now: Optional[datetime] = None,
    retry_in_seconds: Optional[float] = None,
    permanent: bool = False,
) -> tuple[Optional[Job], JobOutcome]:
    """
    Records a failed attempt (handler error or timeout).

    - attempts left: back to PENDING, run_at pushed out by the backoff policy
    - exhausted, recurring and not expired: rewound to its next recurrence
    - otherwise (or permanent): FAILED, terminal
    """
    now = now or utcnow()

    job = await session.get(Job, job_id)
    if not job:
        raise JobNotFoundError(job_id)

    if job.status != JobStatus.RUNNING:
        logger.info("Discarding failure for job %s: status is %s", job_id, job.status)
        JOB_OUTCOMES.labels(task_type=job.task_type, outcome=JobOutcome.DISCARDED).inc()
        return job, JobOutcome.DISCARDED

    values: dict[str, Any] = {
        "last_error": error,
        "updated_at": now,
    }

    if not permanent and job.attempts < job.max_attempts:
        values.update(
            status=JobStatus.PENDING,
            run_at=calculate_next_run(now, job.attempts, retry_in_seconds),
        )
        outcome = JobOutcome.RETRIED
    elif (
        not permanent
        and job.is_recurring
        and job.recurrence_interval_minutes
        and not is_expired(job.expires_at, now)
    ):
        values.update(
            status=JobStatus.PENDING,
            attempts=0,
            completed_at=now,
            run_at=calculate_next_recurrence(now, job.recurrence_interval_minutes),
        )
        outcome = JobOutcome.RESCHEDULED
    else:
        values.update(
            status=JobStatus.FAILED,
            completed_at=now,
        )
        outcome = JobOutcome.FAILED

    updated = await transition_running_job(session, job_id, values)
    if updated is None:
        current = await reload_job(session, job_id)
        logger.info(
            "Discarding failure for job %s: status changed to %s during execution",
            job_id, current.status if current else "deleted",
        )
        JOB_OUTCOMES.labels(task_type=job.task_type, outcome=JobOutcome.DISCARDED).inc()
        return current, JobOutcome.DISCARDED

    if outcome == JobOutcome.RETRIED:
        logger.warning(
            "Job %s (%s) attempt %d/%d failed, retrying at %s: %s",
            job_id, updated.task_type, updated.attempts, updated.max_attempts,
            updated.run_at.isoformat(), error,
        )
    elif outcome == JobOutcome.RESCHEDULED:
        logger.error(
            "Recurring job %s (%s) exhausted %d attempts, next run at %s: %s",
            job_id, updated.task_type, updated.max_attempts, updated.run_at.isoformat(), error,
        )
    else:
        logger.error(
            "Job %s (%s) permanently failed after %d attempt(s): %s",
            job_id, updated.task_type, updated.attempts, error,
        )

    JOB_OUTCOMES.labels(task_type=updated.task_type, outcome=outcome).inc()
    await session.flush()
    return updated, outcome
