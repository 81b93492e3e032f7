import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus, JobOutcome
from jobqueue.domain.errors import JobNotFoundError
from jobqueue.domain.retry import calculate_next_recurrence, is_expired
from jobqueue.commands.transition import transition_running_job, reload_job
from jobqueue.api.v1.metrics import JOB_OUTCOMES
from jobqueue.utils.clock import utcnow

logger = logging.getLogger(__name__)

async def complete_job(
    session: AsyncSession,
    job_id: UUID,
    output: Any,
    now: Optional[datetime] = None,
) -> tuple[Optional[Job], JobOutcome]:
    """
    Records a successful run.

    One-off jobs become SUCCEEDED. Recurring jobs are rewound to PENDING with
    run_at = now + interval and a fresh attempt budget, unless expires_at has
    passed, in which case they stay SUCCEEDED.
    The transition is skipped if the job is no longer RUNNING (cancelled mid-flight).
    """
    now = now or utcnow()

    job = await session.get(Job, job_id)
    if not job:
        raise JobNotFoundError(job_id)

    if job.status != JobStatus.RUNNING:
        logger.info("Discarding result for job %s: status is %s", job_id, job.status)
        JOB_OUTCOMES.labels(task_type=job.task_type, outcome=JobOutcome.DISCARDED).inc()
        return job, JobOutcome.DISCARDED

    values: dict[str, Any] = {
        "status": JobStatus.SUCCEEDED,
        "output": output,
        "last_error": None,
        "completed_at": now,
        "updated_at": now,
    }
    outcome = JobOutcome.SUCCEEDED

    if job.is_recurring and job.recurrence_interval_minutes:
        if is_expired(job.expires_at, now):
            logger.info("Recurring job %s expired at %s; not rescheduling", job_id, job.expires_at)
        else:
            values.update(
                status=JobStatus.PENDING,
                attempts=0,
                run_at=calculate_next_recurrence(now, job.recurrence_interval_minutes),
            )
            outcome = JobOutcome.RESCHEDULED

    updated = await transition_running_job(session, job_id, values)
    if updated is None:
        current = await reload_job(session, job_id)
        logger.info(
            "Discarding result for job %s: status changed to %s during execution",
            job_id, current.status if current else "deleted",
        )
        JOB_OUTCOMES.labels(task_type=job.task_type, outcome=JobOutcome.DISCARDED).inc()
        return current, JobOutcome.DISCARDED

    JOB_OUTCOMES.labels(task_type=updated.task_type, outcome=outcome).inc()
    await session.flush()
    return updated, outcome
