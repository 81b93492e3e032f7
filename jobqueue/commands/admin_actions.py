import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus, AdminAction
from jobqueue.domain.errors import JobNotFoundError, InvalidJobStateError, JobValidationError
from jobqueue.utils.clock import utcnow

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (JobStatus.FAILED, JobStatus.PENDING)
CANCELLABLE_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)

async def _current_status_or_404(session: AsyncSession, job_id: UUID) -> JobStatus:
    job = await session.get(Job, job_id, populate_existing=True)
    if not job:
        raise JobNotFoundError(job_id)
    return job.status

async def retry_job(session: AsyncSession, job_id: UUID, now: Optional[datetime] = None) -> Job:
    """
    Makes a failed (or pending) job due immediately.
    A failed job gets a fresh attempt budget. Retrying a pending job leaves
    attempts untouched and only clears last_error, so repeating it is a no-op.
    Running, succeeded and cancelled jobs are rejected.
    """
    now = now or utcnow()
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status.in_(RETRYABLE_STATUSES))
        .values(
            status=JobStatus.PENDING,
            # CASE sees the pre-update status
            attempts=case((Job.status == JobStatus.FAILED, 0), else_=Job.attempts),
            run_at=now,
            last_error=None,
            completed_at=None,
            updated_at=now,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    job = (await session.execute(stmt)).scalar_one_or_none()
    if not job:
        current = await _current_status_or_404(session, job_id)
        raise InvalidJobStateError(current, JobStatus.PENDING)

    logger.info("Job %s reset for retry by operator", job_id)
    await session.flush()
    return job

async def cancel_job(session: AsyncSession, job_id: UUID, now: Optional[datetime] = None) -> Job:
    """
    Marks a pending or running job cancelled. A running handler is not killed;
    the dispatcher drops its result when it finishes. Cancelling twice is a no-op.
    """
    now = now or utcnow()
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status.in_(CANCELLABLE_STATUSES))
        .values(
            status=JobStatus.CANCELLED,
            completed_at=now,
            updated_at=now,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    job = (await session.execute(stmt)).scalar_one_or_none()
    if not job:
        current = await _current_status_or_404(session, job_id)
        if current == JobStatus.CANCELLED:
            return await session.get(Job, job_id)
        raise InvalidJobStateError(current, JobStatus.CANCELLED)

    logger.info("Job %s cancelled by operator", job_id)
    await session.flush()
    return job

async def delete_job(session: AsyncSession, job_id: UUID) -> UUID:
    """
    Removes the row. Refused while running, since a handler may still report on it.
    """
    stmt = (
        delete(Job)
        .where(Job.id == job_id, Job.status != JobStatus.RUNNING)
        .returning(Job.id)
        .execution_options(synchronize_session=False)
    )
    deleted_id = (await session.execute(stmt)).scalar_one_or_none()
    if deleted_id is None:
        current = await _current_status_or_404(session, job_id)
        raise InvalidJobStateError(current, "deleted")

    logger.info("Job %s deleted by operator", job_id)
    await session.flush()
    return deleted_id

async def set_job_enabled(
    session: AsyncSession,
    job_id: UUID,
    enabled: bool,
    now: Optional[datetime] = None,
) -> Job:
    """
    Switches a recurring job on or off without touching its schedule.

    A disabled job is skipped by the lease query whatever its run_at; a run
    already in flight still finishes and reschedules normally. Re-enabling a
    job whose run_at has passed makes it due on the next invocation.
    Idempotent in both directions.
    """
    now = now or utcnow()
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.is_recurring.is_(True))
        .values(enabled=enabled, updated_at=now)
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    job = (await session.execute(stmt)).scalar_one_or_none()
    if not job:
        await _current_status_or_404(session, job_id)
        raise JobValidationError("Only recurring jobs can be enabled or disabled")

    logger.info("Recurring job %s %s by operator", job_id, "enabled" if enabled else "disabled")
    await session.flush()
    return job

async def apply_admin_action(
    session: AsyncSession,
    job_id: UUID,
    action: AdminAction,
    now: Optional[datetime] = None,
) -> Optional[Job]:
    """Dispatches one operator action. Returns the updated job, or None after a delete."""
    if action == AdminAction.RETRY:
        return await retry_job(session, job_id, now=now)
    if action == AdminAction.CANCEL:
        return await cancel_job(session, job_id, now=now)
    if action == AdminAction.DELETE:
        await delete_job(session, job_id)
        return None
    if action in (AdminAction.ENABLE, AdminAction.DISABLE):
        return await set_job_enabled(session, job_id, action == AdminAction.ENABLE, now=now)
    raise ValueError(f"Unknown action: {action}")
