from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus

async def transition_running_job(
    session: AsyncSession,
    job_id: UUID,
    values: dict[str, Any],
) -> Optional[Job]:
    """
    Applies a post-execution transition only if the job is still running.

    Returns None when the guard fails, i.e. an operator cancelled the job
    while its handler was in flight; the outcome must then be dropped.
    """
    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.RUNNING)
        .values(**values)
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()

async def reload_job(session: AsyncSession, job_id: UUID) -> Optional[Job]:
    """Current row state, or None if an operator deleted it meanwhile."""
    return await session.get(Job, job_id, populate_existing=True)
