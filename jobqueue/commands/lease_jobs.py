import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from jobqueue.db.models import Job
from jobqueue.domain.states import JobStatus
from jobqueue.api.v1.metrics import JOB_START_DELAY
from jobqueue.utils.clock import utcnow

logger = logging.getLogger(__name__)

async def lease_jobs(
    session: AsyncSession,
    limit: int,
    now: Optional[datetime] = None,
) -> list[Job]:
    """
    Atomically claims up to `limit` due jobs (pending, enabled, run_at <= now).

    The claim is a single conditional UPDATE: the inner SELECT picks candidates
    in (run_at, created_at) order, skipping rows another transaction has locked,
    and the outer WHERE re-checks status = pending, so two concurrent invocations
    can never both flip the same row to running.

    Each lease counts as one execution attempt.
    """
    if limit <= 0:
        return []

    now = now or utcnow()

    # Aliased so the subquery is not correlated against the UPDATE target
    candidate = aliased(Job)
    due = (
        select(candidate.id)
        .where(
            candidate.status == JobStatus.PENDING,
            candidate.enabled.is_(True),
            candidate.run_at <= now,
        )
        .order_by(candidate.run_at.asc(), candidate.created_at.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )

    stmt = (
        update(Job)
        .where(
            Job.id.in_(due),
            Job.status == JobStatus.PENDING,
            Job.enabled.is_(True),
        )
        .values(
            status=JobStatus.RUNNING,
            attempts=Job.attempts + 1,
            last_run_at=now,
            updated_at=now,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )

    result = await session.execute(stmt)
    jobs = list(result.scalars().all())

    # RETURNING order is unspecified
    jobs.sort(key=lambda j: (j.run_at, j.created_at))

    for job in jobs:
        delay = (now - job.run_at).total_seconds()
        if delay >= 0:
            JOB_START_DELAY.observe(delay)

    await session.flush()
    return jobs
