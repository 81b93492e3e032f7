from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import Job, WorkerRun
from jobqueue.domain.states import JobStatus, TriggerSource
from jobqueue.domain.models import HealthReport, OverdueJob, StuckJob, TriggerHealth
from jobqueue.commands.processing import get_processing_settings
from jobqueue.api.v1.metrics import QUEUE_DEPTH, PROCESSING_ENABLED
from jobqueue.settings import settings
from jobqueue.utils.clock import Clock, minutes_between, utcnow

RECENT_JOBS_LIMIT = 10

class HealthMonitor:
    """
    Read-only view over the job store for operators.

    Nothing here remediates: stuck jobs stay running (the original worker may be
    slow rather than dead) and overdue jobs stay pending until someone acts.
    """

    def __init__(
        self,
        stuck_threshold_minutes: Optional[int] = None,
        overdue_threshold_minutes: Optional[int] = None,
        recent_runs_limit: Optional[int] = None,
        expected_trigger_interval_minutes: Optional[int] = None,
        trigger_stale_factor: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        if stuck_threshold_minutes is None:
            stuck_threshold_minutes = settings.STUCK_RUNNING_THRESHOLD_MINUTES
        if overdue_threshold_minutes is None:
            overdue_threshold_minutes = settings.OVERDUE_PENDING_THRESHOLD_MINUTES

        self.stuck_threshold = timedelta(minutes=stuck_threshold_minutes)
        self.overdue_threshold = timedelta(minutes=overdue_threshold_minutes)
        self.recent_runs_limit = settings.RECENT_WORKER_RUNS_LIMIT if recent_runs_limit is None else recent_runs_limit
        self.expected_trigger_interval_minutes = (
            settings.EXPECTED_TRIGGER_INTERVAL_MINUTES
            if expected_trigger_interval_minutes is None
            else expected_trigger_interval_minutes
        )
        self.trigger_stale_factor = settings.TRIGGER_STALE_FACTOR if trigger_stale_factor is None else trigger_stale_factor
        self.clock = clock

    async def get_health(self, session: AsyncSession) -> HealthReport:
        now = self.clock()

        queue_counts = await self.queue_counts(session)
        for status, count in queue_counts.items():
            QUEUE_DEPTH.labels(status=status).set(count)

        queue_settings = await get_processing_settings(session)
        PROCESSING_ENABLED.set(1 if queue_settings.processing_enabled else 0)

        oldest_pending = await session.scalar(
            select(Job)
            .where(Job.status == JobStatus.PENDING, Job.enabled.is_(True))
            .order_by(Job.run_at.asc())
            .limit(1)
        )
        oldest_pending_age = None
        if oldest_pending is not None and oldest_pending.run_at <= now:
            oldest_pending_age = minutes_between(oldest_pending.run_at, now)

        recent_jobs = (await session.scalars(
            select(Job).order_by(Job.created_at.desc()).limit(RECENT_JOBS_LIMIT)
        )).all()

        return HealthReport(
            generated_at=now,
            queue_counts=queue_counts,
            stuck_running=await self.stuck_running(session, now),
            overdue_pending=await self.overdue_pending(session, now),
            recent_worker_runs=await self.recent_worker_runs(session),
            last_trigger=await self.last_trigger(session, now),
            processing_enabled=queue_settings.processing_enabled,
            paused_reason=queue_settings.paused_reason,
            oldest_pending_age_minutes=oldest_pending_age,
            recent_jobs=list(recent_jobs),
        )

    async def queue_counts(self, session: AsyncSession) -> dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        rows = (await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )).all()
        for status, count in rows:
            counts[str(status)] = count
        return counts

    async def stuck_running(self, session: AsyncSession, now: datetime) -> list[StuckJob]:
        # Nothing touches updated_at while a handler runs, so an old value means
        # the worker died or hung between lease and outcome.
        cutoff = now - self.stuck_threshold
        jobs = (await session.scalars(
            select(Job)
            .where(Job.status == JobStatus.RUNNING, Job.updated_at < cutoff)
            .order_by(Job.updated_at.asc())
        )).all()
        return [
            StuckJob(
                id=job.id,
                task_type=job.task_type,
                age_minutes=minutes_between(job.updated_at, now),
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                last_error=job.last_error,
                updated_at=job.updated_at,
            )
            for job in jobs
        ]

    async def overdue_pending(self, session: AsyncSession, now: datetime) -> list[OverdueJob]:
        cutoff = now - self.overdue_threshold
        jobs = (await session.scalars(
            select(Job)
            # Disabled recurring jobs are waiting on an operator, not overdue
            .where(Job.status == JobStatus.PENDING, Job.enabled.is_(True), Job.run_at < cutoff)
            .order_by(Job.run_at.asc(), Job.created_at.asc())
        )).all()
        return [
            OverdueJob(
                id=job.id,
                task_type=job.task_type,
                overdue_minutes=minutes_between(job.run_at, now),
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                last_error=job.last_error,
                run_at=job.run_at,
            )
            for job in jobs
        ]

    async def recent_worker_runs(self, session: AsyncSession) -> list[WorkerRun]:
        runs = await session.scalars(
            select(WorkerRun)
            .order_by(WorkerRun.started_at.desc(), WorkerRun.id.desc())
            .limit(self.recent_runs_limit)
        )
        return list(runs.all())

    async def last_trigger(self, session: AsyncSession, now: datetime) -> TriggerHealth:
        """Age of the last invocation by the external timer against its expected cadence."""
        last = await session.scalar(
            select(WorkerRun)
            .where(WorkerRun.source == TriggerSource.CRON)
            .order_by(WorkerRun.started_at.desc(), WorkerRun.id.desc())
            .limit(1)
        )
        if last is None:
            return TriggerHealth(
                last_triggered_at=None,
                age_minutes=None,
                expected_interval_minutes=self.expected_trigger_interval_minutes,
                stale=True,
            )

        age = now - last.started_at
        stale_after = timedelta(minutes=self.expected_trigger_interval_minutes * self.trigger_stale_factor)
        return TriggerHealth(
            last_triggered_at=last.started_at,
            age_minutes=max(minutes_between(last.started_at, now), 0),
            expected_interval_minutes=self.expected_trigger_interval_minutes,
            stale=age > stale_after,
        )
