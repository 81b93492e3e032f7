import asyncio
import json
import logging
import time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.db.models import Job, WorkerRun
from jobqueue.db.session import AsyncSessionLocal
from jobqueue.domain.states import JobOutcome, TriggerSource, WorkerRunStatus
from jobqueue.domain.errors import JobNotFoundError, PermanentTaskError, TaskError, UnknownTaskTypeError
from jobqueue.domain.models import DispatchResult, JobRunResult
from jobqueue.commands.lease_jobs import lease_jobs
from jobqueue.commands.complete_job import complete_job
from jobqueue.commands.fail_job import fail_job
from jobqueue.commands.processing import get_processing_settings
from jobqueue.commands.worker_runs import open_worker_run, close_worker_run
from jobqueue.api.v1.metrics import JOB_DURATION
from jobqueue.tasks.registry import TaskContext, TaskRegistry, default_registry
from jobqueue.settings import settings
from jobqueue.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

def clamp_batch_size(batch_size: Optional[int]) -> int:
    if not batch_size or batch_size <= 0:
        return settings.DEFAULT_BATCH_SIZE
    return min(batch_size, settings.MAX_BATCH_SIZE)

class Dispatcher:
    """
    One bounded batch per call: lease due jobs, run their handlers, record outcomes.

    Holds no state between invocations, so any external timer (cron hitting the
    trigger endpoint, the CLI, a test) may call run_once, including concurrently.
    All coordination goes through conditional updates on the job rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        registry: TaskRegistry = default_registry,
        concurrency: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.clock = clock

    async def run_once(
        self,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        source: TriggerSource = TriggerSource.MANUAL,
        force: bool = False,
    ) -> DispatchResult:
        limit = clamp_batch_size(batch_size)
        timeout = settings.HANDLER_TIMEOUT_SECONDS if timeout is None else timeout

        async with self.session_factory() as session:
            run = await open_worker_run(session, source, now=self.clock())
            await session.commit()
        run_id = run.id

        results: list[JobRunResult] = []
        try:
            async with self.session_factory() as session:
                # Read fresh every invocation; operators may flip it at any time
                queue_settings = await get_processing_settings(session)
                if not force and not queue_settings.processing_enabled:
                    reason = queue_settings.paused_reason or "Job processing is paused by an administrator."
                    logger.info("Worker run %s skipped: %s", run_id, reason)
                    run = await self._close(run_id, WorkerRunStatus.COMPLETED, results, message=f"paused: {reason}")
                    return DispatchResult(run=run, paused=True)

                jobs = await lease_jobs(session, limit, now=self.clock())
                await session.commit()

            if jobs:
                logger.info("Worker run %s leased %d job(s) (source=%s)", run_id, len(jobs), source)

            semaphore = asyncio.Semaphore(self.concurrency)
            outcomes = await asyncio.gather(
                *(self._run_guarded(semaphore, job, timeout) for job in jobs),
                return_exceptions=True,
            )

            errors: list[BaseException] = []
            for outcome in outcomes:
                if isinstance(outcome, JobRunResult):
                    results.append(outcome)
                else:
                    errors.append(outcome)
            # Handler errors are contained per job, so only store failures and
            # cancellations reach here. Cancellations are re-raised first.
            errors.sort(key=lambda e: isinstance(e, Exception))
            if errors:
                raise errors[0]

        except Exception as e:
            logger.error(f"Worker run {run_id} aborted: {e}", exc_info=True)
            run = await self._close(
                run_id,
                WorkerRunStatus.FAILED,
                results,
                message=f"aborted after {len(results)} job(s)",
                error_message=str(e) or type(e).__name__,
            )
            return DispatchResult(run=run, results=results)
        except BaseException as e:
            # Cancelled or interrupted mid-batch: never leave the run open
            logger.warning("Worker run %s interrupted (%s)", run_id, type(e).__name__)
            await self._close(
                run_id,
                WorkerRunStatus.FAILED,
                results,
                message=f"interrupted after {len(results)} job(s)",
                error_message=str(e) or type(e).__name__,
            )
            raise

        message = f"processed {len(results)} job(s)" if results else "no jobs available"
        run = await self._close(run_id, WorkerRunStatus.COMPLETED, results, message=message)
        return DispatchResult(run=run, results=results)

    async def _close(
        self,
        run_id: int,
        status: WorkerRunStatus,
        results: list[JobRunResult],
        message: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> WorkerRun:
        counted = [r for r in results if r.outcome != JobOutcome.DISCARDED]
        succeeded = sum(1 for r in counted if r.handler_succeeded)
        async with self.session_factory() as session:
            run = await close_worker_run(
                session,
                run_id,
                status=status,
                processed=len(results),
                succeeded=succeeded,
                failed=len(counted) - succeeded,
                message=message,
                error_message=error_message,
                now=self.clock(),
            )
            await session.commit()

        logger.info(
            "Worker run %s %s: processed=%d succeeded=%d failed=%d",
            run_id, status, run.processed, run.succeeded, run.failed,
        )
        return run

    async def _run_guarded(self, semaphore: asyncio.Semaphore, job: Job, timeout: float) -> JobRunResult:
        async with semaphore:
            return await self._process_job(job, timeout)

    async def _process_job(self, job: Job, timeout: float) -> JobRunResult:
        try:
            handler = self.registry.get(job.task_type)
        except UnknownTaskTypeError as e:
            # Deployment error, not transient: no retries
            logger.error("Job %s: %s", job.id, e)
            return await self._record_failure(job, str(e), permanent=True)

        ctx = TaskContext(
            job_id=job.id,
            task_type=job.task_type,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            is_recurring=job.is_recurring,
        )

        output: Any = None
        error: Optional[str] = None
        retry_in: Optional[float] = None
        permanent = False

        started = time.monotonic()
        try:
            output = await asyncio.wait_for(
                self.registry.invoke(handler, job.payload, ctx),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = f"Handler timed out after {timeout:g}s"
        except PermanentTaskError as e:
            error, permanent = str(e), True
        except TaskError as e:
            error, retry_in = str(e), e.retry_in_seconds
        except Exception as e:
            logger.exception("Job %s (%s) raised", job.id, job.task_type)
            error = str(e) or type(e).__name__
        JOB_DURATION.observe(time.monotonic() - started)

        if error is None:
            try:
                json.dumps(output, allow_nan=False)
            except (TypeError, ValueError) as e:
                error = f"Handler returned non-JSON output: {e}"

        if error is not None:
            return await self._record_failure(job, error, retry_in_seconds=retry_in, permanent=permanent)

        async with self.session_factory() as session:
            try:
                updated, outcome = await complete_job(session, job.id, output, now=self.clock())
            except JobNotFoundError:
                updated, outcome = None, JobOutcome.DISCARDED
            await session.commit()

        if outcome != JobOutcome.DISCARDED:
            logger.info("Job %s (%s) %s on attempt %d", job.id, job.task_type, outcome, job.attempts)
        return self._result(job, updated, outcome, handler_succeeded=True)

    async def _record_failure(
        self,
        job: Job,
        error: str,
        retry_in_seconds: Optional[float] = None,
        permanent: bool = False,
    ) -> JobRunResult:
        async with self.session_factory() as session:
            try:
                updated, outcome = await fail_job(
                    session,
                    job.id,
                    error,
                    now=self.clock(),
                    retry_in_seconds=retry_in_seconds,
                    permanent=permanent,
                )
            except JobNotFoundError:
                updated, outcome = None, JobOutcome.DISCARDED
            await session.commit()
        return self._result(job, updated, outcome, handler_succeeded=False)

    @staticmethod
    def _result(
        leased: Job,
        updated: Optional[Job],
        outcome: JobOutcome,
        handler_succeeded: bool,
    ) -> JobRunResult:
        current = updated or leased
        return JobRunResult(
            id=leased.id,
            task_type=leased.task_type,
            status=str(current.status) if updated else "deleted",
            outcome=outcome,
            handler_succeeded=handler_succeeded,
            attempts=current.attempts,
            last_error=current.last_error,
        )
