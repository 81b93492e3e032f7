from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import WorkerRun
from jobqueue.domain.states import TriggerSource, WorkerRunStatus
from jobqueue.api.v1.metrics import WORKER_RUNS
from jobqueue.utils.clock import utcnow

async def open_worker_run(
    session: AsyncSession,
    source: TriggerSource,
    now: Optional[datetime] = None,
) -> WorkerRun:
    run = WorkerRun(
        source=source,
        status=WorkerRunStatus.RUNNING,
        started_at=now or utcnow(),
        processed=0,
        succeeded=0,
        failed=0,
    )
    session.add(run)
    await session.flush()
    return run

async def close_worker_run(
    session: AsyncSession,
    run_id: int,
    status: WorkerRunStatus,
    processed: int = 0,
    succeeded: int = 0,
    failed: int = 0,
    message: Optional[str] = None,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WorkerRun:
    run = await session.get(WorkerRun, run_id)
    if run is None:
        raise LookupError(f"WorkerRun {run_id} not found")

    run.status = status
    run.processed = processed
    run.succeeded = succeeded
    run.failed = failed
    run.message = message
    run.error_message = error_message
    run.completed_at = now or utcnow()
    await session.flush()

    WORKER_RUNS.labels(source=run.source, status=status).inc()
    return run
