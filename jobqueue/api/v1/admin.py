from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from jobqueue.api.deps import DbSession, HealthMonitorDep
from jobqueue.api.v1.jobs import JobResponse
from jobqueue.api.v1.worker import WorkerRunResponse
from jobqueue.commands.admin_actions import apply_admin_action
from jobqueue.commands.processing import get_processing_settings, set_processing_enabled
from jobqueue.domain.errors import JobError, JobNotFoundError, InvalidJobStateError
from jobqueue.domain.states import AdminAction

router = APIRouter()

class ActionRequest(BaseModel):
    job_id: UUID
    action: AdminAction

class ActionResponse(BaseModel):
    action: AdminAction
    job_id: UUID
    deleted: bool = False
    job: Optional[JobResponse] = None

class ProcessingUpdate(BaseModel):
    enabled: bool
    reason: Optional[str] = None

class ProcessingResponse(BaseModel):
    processing_enabled: bool
    paused_reason: Optional[str] = None
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

class StuckJobResponse(BaseModel):
    id: UUID
    task_type: str
    age_minutes: int
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

class OverdueJobResponse(BaseModel):
    id: UUID
    task_type: str
    overdue_minutes: int
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    run_at: datetime
    model_config = ConfigDict(from_attributes=True)

class TriggerHealthResponse(BaseModel):
    last_triggered_at: Optional[datetime] = None
    age_minutes: Optional[int] = None
    expected_interval_minutes: int
    stale: bool
    model_config = ConfigDict(from_attributes=True)

class HealthResponse(BaseModel):
    generated_at: datetime
    queue_counts: dict[str, int]
    stuck_running: list[StuckJobResponse]
    overdue_pending: list[OverdueJobResponse]
    recent_worker_runs: list[WorkerRunResponse]
    last_trigger: TriggerHealthResponse
    processing_enabled: bool
    paused_reason: Optional[str] = None
    oldest_pending_age_minutes: Optional[int] = None
    recent_jobs: list[JobResponse]
    model_config = ConfigDict(from_attributes=True)

@router.get("/health", response_model=HealthResponse)
async def job_health(session: DbSession, monitor: HealthMonitorDep):
    report = await monitor.get_health(session)
    return HealthResponse.model_validate(report)

@router.post("/actions", response_model=ActionResponse)
async def job_action(body: ActionRequest, session: DbSession):
    try:
        job = await apply_admin_action(session, body.job_id, body.action)
    except JobNotFoundError as e:
        await session.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidJobStateError as e:
        await session.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except JobError as e:
        await session.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    await session.commit()
    return ActionResponse(
        action=body.action,
        job_id=body.job_id,
        deleted=job is None,
        job=JobResponse.model_validate(job) if job is not None else None,
    )

@router.get("/processing", response_model=ProcessingResponse)
async def get_processing(session: DbSession):
    return await get_processing_settings(session)

@router.post("/processing", response_model=ProcessingResponse)
async def update_processing(body: ProcessingUpdate, session: DbSession):
    row = await set_processing_enabled(session, body.enabled, body.reason)
    await session.commit()
    return row
