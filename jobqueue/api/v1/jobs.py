from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select

from jobqueue.api.deps import DbSession
from jobqueue.commands.enqueue_job import enqueue_job
from jobqueue.db.models import Job
from jobqueue.domain.errors import JobValidationError
from jobqueue.domain.states import JobStatus

router = APIRouter()

class JobCreate(BaseModel):
    task_type: str = Field(min_length=1)
    payload: Any = Field(default_factory=dict)
    run_at: Optional[datetime] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)
    is_recurring: bool = False
    recurrence_interval_minutes: Optional[int] = None
    expires_at: Optional[datetime] = None

class JobResponse(BaseModel):
    id: UUID
    task_type: str
    status: JobStatus
    payload: Any = None
    output: Optional[Any] = None
    run_at: datetime
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    is_recurring: bool
    recurrence_interval_minutes: Optional[int] = None
    expires_at: Optional[datetime] = None
    enabled: bool = True
    last_run_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(body: JobCreate, session: DbSession):
    try:
        job = await enqueue_job(
            session,
            task_type=body.task_type,
            payload=body.payload,
            run_at=body.run_at,
            max_attempts=body.max_attempts,
            is_recurring=body.is_recurring,
            recurrence_interval_minutes=body.recurrence_interval_minutes,
            expires_at=body.expires_at,
        )
    except JobValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await session.commit()
    return job

@router.get("", response_model=list[JobResponse])
async def list_jobs(
    session: DbSession,
    status_filter: Optional[JobStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
):
    stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
    if status_filter:
        stmt = stmt.where(Job.status == status_filter)
    return (await session.scalars(stmt)).all()

@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: UUID, session: DbSession):
    job = await session.get(Job, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
