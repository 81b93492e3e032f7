from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from jobqueue.api.deps import DispatcherDep
from jobqueue.domain.states import JobOutcome, TriggerSource, WorkerRunStatus

router = APIRouter()

class TriggerRequest(BaseModel):
    batch_size: Optional[int] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    # The external timer posts an empty body; operator kicks send "manual"
    source: TriggerSource = TriggerSource.CRON
    force: bool = False

class WorkerRunResponse(BaseModel):
    id: int
    source: TriggerSource
    status: WorkerRunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    processed: int
    succeeded: int
    failed: int
    message: Optional[str] = None
    error_message: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

class JobRunResultResponse(BaseModel):
    id: UUID
    task_type: str
    status: str
    outcome: JobOutcome
    attempts: int
    last_error: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

class WorkerRunSummary(BaseModel):
    run: WorkerRunResponse
    paused: bool
    results: list[JobRunResultResponse]
    model_config = ConfigDict(from_attributes=True)

@router.post("/trigger", response_model=WorkerRunSummary)
async def trigger(dispatcher: DispatcherDep, body: Optional[TriggerRequest] = None):
    body = body or TriggerRequest()
    result = await dispatcher.run_once(
        batch_size=body.batch_size,
        timeout=body.timeout_seconds,
        source=body.source,
        force=body.force,
    )
    return WorkerRunSummary.model_validate(result)
