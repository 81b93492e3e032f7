# tests/helpers.py

from __future__ import annotations

from typing import Any
from uuid import UUID

from jobqueue.commands.enqueue_job import enqueue_job
from jobqueue.db.models import Job


async def add_job(session_factory, clock, task_type: str = "echo", **kwargs: Any) -> Job:
    kwargs.setdefault("now", clock())
    async with session_factory() as session:
        job = await enqueue_job(session, task_type, **kwargs)
        await session.commit()
    return job


async def load_job(session_factory, job_id: UUID) -> Job | None:
    async with session_factory() as session:
        return await session.get(Job, job_id)
