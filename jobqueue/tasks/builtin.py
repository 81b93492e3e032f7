"""Smoke-test task types registered on the default registry."""

import asyncio
from typing import Any

from jobqueue.domain.errors import PermanentTaskError
from jobqueue.tasks.registry import TaskContext, default_registry


@default_registry.register("echo")
async def echo(payload: Any, ctx: TaskContext) -> dict[str, Any]:
    return {"echo": payload, "attempt": ctx.attempt}


@default_registry.register("sleep")
async def sleep(payload: Any, ctx: TaskContext) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise PermanentTaskError(f"sleep expects an object payload, got {type(payload).__name__}")
    seconds = payload.get("seconds", 1)
    if not isinstance(seconds, (int, float)) or seconds < 0:
        raise PermanentTaskError(f"Invalid sleep duration: {seconds!r}")
    await asyncio.sleep(seconds)
    return {"slept": seconds}
