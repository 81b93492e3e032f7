import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from jobqueue.domain.errors import UnknownTaskTypeError

logger = logging.getLogger(__name__)

@dataclass
class TaskContext:
    job_id: UUID
    task_type: str
    attempt: int
    max_attempts: int
    is_recurring: bool = False
    logger: logging.Logger = field(default=logger)

# A handler receives the job payload verbatim and returns a JSON-compatible output.
TaskHandler = Callable[[Any, TaskContext], Union[Awaitable[Any], Any]]

class TaskRegistry:
    """
    Maps task_type strings to handlers.

    Populated at startup; a missing key is a deployment error and the
    dispatcher fails such jobs without retrying them.
    """

    def __init__(self):
        self._handlers: dict[str, TaskHandler] = {}

    def register(self, task_type: str, handler: Optional[TaskHandler] = None):
        """
        Registers a handler. Usable directly or as a decorator:

            @registry.register("sync_roster")
            async def sync_roster(payload, ctx): ...
        """
        if not task_type or not task_type.strip():
            raise ValueError("task_type must be a non-empty string")

        def decorator(fn: TaskHandler) -> TaskHandler:
            if task_type in self._handlers and self._handlers[task_type] is not fn:
                logger.warning("Replacing handler for task type %s", task_type)
            self._handlers[task_type] = fn
            return fn

        if handler is not None:
            return decorator(handler)
        return decorator

    def unregister(self, task_type: str) -> None:
        self._handlers.pop(task_type, None)

    def get(self, task_type: str) -> TaskHandler:
        handler = self._handlers.get(task_type)
        if handler is None:
            raise UnknownTaskTypeError(task_type)
        return handler

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._handlers

    def task_types(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(self, handler: TaskHandler, payload: Any, ctx: TaskContext) -> Any:
        # Plain functions run in a thread so the caller's deadline still applies.
        # An abandoned thread keeps running; handlers must tolerate being re-run.
        if inspect.iscoroutinefunction(handler):
            return await handler(payload, ctx)
        result = await asyncio.to_thread(handler, payload, ctx)
        if inspect.isawaitable(result):
            return await result
        return result

default_registry = TaskRegistry()
