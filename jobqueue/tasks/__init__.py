from .registry import TaskContext, TaskHandler, TaskRegistry, default_registry

__all__ = [
    "TaskContext",
    "TaskHandler",
    "TaskRegistry",
    "default_registry",
]
