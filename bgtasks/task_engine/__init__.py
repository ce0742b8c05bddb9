"""Background task orchestration: registry, event bus and manager."""

from bgtasks.task_engine.types import (
    ErrorKind,
    KillResult,
    StartResult,
    TaskEvent,
    TaskEventType,
    TaskRecord,
    TaskRequest,
    TaskStatus,
    TaskType,
    TaskValidationError,
)
from bgtasks.task_engine.cancellation import CancellationToken, TaskCancelledError
from bgtasks.task_engine.events import EventBus
from bgtasks.task_engine.executor import ExecutionContext, ExecutorOutcome, TaskExecutor
from bgtasks.task_engine.registry import TaskRegistry
from bgtasks.task_engine.manager import (
    TaskManager,
    get_task_manager,
    reset_task_manager,
    set_task_manager,
)

__all__ = [
    "ErrorKind",
    "KillResult",
    "StartResult",
    "TaskEvent",
    "TaskEventType",
    "TaskRecord",
    "TaskRequest",
    "TaskStatus",
    "TaskType",
    "TaskValidationError",
    "CancellationToken",
    "TaskCancelledError",
    "EventBus",
    "ExecutionContext",
    "ExecutorOutcome",
    "TaskExecutor",
    "TaskRegistry",
    "TaskManager",
    "get_task_manager",
    "reset_task_manager",
    "set_task_manager",
]
