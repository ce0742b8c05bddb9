"""Core types for background task orchestration."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


class TaskType(str, Enum):
    """Strategy selector choosing which executor behavior to run."""

    RESEARCH = "research"
    CODING = "coding"
    FULL = "full"
    PLANNING = "planning"
    CUSTOM = "custom"


class TaskStatus(str, Enum):
    """Lifecycle status of a background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.RUNNING})
TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.KILLED})

# Legal status transitions; terminal statuses have none
TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.KILLED}),
    TaskStatus.RUNNING: TERMINAL_STATUSES,
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.KILLED: frozenset(),
}


class ErrorKind(str, Enum):
    """Failure categories reported at the manager boundary."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    VALIDATION = "validation"
    EXECUTOR_FAILURE = "executor_failure"


class TaskValidationError(ValueError):
    """Raised when a task request is malformed."""


@dataclass(frozen=True)
class TaskRequest:
    """Input for spawning a background task."""

    parent_id: str
    type: TaskType | str
    prompt: str
    cwd: str | None = None
    model_id: str | None = None
    max_turns: int | None = None
    verbose: bool = False


def validate_request(request: TaskRequest) -> TaskType:
    """Check a request and return its resolved TaskType.

    Raises TaskValidationError on an unknown type or an empty prompt.
    """
    try:
        task_type = TaskType(request.type)
    except ValueError:
        raise TaskValidationError(f"unknown task type: {request.type}") from None
    if not isinstance(request.prompt, str) or not request.prompt.strip():
        raise TaskValidationError("prompt must not be empty")
    max_turns = request.max_turns
    if max_turns is not None and (
        isinstance(max_turns, bool) or not isinstance(max_turns, int) or max_turns < 1
    ):
        raise TaskValidationError("max_turns must be a positive integer")
    return task_type


def iso_timestamp(ts: float | None) -> str | None:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    if ts is None:
        return None
    stamp = datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


@dataclass(frozen=True)
class TaskRecord:
    """Immutable snapshot of a background task.

    end_time is set iff the status is terminal. result and summary are set
    only for completed tasks, error only for failed ones.
    """

    id: str
    parent_id: str
    type: TaskType
    prompt: str
    transcript_path: str
    status: TaskStatus = TaskStatus.PENDING
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    result: str | None = None
    summary: str | None = None
    error: str | None = None
    stats: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> int:
        """Milliseconds from start to end, or to now while still active."""
        end = self.end_time if self.end_time is not None else time.time()
        return int((end - self.start_time) * 1000)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": self.id,
            "parent_id": self.parent_id,
            "type": self.type.value,
            "status": self.status.value,
            "prompt": self.prompt,
            "started": iso_timestamp(self.start_time),
            "transcript_path": self.transcript_path,
        }
        if self.end_time is not None:
            data["ended"] = iso_timestamp(self.end_time)
            data["duration_ms"] = self.duration_ms
        if self.result is not None:
            data["result"] = self.result
        if self.summary is not None:
            data["summary"] = self.summary
        if self.error is not None:
            data["error"] = self.error
        return data


class TaskEventType(str, Enum):
    """Kinds of lifecycle notifications."""

    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskEventType.COMPLETED, TaskEventType.FAILED, TaskEventType.KILLED)


@dataclass(frozen=True)
class TaskEvent:
    """A lifecycle notification. Delivered once, never stored."""

    type: TaskEventType
    task_id: str
    parent_id: str
    timestamp: float = field(default_factory=time.time)
    data: dict[str, Any] = field(default_factory=dict)


TaskEventListener = Callable[[TaskEvent], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class StartResult:
    """Outcome of start_task: a task id, or a validation error."""

    task_id: str | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @property
    def success(self) -> bool:
        return self.task_id is not None


@dataclass(frozen=True)
class KillResult:
    """Outcome of kill_task."""

    success: bool
    task_id: str
    error: str | None = None
    kind: ErrorKind | None = None
    status: TaskStatus | None = None
