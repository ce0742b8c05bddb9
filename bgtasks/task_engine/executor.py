"""Executor interface: the unit of work a background task runs.

The manager only depends on this boundary; concrete executors live in
bgtasks.executors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from bgtasks.task_engine.cancellation import CancellationToken
from bgtasks.task_engine.types import TaskRequest, TaskType

ProgressCallback = Callable[[float | None, str], None]


@dataclass
class ExecutorOutcome:
    """What an executor settles with."""

    success: bool
    result: str | None = None
    error: str | None = None
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionContext:
    """Per-invocation handles passed to an executor."""

    task_id: str
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    progress_callback: ProgressCallback | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def report_progress(self, fraction: float | None = None, message: str = "") -> None:
        """Publish a progress update for the task (no-op when detached)."""
        if self.progress_callback is not None:
            if fraction is not None:
                fraction = min(1.0, max(0.0, fraction))
            self.progress_callback(fraction, message)


class TaskExecutor(ABC):
    """Performs the actual work for a task. Opaque to the manager."""

    @abstractmethod
    async def run(
        self,
        prompt: str,
        request: TaskRequest,
        context: ExecutionContext,
    ) -> ExecutorOutcome:
        """Run the prompt to completion.

        Implementations should check context.cancel_token between steps and
        return promptly once it is triggered. Raising is allowed; the
        manager records the exception message as the task error.
        """
        ...


ExecutorFactory = Callable[[TaskType], TaskExecutor]
