"""Shared fixtures for bgtasks tests."""

import asyncio
import threading
import time
from pathlib import Path

import pytest

from bgtasks.config import ManagerConfig
from bgtasks.task_engine.executor import ExecutionContext, ExecutorOutcome, TaskExecutor
from bgtasks.task_engine.manager import TaskManager, reset_task_manager
from bgtasks.task_engine.types import TaskRequest


class SuccessExecutor(TaskExecutor):
    """Settles immediately with a fixed result."""

    def __init__(self, result: str = "All done. The answer is 42."):
        self.result = result
        self.calls = 0

    async def run(self, prompt, request, context):
        self.calls += 1
        return ExecutorOutcome(success=True, result=self.result, stats={"turns": 1})


class FailureExecutor(TaskExecutor):
    def __init__(self, error: str = "model unavailable"):
        self.error = error

    async def run(self, prompt, request, context):
        return ExecutorOutcome(success=False, error=self.error)


class RaisingExecutor(TaskExecutor):
    async def run(self, prompt, request, context):
        raise RuntimeError("executor exploded")


class GatedExecutor(TaskExecutor):
    """Reports progress, then waits for release() or cancellation."""

    def __init__(self, result: str = "gated result"):
        self.result = result
        self.started = threading.Event()
        self._release = threading.Event()
        self.saw_cancel = threading.Event()

    def release(self):
        self._release.set()

    async def run(self, prompt, request, context: ExecutionContext):
        context.report_progress(0.5, "halfway")
        self.started.set()
        while not self._release.is_set():
            if context.cancelled:
                self.saw_cancel.set()
                return ExecutorOutcome(success=False, error="Cancelled")
            await asyncio.sleep(0.01)
        return ExecutorOutcome(success=True, result=self.result)


class StubbornExecutor(TaskExecutor):
    """Ignores cancellation and settles with success once released."""

    def __init__(self):
        self.started = threading.Event()
        self._release = threading.Event()
        self.finished = threading.Event()

    def release(self):
        self._release.set()

    async def run(self, prompt, request, context):
        self.started.set()
        try:
            while not self._release.is_set():
                try:
                    await asyncio.sleep(0.01)
                except asyncio.CancelledError:
                    # Swallow the loop-level cancel and keep going
                    continue
            return ExecutorOutcome(success=True, result="late result")
        finally:
            self.finished.set()


class TickingExecutor(TaskExecutor):
    """Reports progress on a fixed interval and records when each tick returned."""

    def __init__(self, interval: float = 0.01):
        self.interval = interval
        self.ticks: list[float] = []
        self._release = threading.Event()

    def release(self):
        self._release.set()

    async def run(self, prompt, request, context):
        while not self._release.is_set() and not context.cancelled:
            context.report_progress(None, "tick")
            self.ticks.append(time.monotonic())
            await asyncio.sleep(self.interval)
        return ExecutorOutcome(success=True, result="ticked")


def factory_for(executor: TaskExecutor):
    """Executor factory that hands out the same executor for every type."""
    return lambda task_type: executor


def make_request(prompt: str = "Investigate the build", parent_id: str = "session-1",
                 task_type: str = "research", **kwargs) -> TaskRequest:
    return TaskRequest(parent_id=parent_id, type=task_type, prompt=prompt, **kwargs)


@pytest.fixture
def manager_config(tmp_path: Path) -> ManagerConfig:
    """Manager settings pointing transcripts at a temp dir."""
    return ManagerConfig(transcript_dir=tmp_path / "transcripts", default_wait_timeout_ms=5_000)


@pytest.fixture
def make_manager(manager_config):
    """Build managers around a given executor; all are shut down afterwards."""
    managers = []

    def _make(executor: TaskExecutor, **overrides) -> TaskManager:
        config = manager_config
        if overrides:
            config = ManagerConfig(**{**manager_config.__dict__, **overrides})
        manager = TaskManager(executor_factory=factory_for(executor), config=config)
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.shutdown()


@pytest.fixture
def gated() -> GatedExecutor:
    executor = GatedExecutor()
    yield executor
    executor.release()


@pytest.fixture(autouse=True)
def _reset_shared_manager():
    yield
    reset_task_manager()


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate until it holds or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class EventRecorder:
    """Listener that keeps every event it sees."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.events.append(event)

    def types_for(self, task_id: str) -> list[str]:
        with self._lock:
            return [e.type.value for e in self.events if e.task_id == task_id]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
