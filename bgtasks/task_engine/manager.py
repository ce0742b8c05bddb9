"""Task manager: spawns background executors and tracks their lifecycle.

The manager is the only writer of task records. Every status change goes
through TaskRegistry.update() as a compare-and-set, which is what keeps a
natural executor settlement and an operator kill from both being recorded.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import functools
import logging
import threading
import time
from pathlib import Path
from typing import Any

from bgtasks.config import (
    DEFAULT_WAIT_TIMEOUT_MS,
    SUMMARY_MAX_CHARS,
    SUMMARY_MIN_CUT,
    ManagerConfig,
)
from bgtasks.task_engine.cancellation import CancellationToken
from bgtasks.task_engine.events import EventBus
from bgtasks.task_engine.executor import ExecutionContext, ExecutorFactory, ExecutorOutcome
from bgtasks.task_engine.registry import TaskRegistry
from bgtasks.task_engine.runner import BackgroundLoop
from bgtasks.task_engine.transcript import write_transcript
from bgtasks.task_engine.types import (
    ACTIVE_STATUSES,
    ErrorKind,
    KillResult,
    StartResult,
    TaskEvent,
    TaskEventListener,
    TaskEventType,
    TaskRecord,
    TaskRequest,
    TaskStatus,
    TaskValidationError,
    Unsubscribe,
    validate_request,
)

logger = logging.getLogger(__name__)

_TERMINAL_EVENTS = {
    TaskStatus.COMPLETED: TaskEventType.COMPLETED,
    TaskStatus.FAILED: TaskEventType.FAILED,
    TaskStatus.KILLED: TaskEventType.KILLED,
}


def generate_summary(result: str) -> str:
    """Short summary of a result: first sentence-ish chunk up to 200 chars."""
    truncated = result[:SUMMARY_MAX_CHARS]
    cut_point = max(truncated.rfind("."), truncated.rfind("\n"))
    if cut_point > SUMMARY_MIN_CUT:
        return truncated[:cut_point + 1].strip()
    return truncated.strip() + ("..." if len(result) > SUMMARY_MAX_CHARS else "")


class TaskManager:
    """Orchestrates background tasks.

    start_task() returns as soon as the record exists and the executor is
    scheduled on the background loop. Reads return frozen snapshots.
    Validation, not-found and invalid-state outcomes come back as result
    values; executor exceptions become a failed status.
    """

    def __init__(
        self,
        executor_factory: ExecutorFactory | None = None,
        config: ManagerConfig | None = None,
        transcript_writer=None,
    ):
        self.config = config or ManagerConfig()
        self._registry = TaskRegistry(self.config.transcript_dir)
        self._events = EventBus()
        self._loop = BackgroundLoop()
        self._executor_factory = executor_factory
        if transcript_writer is None and self.config.write_transcripts:
            transcript_writer = write_transcript
        self._transcript_writer = transcript_writer

        # In-flight handles, dropped once a task settles
        self._tokens: dict[str, CancellationToken] = {}
        self._futures: dict[str, concurrent.futures.Future] = {}
        # Per-task locks order "started", progress and the kill transition of one
        # task without making unrelated tasks wait on each other
        self._task_locks: dict[str, threading.RLock] = {}
        self._handles_lock = threading.Lock()

    # ── Executor resolution ──────────────────────────────────────────────

    def _get_executor_factory(self) -> ExecutorFactory:
        if self._executor_factory is None:
            # Import here to avoid circular imports
            from bgtasks.executors import make_executor_factory
            from bgtasks.tools import ToolRegistry

            # Background agents may inspect and kill tasks; spawning is filtered out
            tools = ToolRegistry(str(Path.cwd()), task_manager=self, session_id="background")
            self._executor_factory = make_executor_factory(
                ollama_host=self.config.ollama_host,
                default_model=self.config.default_model,
                tool_registry=tools,
            )
        return self._executor_factory

    # ── Public API ───────────────────────────────────────────────────────

    def start_task(self, request: TaskRequest) -> StartResult:
        """Validate, record, announce and schedule a task. Never blocks."""
        try:
            validate_request(request)
        except TaskValidationError as e:
            logger.info("Rejected task request: %s", e, extra={"parent_id": request.parent_id})
            return StartResult(error=str(e), kind=ErrorKind.VALIDATION)

        token = CancellationToken()
        # Held until "started" is out and the executor is scheduled
        task_lock = threading.RLock()
        task_lock.acquire()
        try:
            with self._handles_lock:
                task_id = self._registry.create(request)
                self._task_locks[task_id] = task_lock
                self._tokens[task_id] = token
            record = self._registry.get(task_id)
            if record is None:
                self._release(task_id)
                return StartResult(error=f"task not found: {task_id}", kind=ErrorKind.NOT_FOUND)

            logger.info(
                "Task %s started (%s)", task_id, record.type.value,
                extra={"task_id": task_id, "parent_id": record.parent_id,
                       "task_type": record.type.value, "status": record.status.value},
            )
            self._emit(TaskEventType.STARTED, record)

            future = self._loop.submit(self._run_task(task_id, request, token))
            with self._handles_lock:
                # A fast executor may already have settled and released its handles
                if task_id in self._tokens:
                    self._futures[task_id] = future
            token.on_cancel(future.cancel)
        finally:
            task_lock.release()

        return StartResult(task_id=task_id)

    def get_task(self, task_id: str) -> TaskRecord | None:
        return self._registry.get(task_id)

    def list_tasks(self, parent_id: str) -> list[TaskRecord]:
        """Tasks created by one parent session."""
        return self._registry.list_by_parent(parent_id)

    def list_all_tasks(
        self,
        status: TaskStatus | str | None = None,
        include_completed: bool = True,
    ) -> list[TaskRecord]:
        """All tasks, optionally filtered by status or to active ones only.

        An unknown status matches nothing.
        """
        tasks = self._registry.list_all()
        if status is not None:
            try:
                wanted = TaskStatus(status)
            except ValueError:
                return []
            return [t for t in tasks if t.status == wanted]
        if not include_completed:
            return [t for t in tasks if t.status in ACTIVE_STATUSES]
        return tasks

    def kill_task(self, task_id: str) -> KillResult:
        """Cooperatively cancel a pending or running task."""
        task = self._registry.get(task_id)
        if task is None:
            return KillResult(
                success=False, task_id=task_id,
                error=f"task not found: {task_id}", kind=ErrorKind.NOT_FOUND,
            )

        with self._handles_lock:
            task_lock = self._task_locks.get(task_id)

        # The task lock orders the kill after "started" and against progress;
        # "killed" itself is dispatched outside it
        with task_lock or contextlib.nullcontext():
            record = self._registry.update(
                task_id,
                expected=ACTIVE_STATUSES,
                status=TaskStatus.KILLED,
                end_time=time.time(),
            )
            if record is None:
                current = self._registry.get(task_id)
                status = current.status if current is not None else task.status
                return KillResult(
                    success=False, task_id=task_id,
                    error=f"task is not running (status: {status.value})",
                    kind=ErrorKind.INVALID_STATE, status=status,
                )
            with self._handles_lock:
                token = self._tokens.get(task_id)
            if token is not None:
                token.cancel("killed")

        self._log_terminal(record)
        self._emit(TaskEventType.KILLED, record)

        self._release(task_id)
        self._after_terminal(record)
        return KillResult(success=True, task_id=task_id, status=TaskStatus.KILLED)

    def wait_for_task(self, task_id: str, timeout_ms: int | None = None) -> TaskRecord | None:
        """Block until the task is terminal or the timeout elapses.

        Returns None for an unknown id. On timeout the current, possibly
        still running, snapshot is returned.
        """
        if timeout_ms is None:
            timeout_ms = self.config.default_wait_timeout_ms
        done = threading.Event()

        def listener(event: TaskEvent) -> None:
            if event.task_id == task_id and event.type.is_terminal:
                done.set()

        # Subscribe before reading so a settlement in between is not missed
        unsubscribe = self._events.subscribe(listener)
        try:
            task = self._registry.get(task_id)
            if task is None or task.is_terminal:
                return task
            if self._loop.in_loop_thread():
                logger.warning("wait_for_task(%s) called on the task loop; not blocking", task_id)
                return task
            done.wait(max(0, timeout_ms) / 1000)
        finally:
            unsubscribe()
        return self._registry.get(task_id)

    async def wait_for_task_async(self, task_id: str, timeout_ms: int | None = None) -> TaskRecord | None:
        """Coroutine flavour of wait_for_task for callers on their own loop."""
        if timeout_ms is None:
            timeout_ms = self.config.default_wait_timeout_ms
        loop = asyncio.get_running_loop()
        done = asyncio.Event()

        def listener(event: TaskEvent) -> None:
            if event.task_id == task_id and event.type.is_terminal:
                loop.call_soon_threadsafe(done.set)

        unsubscribe = self._events.subscribe(listener)
        try:
            task = self._registry.get(task_id)
            if task is None or task.is_terminal:
                return task
            try:
                await asyncio.wait_for(done.wait(), timeout=max(0, timeout_ms) / 1000)
            except asyncio.TimeoutError:
                pass
        finally:
            unsubscribe()
        return self._registry.get(task_id)

    def on_task_event(self, listener: TaskEventListener) -> Unsubscribe:
        """Subscribe to events of every task."""
        return self._events.subscribe(listener)

    def get_running_count(self) -> int:
        return len(self.list_all_tasks(include_completed=False))

    def clear_completed_tasks(self) -> int:
        """Forget every terminal task. Returns how many were removed."""
        finished = [t.id for t in self._registry.list_all() if t.is_terminal]
        removed = self._registry.remove(finished)
        if removed:
            logger.info("Cleared %d finished tasks", removed)
        return removed

    def run_foreground(self, request: TaskRequest, timeout_ms: int | None = None) -> ExecutorOutcome:
        """Run an executor to completion without recording a task."""
        try:
            task_type = validate_request(request)
        except TaskValidationError as e:
            return ExecutorOutcome(success=False, error=str(e))

        async def _run() -> ExecutorOutcome:
            executor = self._get_executor_factory()(task_type)
            return await executor.run(request.prompt, request, ExecutionContext(task_id=""))

        future = self._loop.submit(_run())
        timeout = None if timeout_ms is None else max(0, timeout_ms) / 1000
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            return ExecutorOutcome(success=False, error=f"timed out after {timeout_ms}ms")
        except Exception as e:
            logger.warning("Foreground %s run failed: %s", task_type.value, e)
            return ExecutorOutcome(success=False, error=str(e) or type(e).__name__)

    def shutdown(self) -> None:
        """Kill every active task and stop the background loop."""
        for task in self.list_all_tasks(include_completed=False):
            self.kill_task(task.id)
        self._loop.stop()

    # ── Background execution ─────────────────────────────────────────────

    async def _run_task(self, task_id: str, request: TaskRequest, token: CancellationToken) -> None:
        running = self._registry.update(task_id, expected=(TaskStatus.PENDING,), status=TaskStatus.RUNNING)
        if running is None:
            # Killed before it got scheduled
            return
        logger.debug("Task %s running", task_id, extra={"task_id": task_id, "status": "running"})

        context = ExecutionContext(
            task_id=task_id,
            cancel_token=token,
            progress_callback=functools.partial(self._on_progress, task_id),
        )
        try:
            executor = self._get_executor_factory()(running.type)
            outcome = await executor.run(request.prompt, request, context)
        except asyncio.CancelledError:
            # Loop shutdown without a kill still ends in a terminal status
            self._finish(task_id, TaskStatus.KILLED)
            raise
        except Exception as e:
            logger.warning(
                "Task %s executor raised: %s", task_id, e,
                extra={"task_id": task_id, "task_type": running.type.value},
            )
            outcome = ExecutorOutcome(success=False, error=str(e) or type(e).__name__)
        finally:
            self._release(task_id)

        if not isinstance(outcome, ExecutorOutcome):
            outcome = ExecutorOutcome(success=False, error="executor returned no outcome")

        if outcome.success:
            result = outcome.result or ""
            self._finish(
                task_id, TaskStatus.COMPLETED,
                result=result, summary=generate_summary(result), stats=outcome.stats or None,
            )
        else:
            self._finish(
                task_id, TaskStatus.FAILED,
                error=outcome.error or "task failed", stats=outcome.stats or None,
            )

    def _finish(self, task_id: str, status: TaskStatus, **fields: Any) -> TaskRecord | None:
        """Record a terminal status unless another path got there first."""
        record = self._registry.update(
            task_id,
            expected=ACTIVE_STATUSES,
            status=status,
            end_time=time.time(),
            **fields,
        )
        if record is None:
            logger.info(
                "Discarded late %s outcome for task %s", status.value, task_id,
                extra={"task_id": task_id, "status": status.value},
            )
            return None
        self._log_terminal(record)
        self._emit(_TERMINAL_EVENTS[status], record)
        self._after_terminal(record)
        return record

    def _on_progress(self, task_id: str, fraction: float | None, message: str) -> None:
        with self._handles_lock:
            task_lock = self._task_locks.get(task_id)
        if task_lock is None:
            return
        with task_lock:
            record = self._registry.get(task_id)
            if record is None or record.status != TaskStatus.RUNNING:
                return
            self._emit(TaskEventType.PROGRESS, record, {"progress": fraction, "message": message})

    # ── Helpers ──────────────────────────────────────────────────────────

    def _emit(self, event_type: TaskEventType, record: TaskRecord, data: dict | None = None) -> None:
        if data is None:
            if event_type == TaskEventType.COMPLETED:
                data = {"result": record.result, "message": record.summary}
            elif event_type == TaskEventType.FAILED:
                data = {"error": record.error}
            else:
                data = {}
        self._events.emit(TaskEvent(
            type=event_type,
            task_id=record.id,
            parent_id=record.parent_id,
            data=data,
        ))

    def _log_terminal(self, record: TaskRecord) -> None:
        logger.info(
            "Task %s %s", record.id, record.status.value,
            extra={
                "task_id": record.id,
                "parent_id": record.parent_id,
                "task_type": record.type.value,
                "status": record.status.value,
                "duration_s": round(record.duration_ms / 1000, 3),
            },
        )

    def _release(self, task_id: str) -> None:
        with self._handles_lock:
            self._tokens.pop(task_id, None)
            self._futures.pop(task_id, None)
            self._task_locks.pop(task_id, None)

    def _after_terminal(self, record: TaskRecord) -> None:
        if self._transcript_writer is not None:
            try:
                self._transcript_writer(record)
            except OSError as e:
                logger.warning("Failed to write transcript for %s: %s", record.id, e,
                               extra={"task_id": record.id})

        keep = self.config.max_history_per_parent
        if keep > 0:
            evicted = self._registry.prune_parent(record.parent_id, keep)
            if evicted:
                logger.debug("Evicted %d old tasks of %s", len(evicted), record.parent_id)


# ── Process-wide instance ────────────────────────────────────────────────

_task_manager_instance: TaskManager | None = None
_instance_lock = threading.Lock()


def get_task_manager() -> TaskManager:
    """Return the shared TaskManager, creating it on first use."""
    global _task_manager_instance
    with _instance_lock:
        if _task_manager_instance is None:
            _task_manager_instance = TaskManager(config=ManagerConfig.from_env())
        return _task_manager_instance


def set_task_manager(manager: TaskManager | None) -> None:
    """Install a specific manager as the shared instance."""
    global _task_manager_instance
    with _instance_lock:
        previous, _task_manager_instance = _task_manager_instance, manager
    if previous is not None and previous is not manager:
        previous.shutdown()


def reset_task_manager() -> None:
    """Shut down and forget the shared manager (for testing)."""
    set_task_manager(None)


def start_background_task(request: TaskRequest) -> StartResult:
    return get_task_manager().start_task(request)


def get_background_task(task_id: str) -> TaskRecord | None:
    return get_task_manager().get_task(task_id)


def list_background_tasks(parent_id: str) -> list[TaskRecord]:
    return get_task_manager().list_tasks(parent_id)


def kill_background_task(task_id: str) -> KillResult:
    return get_task_manager().kill_task(task_id)


def wait_for_background_task(task_id: str, timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS) -> TaskRecord | None:
    return get_task_manager().wait_for_task(task_id, timeout_ms)
