"""Task tools - spawn, inspect, list and kill background agent tasks."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from bgtasks.config import (
    DEFAULT_WAIT_TIMEOUT_MS,
    MAX_FOREGROUND_RESULT_CHARS,
    PROMPT_PREVIEW_CHARS,
)
from bgtasks.task_engine.types import TaskRecord, TaskRequest, TaskStatus, TaskType
from bgtasks.tools.base import BaseTool

if TYPE_CHECKING:
    from bgtasks.task_engine.manager import TaskManager


def _as_bool(value: Any, default: bool = False) -> bool:
    """Models sometimes send booleans as strings."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _preview(prompt: str) -> str:
    if len(prompt) > PROMPT_PREVIEW_CHARS:
        return prompt[:PROMPT_PREVIEW_CHARS] + "..."
    return prompt


class _TaskTool(BaseTool):
    """Shared wiring for tools that talk to a TaskManager."""

    def __init__(self, working_dir: str, task_manager: TaskManager, session_id: str):
        super().__init__(working_dir)
        self.task_manager = task_manager
        self.session_id = session_id


class AgentTool(_TaskTool):
    """Spawn a subagent, either inline or as a background task."""

    @property
    def name(self) -> str:
        return "agent"

    @property
    def description(self) -> str:
        return (
            "Spawn a subagent to handle a specific task. subagent_type selects the mode: "
            "research (read-only exploration), coding (file edits and commands), "
            "full (all capabilities), planning (implementation plans), custom. "
            "Set run_in_background=true for long-running work; the tool then returns a "
            "task_id to use with task_output, task_list and task_kill."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "subagent_type": {
                    "type": "string",
                    "enum": [t.value for t in TaskType],
                    "description": "The type of subagent to spawn",
                },
                "prompt": {
                    "type": "string",
                    "description": "The task/instructions for the subagent",
                },
                "run_in_background": {
                    "type": "boolean",
                    "description": "Return immediately with a task_id instead of waiting (default: false)",
                },
            },
            "required": ["subagent_type", "prompt"],
        }

    def execute(self, **kwargs: Any) -> str:
        request = TaskRequest(
            parent_id=self.session_id,
            type=kwargs.get("subagent_type", ""),
            prompt=kwargs.get("prompt", ""),
            cwd=str(self.working_dir),
            verbose=False,
        )

        if _as_bool(kwargs.get("run_in_background")):
            started = self.task_manager.start_task(request)
            if not started.success:
                return self._json({"background": True, "success": False, "error": started.error})
            return self._json({
                "background": True,
                "task_id": started.task_id,
                "message": (
                    f"Started background task {started.task_id}. "
                    "Use task_output with this task_id to check results."
                ),
            })

        outcome = self.task_manager.run_foreground(request)
        if not outcome.success:
            return self._json({"background": False, "success": False, "error": outcome.error})

        result = outcome.result or ""
        if len(result) > MAX_FOREGROUND_RESULT_CHARS:
            result = result[:MAX_FOREGROUND_RESULT_CHARS] + f"\n... [{len(outcome.result)} chars total]"
        return self._json({
            "background": False,
            "success": True,
            "result": result,
            "stats": outcome.stats,
        })


class TaskOutputTool(_TaskTool):
    """Get the status or output of a background task, optionally waiting for it."""

    @property
    def name(self) -> str:
        return "task_output"

    @property
    def description(self) -> str:
        return (
            "Get the output or status of a background task started with "
            "run_in_background=true. Set block=true to wait for it to finish."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "task_id": {
                    "type": "string",
                    "description": "The ID of the task to query",
                },
                "block": {
                    "type": "boolean",
                    "description": "Wait for the task to complete before returning (default: false)",
                },
                "timeout": {
                    "type": "integer",
                    "description": "Timeout in milliseconds if blocking (default: 300000)",
                },
            },
            "required": ["task_id"],
        }

    def execute(self, **kwargs: Any) -> str:
        task_id = str(kwargs.get("task_id", "") or "")
        block = _as_bool(kwargs.get("block"))
        timeout = _as_int(kwargs.get("timeout"), DEFAULT_WAIT_TIMEOUT_MS)

        task = self.task_manager.get_task(task_id)
        if task is None:
            return self._json({"found": False, "error": f"task not found: {task_id}"})

        timed_out = False
        if block and not task.is_terminal:
            waited = self.task_manager.wait_for_task(task_id, timeout)
            if waited is None:
                return self._json({"found": False, "error": f"task not found: {task_id}"})
            task = waited
            timed_out = not task.is_terminal

        return self._json(self._format(task, timed_out))

    @staticmethod
    def _format(task: TaskRecord, timed_out: bool) -> dict:
        data = task.to_dict()
        response: dict[str, Any] = {
            "found": True,
            "task_id": task.id,
            "status": task.status.value,
            "type": task.type.value,
            "started": data["started"],
        }
        if task.end_time is not None:
            response["ended"] = data["ended"]
            response["duration_ms"] = data["duration_ms"]

        if task.status == TaskStatus.COMPLETED:
            response["summary"] = task.summary
            response["result"] = task.result
        elif task.status == TaskStatus.FAILED:
            response["error"] = task.error
        elif not task.is_terminal:
            response["elapsed_ms"] = task.duration_ms

        if timed_out:
            response["timed_out"] = True
        response["transcript_path"] = task.transcript_path
        return response


class TaskListTool(_TaskTool):
    """List background tasks, newest first."""

    @property
    def name(self) -> str:
        return "task_list"

    @property
    def description(self) -> str:
        return "List all background tasks, optionally filtered by status."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": [s.value for s in TaskStatus],
                    "description": "Filter by task status",
                },
                "include_completed": {
                    "type": "boolean",
                    "description": "Include completed/failed/killed tasks (default: true)",
                },
            },
            "required": [],
        }

    def execute(self, **kwargs: Any) -> str:
        status = kwargs.get("status") or None
        include_completed = _as_bool(kwargs.get("include_completed"), default=True)

        if status is not None and status not in {s.value for s in TaskStatus}:
            return self._json({"error": f"unknown status: {status}", "total": 0, "tasks": []})

        all_tasks = self.task_manager.list_all_tasks()
        tasks = self.task_manager.list_all_tasks(status=status, include_completed=include_completed)
        tasks.sort(key=lambda t: t.start_time, reverse=True)

        formatted = []
        for task in tasks:
            entry: dict[str, Any] = {
                "task_id": task.id,
                "type": task.type.value,
                "status": task.status.value,
                "prompt_preview": _preview(task.prompt),
                "started": task.to_dict()["started"],
                "duration_ms": task.duration_ms,
            }
            if task.summary is not None:
                entry["summary"] = task.summary
            if task.error is not None:
                entry["error"] = task.error
            formatted.append(entry)

        return self._json({
            "total": len(formatted),
            "running": sum(1 for t in all_tasks if not t.is_terminal),
            "tasks": formatted,
        })


class TaskKillTool(_TaskTool):
    """Kill a running background task."""

    @property
    def name(self) -> str:
        return "task_kill"

    @property
    def description(self) -> str:
        return "Kill a running background task that is no longer needed or is taking too long."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "task_id": {
                    "type": "string",
                    "description": "The ID of the task to kill",
                },
            },
            "required": ["task_id"],
        }

    def execute(self, **kwargs: Any) -> str:
        task_id = str(kwargs.get("task_id", "") or "")
        result = self.task_manager.kill_task(task_id)
        if not result.success:
            return self._json({"success": False, "task_id": task_id, "error": result.error})
        return self._json({
            "success": True,
            "task_id": task_id,
            "message": f"Task {task_id} has been killed",
        })
