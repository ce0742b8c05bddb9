"""In-memory store of task records, guarded by a single lock."""

from __future__ import annotations

import dataclasses
import logging
import secrets
import threading
import time
from collections.abc import Collection
from pathlib import Path
from typing import Any

from bgtasks.task_engine.types import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    TaskRecord,
    TaskRequest,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)

# Fields update() may change; id, parent, type, prompt are fixed at creation
_MUTABLE_FIELDS = frozenset({"status", "end_time", "result", "summary", "error", "stats"})


def generate_task_id() -> str:
    """Return a new task id such as task_3f2a9c01b7de."""
    return f"task_{secrets.token_hex(6)}"


class TaskRegistry:
    """Thread-safe authoritative store of TaskRecords.

    Records are frozen dataclasses; update() swaps in a replacement under
    the lock, so anything handed out is already a snapshot. Unknown ids
    and illegal transitions are reported as None, never raised.
    """

    def __init__(self, transcript_dir: Path | str):
        self._transcript_dir = Path(transcript_dir)
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def create(self, request: TaskRequest) -> str:
        """Insert a pending record for the request and return its id."""
        task_type = TaskType(request.type)
        with self._lock:
            task_id = generate_task_id()
            while task_id in self._tasks:
                task_id = generate_task_id()
            self._tasks[task_id] = TaskRecord(
                id=task_id,
                parent_id=request.parent_id,
                type=task_type,
                prompt=request.prompt,
                transcript_path=str(self._transcript_dir / f"{task_id}.log"),
                status=TaskStatus.PENDING,
                start_time=time.time(),
            )
        return task_id

    def get(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            return self._tasks.get(task_id)

    def list_all(self) -> list[TaskRecord]:
        with self._lock:
            return list(self._tasks.values())

    def list_by_parent(self, parent_id: str) -> list[TaskRecord]:
        with self._lock:
            return [t for t in self._tasks.values() if t.parent_id == parent_id]

    def update(
        self,
        task_id: str,
        expected: Collection[TaskStatus] | None = None,
        **changes: Any,
    ) -> TaskRecord | None:
        """Atomically apply changes to a record (compare-and-set).

        If expected is given, the update only happens while the current
        status is one of those values. A status change must also be a legal
        transition. Returns the new record, or None if the id is unknown or
        the update was rejected.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"cannot update task fields: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                return None
            if expected is not None and current.status not in expected:
                return None

            new_status = changes.get("status")
            if new_status is not None:
                new_status = TaskStatus(new_status)
                if new_status not in TRANSITIONS[current.status]:
                    logger.debug(
                        "Rejected transition %s -> %s for %s",
                        current.status.value, new_status.value, task_id,
                    )
                    return None
                changes["status"] = new_status
            elif current.status in TERMINAL_STATUSES:
                return None

            updated = dataclasses.replace(current, **changes)
            self._tasks[task_id] = updated
            return updated

    def remove(self, task_ids: Collection[str]) -> int:
        """Remove records by id; only terminal records are removed."""
        removed = 0
        with self._lock:
            for task_id in task_ids:
                task = self._tasks.get(task_id)
                if task is not None and task.status in TERMINAL_STATUSES:
                    del self._tasks[task_id]
                    removed += 1
        return removed

    def prune_parent(self, parent_id: str, keep: int) -> list[str]:
        """Evict the oldest terminal records of a parent beyond keep."""
        with self._lock:
            finished = sorted(
                (t for t in self._tasks.values()
                 if t.parent_id == parent_id and t.status in TERMINAL_STATUSES),
                key=lambda t: (t.end_time or t.start_time),
            )
            excess = finished[:max(0, len(finished) - keep)]
            for task in excess:
                del self._tasks[task.id]
        return [t.id for t in excess]

    def clear(self):
        """Drop every record (tests only)."""
        with self._lock:
            self._tasks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
