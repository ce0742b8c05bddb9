"""Plain-text transcripts written when a task settles."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from bgtasks.task_engine.types import TaskRecord, iso_timestamp


def render_transcript(task: TaskRecord) -> str:
    """Render a task record as a human-readable transcript."""
    duration = (task.end_time - task.start_time) if task.end_time is not None else 0
    lines = [
        f"Task ID: {task.id}",
        f"Parent ID: {task.parent_id}",
        f"Type: {task.type.value}",
        f"Status: {task.status.value}",
        f"Started: {iso_timestamp(task.start_time)}",
    ]
    if task.end_time is not None:
        lines.append(f"Ended: {iso_timestamp(task.end_time)}")
    lines += [
        f"Duration: {duration:.3f}s",
        "",
        "=== Prompt ===",
        task.prompt,
        "",
        "=== Result ===",
        task.result or task.error or "No result",
    ]
    return "\n".join(lines) + "\n"


def write_transcript(task: TaskRecord) -> Path:
    """Write the transcript atomically using temp + rename."""
    path = Path(task.transcript_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(render_transcript(task))
        os.replace(tmp, path)
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    return path
