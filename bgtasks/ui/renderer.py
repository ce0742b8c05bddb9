"""Rich-based terminal rendering of task lists and lifecycle events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bgtasks.task_engine.types import TaskEvent, TaskEventType, TaskRecord, TaskStatus, Unsubscribe

if TYPE_CHECKING:
    from bgtasks.task_engine.manager import TaskManager


console = Console()

STATUS_STYLES = {
    TaskStatus.PENDING: "dim",
    TaskStatus.RUNNING: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.KILLED: "yellow",
}

EVENT_STYLES = {
    TaskEventType.STARTED: "cyan",
    TaskEventType.PROGRESS: "dim",
    TaskEventType.COMPLETED: "green",
    TaskEventType.FAILED: "bold red",
    TaskEventType.KILLED: "yellow",
}


def _format_duration(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, seconds = divmod(int(seconds), 60)
    return f"{minutes}m{seconds:02d}s"


def show_tasks(tasks: list[TaskRecord]):
    """Display tasks as a table, newest first."""
    if not tasks:
        console.print("[dim]No background tasks.[/dim]")
        return

    table = Table(title="Background tasks", border_style="dim")
    table.add_column("ID", style="bold cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Summary")

    for task in sorted(tasks, key=lambda t: t.start_time, reverse=True):
        style = STATUS_STYLES.get(task.status, "")
        detail = task.summary or task.error or ""
        table.add_row(
            task.id,
            task.type.value,
            f"[{style}]{task.status.value}[/{style}]",
            _format_duration(task.duration_ms),
            escape(detail),
        )

    console.print(table)


def show_task_event(event: TaskEvent):
    """Display one lifecycle event as a single line."""
    style = EVENT_STYLES.get(event.type, "")
    line = f"[{style}]\\[{event.type.value}][/{style}] {event.task_id}"

    if event.type == TaskEventType.PROGRESS:
        fraction = event.data.get("progress")
        if fraction is not None:
            line += f" {fraction:.0%}"
        if event.data.get("message"):
            line += f" {escape(str(event.data['message']))}"
    elif event.type == TaskEventType.COMPLETED and event.data.get("message"):
        line += f" - {escape(str(event.data['message']))}"
    elif event.type == TaskEventType.FAILED and event.data.get("error"):
        line += f" - {escape(str(event.data['error']))}"

    console.print(line, highlight=False)


def attach_notifications(manager: TaskManager) -> Unsubscribe:
    """Print every task event of the manager. Returns the unsubscribe handle."""
    return manager.on_task_event(show_task_event)
