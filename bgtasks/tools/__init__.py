"""Tool registry - instantiates and manages the task tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bgtasks.tools.base import BaseTool
from bgtasks.tools.task_tools import AgentTool, TaskKillTool, TaskListTool, TaskOutputTool

if TYPE_CHECKING:
    from bgtasks.task_engine.manager import TaskManager


class ToolRegistry:
    """Registry that holds all tool instances and provides lookup."""

    def __init__(
        self,
        working_dir: str,
        task_manager: TaskManager | None = None,
        session_id: str = "default",
    ):
        if task_manager is None:
            from bgtasks.task_engine.manager import get_task_manager

            task_manager = get_task_manager()
        self.task_manager = task_manager
        self.session_id = session_id
        self._tools: dict[str, BaseTool] = {}
        self._register_all(working_dir)

    def _register_all(self, working_dir: str):
        tools: list[BaseTool] = [
            AgentTool(working_dir, self.task_manager, self.session_id),
            TaskOutputTool(working_dir, self.task_manager, self.session_id),
            TaskListTool(working_dir, self.task_manager, self.session_id),
            TaskKillTool(working_dir, self.task_manager, self.session_id),
        ]
        for tool in tools:
            self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def all_tools(self) -> list[BaseTool]:
        """Return all registered tools."""
        return list(self._tools.values())

    def tool_definitions(self) -> list[dict]:
        """Return tool definitions in OpenAI-compatible format."""
        return [tool.to_tool_definition() for tool in self._tools.values()]


__all__ = [
    "AgentTool",
    "BaseTool",
    "TaskKillTool",
    "TaskListTool",
    "TaskOutputTool",
    "ToolRegistry",
]
