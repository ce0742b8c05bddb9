"""Executor profiles: per task type model and prompt configuration."""

from __future__ import annotations

from dataclasses import dataclass

from bgtasks.config import DEFAULT_MAX_TURNS
from bgtasks.task_engine.types import TaskType


@dataclass(frozen=True)
class ExecutorProfile:
    """Configuration for one task type."""

    system_prompt: str
    model: str | None = None  # None falls back to the manager's default model
    tool_names: tuple[str, ...] | None = None  # None allows every non-spawning tool
    read_only: bool = False
    max_turns: int = DEFAULT_MAX_TURNS


# Tools a background agent may never call, to keep nesting at one level
SPAWNING_TOOLS = frozenset({"agent"})
WRITE_TOOLS = frozenset({"task_kill"})

_RESEARCH_PROMPT = (
    "You are an expert code researcher and analyzer. Your role is to explore, "
    "understand, and explain codebases. Follow imports and dependencies, identify "
    "patterns and conventions, and cite specific files when explaining code. "
    "Focus on understanding and explaining, not modifying code."
)

_CODING_PROMPT = (
    "You are an expert software developer. Your role is to implement features, "
    "fix bugs, and improve code quality. Read existing code before changing it, "
    "follow its conventions, and explain your changes."
)

_FULL_PROMPT = (
    "You are an expert software developer with full capabilities. You can research "
    "code, implement features, fix bugs, run commands, and explain your work. "
    "Understand the codebase first, plan, then make and verify your changes."
)

_PLANNING_PROMPT = (
    "You are an expert software architect. Analyze requirements, study the existing "
    "structure, and produce a detailed step-by-step implementation plan that covers "
    "edge cases and error handling. Focus on planning and design, not implementation."
)

DEFAULT_PROFILES: dict[TaskType, ExecutorProfile] = {
    TaskType.RESEARCH: ExecutorProfile(system_prompt=_RESEARCH_PROMPT, read_only=True),
    TaskType.CODING: ExecutorProfile(system_prompt=_CODING_PROMPT, max_turns=15),
    TaskType.FULL: ExecutorProfile(system_prompt=_FULL_PROMPT, max_turns=25),
    TaskType.PLANNING: ExecutorProfile(system_prompt=_PLANNING_PROMPT, read_only=True),
    # Custom tasks carry their whole instruction in the prompt
    TaskType.CUSTOM: ExecutorProfile(system_prompt=_FULL_PROMPT),
}


def get_profile(task_type: TaskType | str) -> ExecutorProfile:
    return DEFAULT_PROFILES[TaskType(task_type)]


def allowed_tool_names(profile: ExecutorProfile, available: list[str]) -> list[str]:
    """Filter available tool names down to what the profile permits."""
    names = set(available) if profile.tool_names is None else set(profile.tool_names) & set(available)
    names -= SPAWNING_TOOLS
    if profile.read_only:
        names -= WRITE_TOOLS
    return sorted(names)
