"""Executors that perform the work behind a background task."""

from bgtasks.task_engine.executor import ExecutionContext, ExecutorFactory, ExecutorOutcome, TaskExecutor
from bgtasks.executors.profiles import DEFAULT_PROFILES, ExecutorProfile, get_profile
from bgtasks.executors.ollama_agent import OllamaAgentExecutor, make_executor_factory

__all__ = [
    "ExecutionContext",
    "ExecutorFactory",
    "ExecutorOutcome",
    "TaskExecutor",
    "DEFAULT_PROFILES",
    "ExecutorProfile",
    "get_profile",
    "OllamaAgentExecutor",
    "make_executor_factory",
]
