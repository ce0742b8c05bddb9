"""Executor that runs a task as an ollama chat loop with optional tool calls."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

import ollama

from bgtasks.config import DEFAULT_MODEL, NUM_CTX, OLLAMA_HOST
from bgtasks.task_engine.executor import ExecutionContext, ExecutorOutcome, TaskExecutor
from bgtasks.executors.profiles import ExecutorProfile, allowed_tool_names, get_profile
from bgtasks.task_engine.types import TaskRequest

if TYPE_CHECKING:
    from bgtasks.tools import ToolRegistry

logger = logging.getLogger(__name__)


class OllamaAgentExecutor(TaskExecutor):
    """Async agent loop driven by ollama.AsyncClient.

    Each turn sends the conversation to the model; tool calls in the reply
    are executed and fed back until the model answers without tools or the
    turn limit runs out. The cancellation token is checked before every
    model call and every tool call.
    """

    def __init__(
        self,
        profile: ExecutorProfile,
        ollama_host: str = OLLAMA_HOST,
        default_model: str = DEFAULT_MODEL,
        tool_registry: ToolRegistry | None = None,
        client: ollama.AsyncClient | None = None,
    ):
        self.profile = profile
        self.default_model = default_model
        self.tool_registry = tool_registry
        self.client = client or ollama.AsyncClient(host=ollama_host)

    def _tool_definitions(self) -> list[dict]:
        if self.tool_registry is None:
            return []
        available = [t.name for t in self.tool_registry.all_tools()]
        allowed = set(allowed_tool_names(self.profile, available))
        return [
            t.to_tool_definition() for t in self.tool_registry.all_tools()
            if t.name in allowed
        ]

    def _build_messages(self, prompt: str, request: TaskRequest) -> list[dict]:
        system = self.profile.system_prompt
        if request.cwd:
            system += f"\n\nWorking directory: {request.cwd}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]

    async def _call_tool(self, name: str, args: dict, allowed: set[str]) -> str:
        if name not in allowed or self.tool_registry is None:
            return f"Error: Tool '{name}' not available for this task"
        tool = self.tool_registry.get(name)
        if tool is None:
            return f"Error: Unknown tool '{name}'"
        # Tools are synchronous and may block (task_output with block=true)
        return await asyncio.to_thread(tool.execute, **args)

    async def run(
        self,
        prompt: str,
        request: TaskRequest,
        context: ExecutionContext,
    ) -> ExecutorOutcome:
        model = request.model_id or self.profile.model or self.default_model
        max_turns = request.max_turns or self.profile.max_turns
        messages = self._build_messages(prompt, request)
        tool_defs = self._tool_definitions()
        allowed = {d["function"]["name"] for d in tool_defs}

        full_output = ""
        tool_call_count = 0
        prompt_tokens = 0
        completion_tokens = 0
        turns = 0

        def stats() -> dict:
            return {
                "model": model,
                "turns": turns,
                "tool_calls": tool_call_count,
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
            }

        for turn in range(max_turns):
            if context.cancelled:
                return ExecutorOutcome(success=False, error="Cancelled", stats=stats())

            response = await self.client.chat(
                model=model,
                messages=messages,
                tools=tool_defs or None,
                stream=False,
                options={"num_ctx": NUM_CTX},
            )
            turns = turn + 1

            msg = response.get("message", {}) if isinstance(response, dict) else response.message
            content = msg.get("content", "") if isinstance(msg, dict) else (msg.content or "")
            tool_calls = msg.get("tool_calls") if isinstance(msg, dict) else getattr(msg, "tool_calls", None)

            if isinstance(response, dict):
                prompt_tokens += response.get("prompt_eval_count", 0) or 0
                completion_tokens += response.get("eval_count", 0) or 0
            else:
                prompt_tokens += getattr(response, "prompt_eval_count", 0) or 0
                completion_tokens += getattr(response, "eval_count", 0) or 0

            if content:
                full_output += content

            assistant_msg: dict = {"role": "assistant", "content": content}
            if tool_calls:
                assistant_msg["tool_calls"] = tool_calls
            messages.append(assistant_msg)

            context.report_progress(turns / max_turns, f"turn {turns}/{max_turns}")

            if not tool_calls:
                break

            for tc in tool_calls:
                if context.cancelled:
                    return ExecutorOutcome(success=False, error="Cancelled", stats=stats())

                func = tc.get("function", tc) if isinstance(tc, dict) else tc.function
                tool_name = func.get("name", "") if isinstance(func, dict) else func.name
                tool_args = func.get("arguments", {}) if isinstance(func, dict) else func.arguments
                if isinstance(tool_args, str):
                    try:
                        tool_args = json.loads(tool_args)
                    except json.JSONDecodeError:
                        tool_args = {"raw": tool_args}

                tool_call_count += 1
                logger.debug("Task %s calling tool %s", context.task_id, tool_name)
                result = await self._call_tool(tool_name, dict(tool_args or {}), allowed)
                messages.append({"role": "tool", "content": result})

        if not full_output.strip():
            return ExecutorOutcome(success=False, error="Model returned no output", stats=stats())
        return ExecutorOutcome(success=True, result=full_output, stats=stats())


def make_executor_factory(
    ollama_host: str = OLLAMA_HOST,
    default_model: str = DEFAULT_MODEL,
    tool_registry: ToolRegistry | None = None,
):
    """Return a factory building an OllamaAgentExecutor per task type."""

    def factory(task_type) -> OllamaAgentExecutor:
        return OllamaAgentExecutor(
            get_profile(task_type),
            ollama_host=ollama_host,
            default_model=default_model,
            tool_registry=tool_registry,
        )

    return factory
