"""Abstract base class for all tools."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class BaseTool(ABC):
    """Base class that all tools must inherit from."""

    def __init__(self, working_dir: str):
        self.working_dir = Path(working_dir).resolve()

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name as the model will call it."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the model."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema for the tool's parameters."""
        ...

    @abstractmethod
    def execute(self, **kwargs: Any) -> str:
        """Execute the tool. Must always return a string, never raise."""
        ...

    @staticmethod
    def _json(payload: dict) -> str:
        return json.dumps(payload, indent=2, default=str)

    def to_tool_definition(self) -> dict:
        """Convert to OpenAI-compatible tool-calling format (used by Ollama)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
