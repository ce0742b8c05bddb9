"""Configuration constants and ManagerConfig dataclass."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path


# Base directory for all bgtasks data
DATA_DIR = Path(os.environ.get("BGTASKS_HOME", str(Path.home() / ".bgtasks")))
LOGS_DIR = DATA_DIR / "logs"

# Transcripts live outside DATA_DIR, next to other scratch output
TRANSCRIPTS_DIR = Path(
    os.environ.get(
        "BGTASKS_TRANSCRIPT_DIR",
        str(Path(tempfile.gettempdir()) / "bgtasks-tasks"),
    )
)

# Ollama settings
OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
DEFAULT_MODEL = "devstral-small-2:24b"
NUM_CTX = 8192

# Task limits
DEFAULT_WAIT_TIMEOUT_MS = 300_000  # 5 minutes
DEFAULT_MAX_TURNS = 10
SUMMARY_MAX_CHARS = 200
SUMMARY_MIN_CUT = 50
PROMPT_PREVIEW_CHARS = 100
MAX_FOREGROUND_RESULT_CHARS = 30_000


def _env_int(name: str, default: int) -> int:
    """Read an integer env var, falling back to default on absence or junk."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass
class ManagerConfig:
    """Runtime settings for a TaskManager."""

    transcript_dir: Path = field(default_factory=lambda: TRANSCRIPTS_DIR)
    write_transcripts: bool = True
    default_wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS
    max_history_per_parent: int = 0  # 0 means keep everything
    ollama_host: str = OLLAMA_HOST
    default_model: str = DEFAULT_MODEL

    @classmethod
    def from_env(cls) -> ManagerConfig:
        """Build a config from BGTASKS_* environment variables."""
        transcript_dir = os.environ.get("BGTASKS_TRANSCRIPT_DIR", "")
        wait_timeout = _env_int("BGTASKS_WAIT_TIMEOUT_MS", DEFAULT_WAIT_TIMEOUT_MS)
        history = _env_int("BGTASKS_MAX_HISTORY_PER_PARENT", 0)
        return cls(
            transcript_dir=Path(transcript_dir) if transcript_dir else TRANSCRIPTS_DIR,
            write_transcripts=_env_bool("BGTASKS_WRITE_TRANSCRIPTS", True),
            default_wait_timeout_ms=wait_timeout if wait_timeout > 0 else DEFAULT_WAIT_TIMEOUT_MS,
            max_history_per_parent=max(0, history),
            ollama_host=os.environ.get("OLLAMA_HOST", OLLAMA_HOST),
            default_model=os.environ.get("BGTASKS_MODEL", DEFAULT_MODEL),
        )
