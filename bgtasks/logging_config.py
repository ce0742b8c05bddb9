"""Structured logging for bgtasks.

Provides:
- JSON file handler with rotation (~/.bgtasks/logs/)
- Console handler respecting verbose mode
"""

import json
import logging
import logging.handlers
from datetime import datetime

from bgtasks.config import LOGS_DIR

APP_LOG_FILE = LOGS_DIR / "bgtasks.log"

# Maximum log file size (5 MB) and backup count
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Extra record attributes copied into each JSON line
EXTRA_FIELDS = ("task_id", "parent_id", "task_type", "status", "duration_s", "event_type")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        return json.dumps(entry, default=str)


def setup_logging(verbose: bool = False) -> None:
    """Configure package-wide logging.

    - File handler: JSON lines to ~/.bgtasks/logs/bgtasks.log (with rotation)
    - Console handler: only if verbose=True, INFO+ level
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("bgtasks")
    root.setLevel(logging.DEBUG)

    # Remove existing handlers (idempotent)
    root.handlers.clear()

    file_handler = logging.handlers.RotatingFileHandler(
        str(APP_LOG_FILE),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    root.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
        root.addHandler(console_handler)
