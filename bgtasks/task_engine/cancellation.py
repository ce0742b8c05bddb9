"""Cooperative cancellation token shared between the manager and an executor."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class TaskCancelledError(Exception):
    """Raised by raise_if_cancelled() once the token has been triggered."""


class CancellationToken:
    """Thread-safe one-shot cancellation signal.

    Executors poll `cancelled` (or call raise_if_cancelled) between steps.
    Callbacks registered with on_cancel run once, on the thread that calls
    cancel(); a callback added after cancellation runs immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> bool:
        """Trigger the token. Returns False if it was already triggered."""
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("Cancellation callback failed: %s", e)
        return True

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError(self.reason or "cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block the calling thread until cancelled or timeout."""
        return self._event.wait(timeout)

    async def wait_async(self, poll_interval: float = 0.05) -> None:
        """Suspend the calling coroutine until the token is triggered."""
        while not self._event.is_set():
            await asyncio.sleep(poll_interval)
