"""Synchronous publish/subscribe dispatcher for task lifecycle events."""

from __future__ import annotations

import logging
import threading

from bgtasks.task_engine.types import TaskEvent, TaskEventListener, Unsubscribe

logger = logging.getLogger(__name__)


class EventBus:
    """Delivers TaskEvents to every current subscriber.

    emit() walks a copy of the subscriber list taken at emission time, so
    subscribing or unsubscribing from inside a listener only affects later
    emissions. A failing listener is logged and skipped. There is no replay.
    """

    def __init__(self):
        self._listeners: list[TaskEventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: TaskEventListener) -> Unsubscribe:
        """Register a listener. Returns an idempotent unsubscribe handle."""
        # Wrap so the same callable can be registered twice independently
        entry = _Subscription(listener)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(entry)
                except ValueError:
                    pass

        return unsubscribe

    def emit(self, event: TaskEvent) -> None:
        with self._lock:
            snapshot = list(self._listeners)

        for listener in snapshot:
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "Task event listener failed on %s for %s: %s",
                    event.type.value, event.task_id, e,
                    extra={"task_id": event.task_id, "event_type": event.type.value},
                )

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def clear(self):
        """Drop every subscriber."""
        with self._lock:
            self._listeners.clear()


class _Subscription:
    """Identity wrapper around a listener callable."""

    __slots__ = ("listener",)

    def __init__(self, listener: TaskEventListener):
        self.listener = listener

    def __call__(self, event: TaskEvent) -> None:
        self.listener(event)
