"""Keyed scheduled tasks for display delays, auto-dismiss and cache sweeps.

Every timer the orchestrator creates is registered here under a key, so
``stop()`` can cancel all of them deterministically. Scheduling a key
that is already pending replaces the earlier task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from dm_reminders.core.exceptions import SchedulingError
from dm_reminders.core.logging import get_logger


logger = get_logger(__name__)

Callback = Callable[[], None]


@runtime_checkable
class Scheduler(Protocol):
    """Timer service used by the orchestrator."""

    def schedule(self, key: str, delay_ms: int, callback: Callback) -> None:
        """Run ``callback`` after ``delay_ms``, replacing any task under ``key``."""
        ...

    def cancel(self, key: str) -> bool:
        """Cancel the task under ``key``; True if one was pending."""
        ...

    def cancel_all(self) -> int:
        """Cancel every pending task and return how many there were."""
        ...

    def pending(self) -> list[str]:
        """Keys of the pending tasks."""
        ...


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Callbacks run on the event loop thread. A callback that raises is
    logged and dropped so one bad timer cannot break the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the scheduler.

        Args:
            loop: Event loop to schedule on; the running loop if None.
        """
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as exc:
            raise SchedulingError(
                "No running event loop to schedule on",
            ) from exc

    def schedule(self, key: str, delay_ms: int, callback: Callback) -> None:
        """Schedule a callback.

        Args:
            key: Task key.
            delay_ms: Delay in milliseconds (>= 0).
            callback: Function to run.

        Raises:
            SchedulingError: If the delay is negative or no loop is available.
        """
        if delay_ms < 0:
            raise SchedulingError("Negative delay", task_key=key, details={"delay_ms": delay_ms})
        self.cancel(key)
        loop = self._get_loop()
        self._handles[key] = loop.call_later(delay_ms / 1000, self._fire, key, callback)

    def _fire(self, key: str, callback: Callback) -> None:
        self._handles.pop(key, None)
        try:
            callback()
        except Exception:
            logger.exception("Scheduled task failed", task_key=key)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        return len(handles)

    def pending(self) -> list[str]:
        return list(self._handles)


__all__ = [
    "AsyncioScheduler",
    "Callback",
    "Scheduler",
]
