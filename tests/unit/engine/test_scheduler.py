"""Tests for keyed timers."""

from __future__ import annotations

import asyncio

import pytest

from dm_reminders.core.exceptions import SchedulingError
from dm_reminders.engine.scheduler import AsyncioScheduler, Scheduler


class TestAsyncioScheduler:
    """Tests for AsyncioScheduler."""

    def test_satisfies_protocol(self) -> None:
        """Test the scheduler implements the Scheduler protocol."""
        assert isinstance(AsyncioScheduler(), Scheduler)

    def test_requires_running_loop(self) -> None:
        """Test scheduling without a loop fails."""
        with pytest.raises(SchedulingError):
            AsyncioScheduler().schedule("k", 10, lambda: None)

    @pytest.mark.anyio
    async def test_negative_delay(self) -> None:
        """Test negative delays are rejected."""
        with pytest.raises(SchedulingError) as exc_info:
            AsyncioScheduler().schedule("k", -1, lambda: None)

        assert exc_info.value.details["task_key"] == "k"

    @pytest.mark.anyio
    async def test_fires_once(self) -> None:
        """Test a task runs after its delay and leaves the pending list."""
        scheduler = AsyncioScheduler()
        fired: list[str] = []

        scheduler.schedule("k", 1, lambda: fired.append("k"))
        assert scheduler.pending() == ["k"]

        await asyncio.sleep(0.05)

        assert fired == ["k"]
        assert scheduler.pending() == []

    @pytest.mark.anyio
    async def test_reschedule_replaces(self) -> None:
        """Test scheduling an existing key replaces the earlier task."""
        scheduler = AsyncioScheduler()
        fired: list[str] = []

        scheduler.schedule("k", 1, lambda: fired.append("first"))
        scheduler.schedule("k", 1, lambda: fired.append("second"))
        await asyncio.sleep(0.05)

        assert fired == ["second"]

    @pytest.mark.anyio
    async def test_cancel(self) -> None:
        """Test cancelled tasks never run."""
        scheduler = AsyncioScheduler()
        fired: list[str] = []

        scheduler.schedule("a", 1, lambda: fired.append("a"))
        scheduler.schedule("b", 1, lambda: fired.append("b"))
        scheduler.schedule("c", 1, lambda: fired.append("c"))

        assert scheduler.cancel("a") is True
        assert scheduler.cancel("a") is False
        assert scheduler.cancel_all() == 2
        await asyncio.sleep(0.05)

        assert fired == []

    @pytest.mark.anyio
    async def test_failing_callback_logged(self) -> None:
        """Test a raising callback does not stop other tasks."""
        scheduler = AsyncioScheduler()
        fired: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        scheduler.schedule("bad", 1, broken)
        scheduler.schedule("good", 2, lambda: fired.append("good"))
        await asyncio.sleep(0.05)

        assert fired == ["good"]
