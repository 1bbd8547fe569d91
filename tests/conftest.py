"""Pytest configuration and shared fixtures.

This module provides common fixtures and test doubles for the DM
reminder engine test suite: creature and snapshot factories, a manual
clock, a scheduler driven by that clock and scripted content generators.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING, Any

import pytest

from dm_reminders.models import (
    CombatSnapshot,
    Creature,
    CreatureAction,
    ReminderContent,
    ReminderType,
    SpecialAbility,
    Urgency,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from dm_reminders.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "DM_REMINDERS_DEBUG": "true",
        "DM_REMINDERS_LOG_LEVEL": "DEBUG",
        "DM_REMINDERS_MAX_CONCURRENT_GENERATIONS": "5",
        "DM_REMINDERS_GENERATION_TIMEOUT_SECONDS": "3",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeScheduler:
    """Scheduler whose tasks fire only when ``advance`` is called."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.now_ms = 0
        self._sequence = itertools.count()
        self._tasks: dict[str, tuple[int, int, Callable[[], None]]] = {}

    def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None:
        self._tasks[key] = (self.now_ms + delay_ms, next(self._sequence), callback)

    def cancel(self, key: str) -> bool:
        return self._tasks.pop(key, None) is not None

    def cancel_all(self) -> int:
        count = len(self._tasks)
        self._tasks.clear()
        return count

    def pending(self) -> list[str]:
        return list(self._tasks)

    def due_in(self, key: str) -> int | None:
        """Milliseconds until a task fires, or None if it is not pending."""
        task = self._tasks.get(key)
        return None if task is None else task[0] - self.now_ms

    def advance(self, ms: int) -> None:
        """Move time forward, firing due tasks in order."""
        target = self.now_ms + ms
        while True:
            due = sorted(
                (when, seq, key) for key, (when, seq, _) in self._tasks.items() if when <= target
            )
            if not due:
                break
            when, _, key = due[0]
            self._move_to(when)
            _, _, callback = self._tasks.pop(key)
            callback()
        self._move_to(target)

    def _move_to(self, when: int) -> None:
        if self.clock is not None:
            self.clock.advance((when - self.now_ms) / 1000)
        self.now_ms = when


class RecordingGenerator:
    """External generator returning canned text and recording its calls."""

    def __init__(self, urgency: Urgency = Urgency.LOW) -> None:
        self.urgency = urgency
        self.calls: list[tuple[ReminderType, dict[str, Any], Urgency]] = []

    async def generate(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency_hint: Urgency,
    ) -> ReminderContent | None:
        self.calls.append((reminder_type, payload, urgency_hint))
        return ReminderContent(
            id="generated",
            content=f"generated {reminder_type}",
            type=reminder_type,
            urgency=self.urgency,
        )


class FailingGenerator:
    """External generator that always raises."""

    def __init__(self) -> None:
        self.calls = 0

    async def generate(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency_hint: Urgency,
    ) -> ReminderContent | None:
        self.calls += 1
        raise RuntimeError("generator offline")


class GatedGenerator:
    """External generator that blocks until ``release`` is set."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.order: list[ReminderType] = []

    async def generate(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency_hint: Urgency,
    ) -> ReminderContent | None:
        self.started += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.order.append(reminder_type)
        try:
            await self.release.wait()
        finally:
            self.in_flight -= 1
        return ReminderContent(
            id="gated",
            content=f"gated {reminder_type}",
            type=reminder_type,
            urgency=urgency_hint,
        )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manual clock."""
    return FakeClock()


@pytest.fixture
def fake_scheduler(fake_clock: FakeClock) -> FakeScheduler:
    """Provide a scheduler driven by the manual clock."""
    return FakeScheduler(fake_clock)


@pytest.fixture
def recording_generator() -> RecordingGenerator:
    """Provide a generator that records calls."""
    return RecordingGenerator()


@pytest.fixture
def failing_generator() -> FailingGenerator:
    """Provide a generator that always fails."""
    return FailingGenerator()


@pytest.fixture
def gated_generator() -> GatedGenerator:
    """Provide a generator that waits for permission to answer."""
    return GatedGenerator()


# =============================================================================
# Model Fixtures
# =============================================================================


def build_creature(
    creature_id: str,
    name: str | None = None,
    *,
    initiative: int = 10,
    hp: int = 20,
    max_hp: int = 20,
    **kwargs: Any,
) -> Creature:
    """Build a creature with sensible defaults."""
    return Creature(
        id=creature_id,
        name=name or creature_id.title(),
        initiative=initiative,
        hp=hp,
        max_hp=max_hp,
        **kwargs,
    )


@pytest.fixture
def make_creature() -> Callable[..., Creature]:
    """Provide the creature factory."""
    return build_creature


@pytest.fixture
def lair_action() -> CreatureAction:
    """Provide a lair action with an area effect."""
    return CreatureAction(
        name="Magma Eruption",
        description=(
            "Magma erupts from a point on the ground within 120 feet. Each creature "
            "within a 20-foot radius must make a DC 15 Dexterity saving throw, taking "
            "21 (6d6) fire damage on a failed save."
        ),
    )


@pytest.fixture
def legendary_actions() -> tuple[CreatureAction, ...]:
    """Provide a typical legendary action list."""
    return (
        CreatureAction(name="Detect", description="The dragon makes a Wisdom (Perception) check."),
        CreatureAction(name="Tail Attack", description="The dragon makes a tail attack."),
        CreatureAction(
            name="Wing Attack (Costs 2 Actions)",
            description=(
                "The dragon beats its wings. Each creature within 10 feet must succeed "
                "on a DC 22 Dexterity saving throw or take 15 (2d6 + 8) bludgeoning damage."
            ),
        ),
    )


@pytest.fixture
def dragon(
    legendary_actions: tuple[CreatureAction, ...],
    lair_action: CreatureAction,
) -> Creature:
    """Provide a legendary dragon that owns a lair."""
    return build_creature(
        "dragon",
        "Adult Red Dragon",
        initiative=20,
        hp=256,
        max_hp=256,
        ac=19,
        creature_type="dragon",
        legendary_actions=legendary_actions,
        lair_actions=(lair_action,),
        actions=(
            CreatureAction(
                name="Fire Breath (Recharge 5-6)",
                description=(
                    "The dragon exhales fire in a 60-foot cone. Each creature in that area "
                    "must make a DC 21 Dexterity saving throw, taking 63 (18d6) fire damage "
                    "on a failed save."
                ),
            ),
        ),
        special_abilities=(
            SpecialAbility(
                name="Legendary Resistance (3/Day)",
                description="If the dragon fails a saving throw, it can choose to succeed instead.",
            ),
        ),
    )


@pytest.fixture
def fighter() -> Creature:
    """Provide a player character."""
    return build_creature("fighter", "Thorin", initiative=18, hp=45, max_hp=45, ac=18, is_pc=True)


@pytest.fixture
def goblin() -> Creature:
    """Provide a weak monster."""
    return build_creature("goblin", "Goblin", initiative=12, hp=7, max_hp=7, ac=15)


@pytest.fixture
def dragon_snapshot(dragon: Creature, fighter: Creature, goblin: Creature) -> CombatSnapshot:
    """Provide round 1 of a dragon fight with the dragon acting."""
    return CombatSnapshot(current_turn=0, round=1, creatures=(dragon, fighter, goblin))


__all__ = [
    "FailingGenerator",
    "FakeClock",
    "FakeScheduler",
    "GatedGenerator",
    "RecordingGenerator",
    "build_creature",
]
