"""Tests for the reminder orchestrator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from dm_reminders.core.config import GenerationSettings, ReminderSettings
from dm_reminders.core.exceptions import InvalidEngineStateError
from dm_reminders.engine.orchestrator import GenerationLimiter, ReminderOrchestrator
from dm_reminders.models import (
    CombatSnapshot,
    CreatureCondition,
    DisplayPosition,
    EngineState,
    ReminderType,
    Urgency,
)


if TYPE_CHECKING:
    from collections.abc import Callable

    from dm_reminders.models import Creature, DisplayedReminder
    from tests.conftest import (
        FailingGenerator,
        FakeClock,
        FakeScheduler,
        GatedGenerator,
        RecordingGenerator,
    )


async def _until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def make_orchestrator(
    fake_scheduler: FakeScheduler,
    fake_clock: FakeClock,
) -> Callable[..., ReminderOrchestrator]:
    """Provide a factory for orchestrators on the manual scheduler and clock."""

    def factory(external: Any = None, **overrides: Any) -> ReminderOrchestrator:
        return ReminderOrchestrator(
            ReminderSettings(**overrides),
            generation_settings=GenerationSettings(
                timeout_seconds=1.0,
                max_retries=2,
                retry_backoff_seconds=0,
                retry_backoff_max_seconds=0,
            ),
            external_generator=external,
            scheduler=fake_scheduler,
            clock=fake_clock,
        )

    return factory


@pytest.fixture
def ogre_snapshot(make_creature: Callable[..., Creature]) -> CombatSnapshot:
    """Provide an ogre alone at 5/40 HP."""
    return CombatSnapshot(creatures=(make_creature("ogre", "Ogre", hp=5, max_hp=40),))


class TestGenerationLimiter:
    """Tests for the urgency-ordered concurrency limiter."""

    def test_limit_must_be_positive(self) -> None:
        """Test a zero limit is rejected."""
        with pytest.raises(ValueError):
            GenerationLimiter(0)

    @pytest.mark.anyio
    async def test_waiters_admitted_by_urgency(self) -> None:
        """Test the most urgent waiter gets the next free slot."""
        limiter = GenerationLimiter(1)
        admitted: list[str] = []

        async def worker(name: str, urgency: Urgency) -> None:
            async with limiter.slot(urgency):
                admitted.append(name)

        await limiter.acquire(Urgency.LOW)
        tasks = [
            asyncio.ensure_future(worker("low", Urgency.LOW)),
            asyncio.ensure_future(worker("critical", Urgency.CRITICAL)),
            asyncio.ensure_future(worker("medium", Urgency.MEDIUM)),
        ]
        await _until(lambda: limiter.waiting == 3)
        limiter.release()
        await asyncio.gather(*tasks)

        assert admitted == ["critical", "medium", "low"]
        assert limiter.active == 0


class TestLifecycle:
    """Tests for start, pause, resume and stop."""

    def test_initial_state(self, make_orchestrator: Callable[..., ReminderOrchestrator]) -> None:
        """Test a new engine is inactive."""
        orchestrator = make_orchestrator()

        assert orchestrator.state == EngineState.INACTIVE
        assert orchestrator.epoch == 0
        assert orchestrator.active_reminders == []

    def test_start_twice_rejected(
        self, make_orchestrator: Callable[..., ReminderOrchestrator]
    ) -> None:
        """Test starting a running engine raises."""
        orchestrator = make_orchestrator()
        orchestrator.start()

        with pytest.raises(InvalidEngineStateError) as exc_info:
            orchestrator.start()

        assert exc_info.value.details["current_state"] == EngineState.ACTIVE

    def test_pause_requires_active(
        self, make_orchestrator: Callable[..., ReminderOrchestrator]
    ) -> None:
        """Test pausing an inactive engine raises."""
        with pytest.raises(InvalidEngineStateError):
            make_orchestrator().pause()

    def test_resume_requires_paused(
        self, make_orchestrator: Callable[..., ReminderOrchestrator]
    ) -> None:
        """Test resuming an active engine raises."""
        orchestrator = make_orchestrator()
        orchestrator.start()

        with pytest.raises(InvalidEngineStateError):
            orchestrator.resume()

    def test_stop_is_idempotent(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        fake_scheduler: FakeScheduler,
    ) -> None:
        """Test stopping twice is harmless and bumps the epoch once."""
        orchestrator = make_orchestrator()
        orchestrator.start()
        assert "cache-sweep" in fake_scheduler.pending()

        orchestrator.stop()
        orchestrator.stop()

        assert orchestrator.state == EngineState.INACTIVE
        assert orchestrator.epoch == 2
        assert fake_scheduler.pending() == []

    @pytest.mark.anyio
    async def test_process_when_inactive(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test an inactive engine ignores snapshots."""
        orchestrator = make_orchestrator(recording_generator)

        assert await orchestrator.process(ogre_snapshot) == []
        assert recording_generator.calls == []
        assert orchestrator.context is None


class TestProcess:
    """Tests for processing cycles."""

    @pytest.mark.anyio
    async def test_critical_ogre(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test an ogre at 5/40 HP gets a persistent critical reminder first."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()

        shown = await orchestrator.process(ogre_snapshot)

        assert [r.type for r in shown] == [
            ReminderType.DEATH_TRIGGER,
            ReminderType.TURN_START,
            ReminderType.ROUND_START,
        ]
        death = shown[0]
        assert death.urgency == Urgency.CRITICAL
        assert death.display_duration == 0
        assert death.position == DisplayPosition.CENTER_ALERT
        assert death.content == "generated death_trigger"
        assert shown[1].urgency == Urgency.HIGH
        assert orchestrator.active_reminders == shown
        assert len(recording_generator.calls) == 3

    @pytest.mark.anyio
    async def test_unchanged_context_skipped(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test a repeated snapshot does not run a new cycle."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()

        await orchestrator.process(ogre_snapshot)
        again = await orchestrator.process(ogre_snapshot)

        assert again == []
        assert orchestrator.stats.cycles == 1
        assert orchestrator.stats.skipped_cycles == 1
        assert len(recording_generator.calls) == 3

    @pytest.mark.anyio
    async def test_cache_serves_repeat_requests(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test identical requests in a new session come from the cache."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        first = await orchestrator.process(ogre_snapshot)
        orchestrator.stop()
        orchestrator.start()

        second = await orchestrator.process(ogre_snapshot)

        assert [r.id for r in second] == [r.id for r in first]
        assert len(recording_generator.calls) == 3
        assert orchestrator.stats.cache_hits == 3
        assert orchestrator.stats.cache_hit_rate == pytest.approx(0.5)

    @pytest.mark.anyio
    async def test_cache_disabled(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test every session generates afresh without the cache."""
        orchestrator = make_orchestrator(recording_generator, enable_cache=False)
        orchestrator.start()
        await orchestrator.process(ogre_snapshot)
        orchestrator.stop()
        orchestrator.start()

        await orchestrator.process(ogre_snapshot)

        assert len(recording_generator.calls) == 6
        assert len(orchestrator.cache) == 0

    @pytest.mark.anyio
    async def test_fallback_on_failure(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        failing_generator: FailingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test failed generations degrade to uncached name-and-HP reminders."""
        orchestrator = make_orchestrator(failing_generator)
        orchestrator.start()

        shown = await orchestrator.process(ogre_snapshot)

        assert len(shown) == 3
        death = shown[0]
        assert death.type == ReminderType.DEATH_TRIGGER
        assert death.content == "**Death Trigger**: Ogre (5/40 HP)"
        assert death.context["fallback"] is True
        assert failing_generator.calls == 9
        assert orchestrator.stats.fallbacks == 3
        assert len(orchestrator.cache) == 0

    @pytest.mark.anyio
    async def test_structured_writer_by_default(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test the built-in writer produces content without an external generator."""
        orchestrator = make_orchestrator()
        orchestrator.start()

        shown = await orchestrator.process(ogre_snapshot)

        assert len(shown) == 3
        assert all("Ogre" in r.content for r in shown if r.type != ReminderType.ROUND_START)

    @pytest.mark.anyio
    async def test_initiative_change_reprocessed(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        dragon_snapshot: CombatSnapshot,
    ) -> None:
        """Test a snapshot differing only in initiative runs a new cycle."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(dragon_snapshot)
        await orchestrator.wait_idle()
        dragon, fighter, goblin = dragon_snapshot.creatures
        reordered = dragon_snapshot.model_copy(
            update={"creatures": (dragon, fighter, goblin.model_copy(update={"initiative": 25}))}
        )

        await orchestrator.process(reordered)
        await orchestrator.wait_idle()

        assert orchestrator.stats.cycles == 2
        assert orchestrator.stats.skipped_cycles == 0
        assert orchestrator.context is not None
        refreshed = orchestrator.context.creature_by_id("goblin")
        assert refreshed is not None
        assert refreshed.initiative == 25

    @pytest.mark.anyio
    async def test_conditions_consolidated(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test conditions applied in one cycle merge into a single reminder."""
        orc = make_creature("orc", initiative=15)
        troll = make_creature("troll", initiative=12)
        baseline = CombatSnapshot(creatures=(orc, troll))
        afflicted = CombatSnapshot(
            creatures=(
                orc.model_copy(
                    update={"conditions": (CreatureCondition(name="Poisoned", duration=3),)}
                ),
                troll.model_copy(
                    update={"conditions": (CreatureCondition(name="Prone", duration=3),)}
                ),
            )
        )
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(baseline)

        shown = await orchestrator.process(afflicted)

        assert len(shown) == 1
        merged = shown[0]
        assert merged.type == ReminderType.CONDITION_REMINDER
        assert merged.id.startswith("consolidated-condition_reminder-")
        assert merged.urgency == Urgency.HIGH
        assert merged.content.count("generated condition_reminder") == 2
        assert len(merged.context["merged"]) == 2


class TestDisplay:
    """Tests for display timers and dismissal."""

    @pytest.mark.anyio
    async def test_auto_dismiss(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test timed reminders vanish and persistent ones stay."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        death, turn, round_start = await orchestrator.process(ogre_snapshot)

        assert fake_scheduler.due_in(f"dismiss:{turn.id}") == 8000
        assert fake_scheduler.due_in(f"dismiss:{death.id}") is None

        fake_scheduler.advance(5000)
        assert [r.id for r in orchestrator.active_reminders] == [death.id, turn.id]

        fake_scheduler.advance(3000)
        assert [r.id for r in orchestrator.active_reminders] == [death.id]
        assert orchestrator.stats.dismissed == 2
        assert round_start.expires_at is not None

    @pytest.mark.anyio
    async def test_dismiss_idempotent(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test dismissing twice only removes once."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        shown = await orchestrator.process(ogre_snapshot)
        turn = shown[1]

        assert orchestrator.dismiss(turn.id) is True
        assert orchestrator.dismiss(turn.id) is False
        assert fake_scheduler.due_in(f"dismiss:{turn.id}") is None
        assert orchestrator.dismiss("missing") is False

    @pytest.mark.anyio
    async def test_delayed_display(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test delayed reminders appear when their timer fires."""
        snapshot = CombatSnapshot(creatures=(make_creature("goblin"),), notes="Thick fog")
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()

        shown = await orchestrator.process(snapshot)

        assert ReminderType.ENVIRONMENTAL not in [r.type for r in shown]
        display_keys = [k for k in fake_scheduler.pending() if k.startswith("display:")]
        assert len(display_keys) == 1
        assert fake_scheduler.due_in(display_keys[0]) == 500

        fake_scheduler.advance(500)

        assert ReminderType.ENVIRONMENTAL in [r.type for r in orchestrator.active_reminders]

    @pytest.mark.anyio
    async def test_delayed_display_held_while_paused(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test a delayed reminder firing during a pause waits for resume."""
        snapshot = CombatSnapshot(creatures=(make_creature("goblin"),), notes="Thick fog")
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(snapshot)
        orchestrator.pause()

        fake_scheduler.advance(500)
        assert ReminderType.ENVIRONMENTAL not in [r.type for r in orchestrator.active_reminders]
        assert await orchestrator.process(snapshot) == []

        orchestrator.resume()

        assert ReminderType.ENVIRONMENTAL in [r.type for r in orchestrator.active_reminders]

    @pytest.mark.anyio
    async def test_dismiss_before_delayed_display(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test a reminder dismissed during its display delay never appears."""
        snapshot = CombatSnapshot(creatures=(make_creature("goblin"),), notes="Thick fog")
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(snapshot)
        (display_key,) = [k for k in fake_scheduler.pending() if k.startswith("display:")]
        reminder_id = display_key.removeprefix("display:")

        assert orchestrator.dismiss(reminder_id) is True
        assert orchestrator.dismiss(reminder_id) is False
        fake_scheduler.advance(600)

        assert reminder_id not in [r.id for r in orchestrator.active_reminders]
        assert ReminderType.ENVIRONMENTAL not in [r.type for r in orchestrator.active_reminders]

    @pytest.mark.anyio
    async def test_dismiss_held_reminder(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test a reminder held during a pause can be dismissed before resume."""
        snapshot = CombatSnapshot(creatures=(make_creature("goblin"),), notes="Thick fog")
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(snapshot)
        (display_key,) = [k for k in fake_scheduler.pending() if k.startswith("display:")]
        orchestrator.pause()
        fake_scheduler.advance(500)

        assert orchestrator.dismiss(display_key.removeprefix("display:")) is True
        orchestrator.resume()

        assert ReminderType.ENVIRONMENTAL not in [r.type for r in orchestrator.active_reminders]

    @pytest.mark.anyio
    async def test_clear_all_drops_pending(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        make_creature: Callable[..., Creature],
    ) -> None:
        """Test clearing also cancels reminders still waiting to appear."""
        snapshot = CombatSnapshot(creatures=(make_creature("goblin"),), notes="Thick fog")
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        await orchestrator.process(snapshot)

        assert orchestrator.clear_all() == 2
        fake_scheduler.advance(600)

        assert orchestrator.active_reminders == []
        assert not [k for k in fake_scheduler.pending() if k.startswith("display:")]

    @pytest.mark.anyio
    async def test_listeners_and_clear_all(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test listeners see every change until they unsubscribe."""
        orchestrator = make_orchestrator(recording_generator)
        updates: list[list[DisplayedReminder]] = []
        unsubscribe = orchestrator.subscribe(updates.append)
        orchestrator.start()

        await orchestrator.process(ogre_snapshot)
        assert len(updates) == 1
        assert len(updates[0]) == 3

        unsubscribe()
        assert orchestrator.clear_all() == 3
        assert len(updates) == 1
        assert orchestrator.active_reminders == []
        assert not [k for k in fake_scheduler.pending() if k.startswith("dismiss:")]

    @pytest.mark.anyio
    async def test_failing_listener_does_not_break_engine(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test a raising listener is logged and skipped."""
        orchestrator = make_orchestrator(recording_generator)
        seen: list[int] = []

        def broken(reminders: list[DisplayedReminder]) -> None:
            raise RuntimeError("render failed")

        orchestrator.subscribe(broken)
        orchestrator.subscribe(lambda reminders: seen.append(len(reminders)))
        orchestrator.start()

        await orchestrator.process(ogre_snapshot)

        assert seen == [3]


class TestConcurrency:
    """Tests for in-flight generation handling."""

    @pytest.mark.anyio
    async def test_concurrency_cap_and_urgency_order(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        gated_generator: GatedGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test a single slot serves the critical reminder before the round one."""
        orchestrator = make_orchestrator(gated_generator, max_concurrent_generations=1)
        orchestrator.start()

        task = asyncio.ensure_future(orchestrator.process(ogre_snapshot))
        await _until(lambda: gated_generator.started == 1 and orchestrator.limiter.waiting == 2)
        gated_generator.release.set()
        shown = await task

        assert gated_generator.max_in_flight == 1
        assert gated_generator.order == [
            ReminderType.TURN_START,
            ReminderType.DEATH_TRIGGER,
            ReminderType.ROUND_START,
        ]
        assert len(shown) == 3

    @pytest.mark.anyio
    async def test_stop_discards_in_flight(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        gated_generator: GatedGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test results arriving after stop are dropped."""
        orchestrator = make_orchestrator(gated_generator)
        orchestrator.start()

        task = asyncio.ensure_future(orchestrator.process(ogre_snapshot))
        await _until(lambda: gated_generator.started == 3)
        orchestrator.stop()
        gated_generator.release.set()

        assert await task == []
        assert orchestrator.active_reminders == []
        assert orchestrator.stats.discarded == 3
        assert len(orchestrator.cache) == 0

    @pytest.mark.anyio
    async def test_results_held_while_paused(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        gated_generator: GatedGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test a cycle finishing during a pause shows its reminders on resume."""
        orchestrator = make_orchestrator(gated_generator)
        orchestrator.start()

        task = asyncio.ensure_future(orchestrator.process(ogre_snapshot))
        await _until(lambda: gated_generator.started == 3)
        orchestrator.pause()
        gated_generator.release.set()

        assert await task == []
        assert orchestrator.active_reminders == []

        orchestrator.resume()

        assert [r.type for r in orchestrator.active_reminders] == [
            ReminderType.DEATH_TRIGGER,
            ReminderType.TURN_START,
            ReminderType.ROUND_START,
        ]

    @pytest.mark.anyio
    async def test_notify_debounces(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        fake_scheduler: FakeScheduler,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test rapid notifications collapse into one cycle on the latest snapshot."""
        orchestrator = make_orchestrator(recording_generator)
        orchestrator.start()
        ogre = ogre_snapshot.creatures[0]
        later = CombatSnapshot(creatures=(ogre.model_copy(update={"hp": 4}),))

        orchestrator.notify(ogre_snapshot)
        fake_scheduler.advance(60)
        orchestrator.notify(later)
        assert fake_scheduler.due_in("cycle") == 100

        fake_scheduler.advance(100)
        await orchestrator.wait_idle()

        assert orchestrator.stats.cycles == 1
        assert orchestrator.context is not None
        assert orchestrator.context.creatures[0].hp == 4
        assert len(orchestrator.active_reminders) == 3

    def test_notify_ignored_when_inactive(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        fake_scheduler: FakeScheduler,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test notifications before start schedule nothing."""
        orchestrator = make_orchestrator()

        orchestrator.notify(ogre_snapshot)

        assert fake_scheduler.pending() == []


class TestPolling:
    """Tests for the snapshot polling loop."""

    @pytest.mark.anyio
    async def test_failed_poll_keeps_polling(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        recording_generator: RecordingGenerator,
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test a source error is logged and the next poll still runs."""
        orchestrator = make_orchestrator(recording_generator, poll_interval_ms=50)
        calls: list[int] = []

        def source() -> CombatSnapshot | None:
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("store unavailable")
            if len(calls) == 2:
                return ogre_snapshot
            orchestrator.stop()
            return None

        orchestrator.start()
        await asyncio.wait_for(orchestrator.run_polling(source), timeout=5)

        assert len(calls) == 3
        assert orchestrator.stats.cycles == 1
        assert orchestrator.state == EngineState.INACTIVE

    @pytest.mark.anyio
    async def test_paused_engine_skips_source(
        self,
        make_orchestrator: Callable[..., ReminderOrchestrator],
        ogre_snapshot: CombatSnapshot,
    ) -> None:
        """Test the loop does not read the source while paused."""
        orchestrator = make_orchestrator(poll_interval_ms=50)
        calls: list[int] = []

        async def source() -> CombatSnapshot | None:
            calls.append(1)
            return ogre_snapshot

        orchestrator.start()
        orchestrator.pause()
        task = asyncio.ensure_future(orchestrator.run_polling(source))
        await asyncio.sleep(0.12)
        orchestrator.stop()
        await asyncio.wait_for(task, timeout=5)

        assert calls == []
