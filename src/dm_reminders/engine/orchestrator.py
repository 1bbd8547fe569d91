"""Reminder orchestrator.

This module wires the engine together for one combat session::

    snapshot -> ContextBuilder -> diff_contexts -> Forecaster
             -> ReminderPlanner -> cache / GeneratorTable
             -> consolidate -> sort -> display timers

All mutation of the active-reminder list and the cache happens on the
event loop thread. Content generation runs concurrently up to
``max_concurrent_generations``; excess requests queue by urgency.

Every session has an epoch. ``stop()`` bumps it, so results of generations
that were still in flight are recognised as stale and discarded instead of
reviving a stopped session.
"""

from __future__ import annotations

import asyncio
import hashlib
import heapq
import inspect
import itertools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from functools import partial
from typing import TYPE_CHECKING

from dm_reminders.core.config import GenerationSettings, ReminderSettings
from dm_reminders.core.constants import CONSOLIDATED_TYPES
from dm_reminders.core.exceptions import GenerationError, InvalidEngineStateError
from dm_reminders.core.logging import bind_context, clear_context, get_logger
from dm_reminders.engine.cache import ReminderCache
from dm_reminders.engine.context import ContextBuilder, context_fingerprint
from dm_reminders.engine.differ import diff_contexts
from dm_reminders.engine.forecaster import Forecaster
from dm_reminders.engine.generation import (
    ContentGenerator,
    GeneratorTable,
    cache_key,
    fallback_reminder,
    normalize_content,
)
from dm_reminders.engine.planner import ReminderPlanner
from dm_reminders.engine.scheduler import AsyncioScheduler, Scheduler
from dm_reminders.engine.validator import EncounterValidator
from dm_reminders.models.enums import EngineState, Urgency
from dm_reminders.models.reminders import DisplayedReminder, ReminderContent


if TYPE_CHECKING:
    from dm_reminders.engine.validator import ValidationIssue
    from dm_reminders.models.context import EncounterContext, PredictedEvent
    from dm_reminders.models.creature import CombatSnapshot
    from dm_reminders.models.reminders import GenerationRequest

logger = get_logger(__name__)

ReminderListener = Callable[[list[DisplayedReminder]], None]
SnapshotSource = Callable[[], "CombatSnapshot | None | Awaitable[CombatSnapshot | None]"]

CYCLE_TASK_KEY = "cycle"
CACHE_SWEEP_TASK_KEY = "cache-sweep"


def _display_key(reminder_id: str) -> str:
    return f"display:{reminder_id}"


def _dismiss_key(reminder_id: str) -> str:
    return f"dismiss:{reminder_id}"


# =============================================================================
# Generation Limiter
# =============================================================================


class GenerationLimiter:
    """Cap concurrent generations, admitting waiters by urgency.

    Waiters with higher urgency are admitted first; equal urgencies keep
    arrival order. Releasing a slot hands it directly to the next waiter.
    """

    def __init__(self, limit: int) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum concurrent holders (>= 1).
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._active = 0
        self._waiters: list[tuple[int, int, asyncio.Future[None]]] = []
        self._sequence = itertools.count()

    @property
    def active(self) -> int:
        """Slots currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Callers queued for a slot."""
        return sum(1 for _, _, future in self._waiters if not future.done())

    async def acquire(self, urgency: Urgency) -> None:
        """Wait for a slot.

        Args:
            urgency: Priority of the caller.
        """
        if self._active < self.limit and not self.waiting:
            self._active += 1
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (-urgency.rank, next(self._sequence), future))
        try:
            await future
        except asyncio.CancelledError:
            if future.done() and not future.cancelled():
                # The slot was handed over before the cancellation landed
                self.release()
            raise

    def release(self) -> None:
        """Give a slot back, handing it to the most urgent waiter if any."""
        while self._waiters:
            _, _, future = heapq.heappop(self._waiters)
            if not future.done():
                future.set_result(None)
                return
        self._active -= 1

    @asynccontextmanager
    async def slot(self, urgency: Urgency) -> AsyncIterator[None]:
        """Hold a slot for the duration of the block."""
        await self.acquire(urgency)
        try:
            yield
        finally:
            self.release()


# =============================================================================
# Statistics
# =============================================================================


@dataclass
class EngineStats:
    """Counters of one orchestrator instance.

    Attributes:
        cycles: Processing cycles run.
        skipped_cycles: Cycles skipped because the context did not change.
        generated: Contents produced by generators.
        cache_hits: Contents served from the cache.
        fallbacks: Fallback reminders substituted for failed generations.
        discarded: Results dropped because their session had ended.
        prefetched: Contents generated ahead of time.
        displayed: Reminders shown.
        dismissed: Reminders removed, manually or automatically.
        cache_hit_rate: Hit rate of the reminder cache.
    """

    cycles: int = 0
    skipped_cycles: int = 0
    generated: int = 0
    cache_hits: int = 0
    fallbacks: int = 0
    discarded: int = 0
    prefetched: int = 0
    displayed: int = 0
    dismissed: int = 0
    cache_hit_rate: float = 0.0


# =============================================================================
# Orchestrator
# =============================================================================


class ReminderOrchestrator:
    """Drive the reminder pipeline for a combat session.

    The host owns the instance and passes in any collaborators it wants to
    replace; everything else gets a default.

    Example:
        >>> orchestrator = ReminderOrchestrator(settings)
        >>> orchestrator.subscribe(render)
        >>> orchestrator.start()
        >>> await orchestrator.process(snapshot)
    """

    def __init__(
        self,
        settings: ReminderSettings | None = None,
        *,
        generation_settings: GenerationSettings | None = None,
        cache: ReminderCache | None = None,
        planner: ReminderPlanner | None = None,
        forecaster: Forecaster | None = None,
        builder: ContextBuilder | None = None,
        validator: EncounterValidator | None = None,
        generators: GeneratorTable | None = None,
        external_generator: ContentGenerator | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Reminder configuration.
            generation_settings: Timeout and retry policy of the external
                generator.
            cache: Reminder cache; may be shared between sessions.
            planner: Reminder planner.
            forecaster: Event forecaster.
            builder: Context builder.
            validator: Snapshot validator.
            generators: Generator table; built from ``external_generator``
                when None.
            external_generator: External content generator used by the
                default table.
            scheduler: Timer service; asyncio-backed if None.
            clock: Time source in seconds.
        """
        self.settings = settings or ReminderSettings()
        self.cache = cache if cache is not None else ReminderCache(
            max_size=self.settings.max_cached_reminders,
            ttl_seconds=self.settings.cache_ttl_seconds,
            clock=clock,
        )
        self.planner = planner or ReminderPlanner(self.settings)
        self.forecaster = forecaster or Forecaster()
        self.builder = builder or ContextBuilder()
        self.validator = validator or EncounterValidator()
        self.generators = generators or GeneratorTable.default(
            external_generator,
            generation_settings,
        )
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self.limiter = GenerationLimiter(self.settings.max_concurrent_generations)
        self._clock = clock

        self._state = EngineState.INACTIVE
        self._epoch = 0
        self._previous: EncounterContext | None = None
        self._previous_fingerprint: str | None = None
        self._active: dict[str, DisplayedReminder] = {}
        self._held: list[ReminderContent] = []
        self._listeners: list[ReminderListener] = []
        self._tasks: set[asyncio.Task[object]] = set()
        self._pending_snapshot: CombatSnapshot | None = None
        self._warnings: list[ValidationIssue] = []
        self._predictions: list[PredictedEvent] = []
        self._stats = EngineStats()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """Current lifecycle state."""
        return self._state

    @property
    def epoch(self) -> int:
        """Session counter; changes on every start and stop."""
        return self._epoch

    @property
    def context(self) -> EncounterContext | None:
        """Context of the last processed cycle."""
        return self._previous

    @property
    def active_reminders(self) -> list[DisplayedReminder]:
        """Reminders currently shown, in display order."""
        return list(self._active.values())

    @property
    def warnings(self) -> list[ValidationIssue]:
        """Validation issues of the last processed snapshot."""
        return list(self._warnings)

    @property
    def predictions(self) -> list[PredictedEvent]:
        """Forecast of the last processed cycle."""
        return list(self._predictions)

    @property
    def stats(self) -> EngineStats:
        """Copy of the engine counters."""
        return replace(self._stats, cache_hit_rate=self.cache.hit_rate)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Begin a session with a fresh turn and round baseline.

        Raises:
            InvalidEngineStateError: If a session is already running.
        """
        if self._state != EngineState.INACTIVE:
            raise InvalidEngineStateError(
                "Engine already started",
                current_state=self._state,
                expected_states=[EngineState.INACTIVE],
            )
        self._epoch += 1
        self._state = EngineState.ACTIVE
        self._previous = None
        self._previous_fingerprint = None
        self._active.clear()
        self._held.clear()
        self._warnings = []
        self._predictions = []
        bind_context(session_epoch=self._epoch)
        if self.settings.enable_cache:
            self._schedule_cache_sweep()
        logger.info("Reminder engine started", epoch=self._epoch)

    def pause(self) -> None:
        """Stop polling and display-timer creation; shown reminders stay.

        Raises:
            InvalidEngineStateError: If the engine is not active.
        """
        if self._state != EngineState.ACTIVE:
            raise InvalidEngineStateError(
                "Only an active engine can be paused",
                current_state=self._state,
                expected_states=[EngineState.ACTIVE],
            )
        self._state = EngineState.PAUSED
        logger.info("Reminder engine paused", epoch=self._epoch)

    def resume(self) -> None:
        """Return to active and show results that arrived while paused.

        Raises:
            InvalidEngineStateError: If the engine is not paused.
        """
        if self._state != EngineState.PAUSED:
            raise InvalidEngineStateError(
                "Only a paused engine can be resumed",
                current_state=self._state,
                expected_states=[EngineState.PAUSED],
            )
        self._state = EngineState.ACTIVE
        held, self._held = self._held, []
        logger.info("Reminder engine resumed", epoch=self._epoch, held=len(held))
        if held:
            self._display_batch(self._sort(self._consolidate(held)))

    def stop(self) -> None:
        """End the session: cancel every timer and clear all reminders.

        In-flight generations are abandoned; their results are discarded
        when they arrive. Calling ``stop`` again is a no-op.
        """
        if self._state == EngineState.INACTIVE:
            return
        self._epoch += 1
        self._state = EngineState.INACTIVE
        cancelled = self.scheduler.cancel_all()
        had_reminders = bool(self._active)
        self._active.clear()
        self._held.clear()
        self._pending_snapshot = None
        self._previous = None
        self._previous_fingerprint = None
        logger.info(
            "Reminder engine stopped",
            epoch=self._epoch,
            cancelled_timers=cancelled,
            in_flight=len(self._tasks),
        )
        clear_context()
        if had_reminders:
            self._notify_listeners()

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: ReminderListener) -> Callable[[], None]:
        """Register a callback receiving the active list after every change.

        Returns:
            A function that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        reminders = self.active_reminders
        for listener in list(self._listeners):
            try:
                listener(reminders)
            except Exception:
                logger.exception("Reminder listener failed")

    # -------------------------------------------------------------------------
    # Context intake
    # -------------------------------------------------------------------------

    def notify(self, snapshot: CombatSnapshot) -> None:
        """Report a context change; processing is debounced.

        Rapid successive notifications collapse into one cycle run on the
        latest snapshot ``trigger_delay_ms`` after the last one.
        """
        if self._state != EngineState.ACTIVE:
            logger.debug("Notification ignored", state=self._state)
            return
        self._pending_snapshot = snapshot
        self.scheduler.schedule(
            CYCLE_TASK_KEY,
            self.settings.trigger_delay_ms,
            self._run_pending_cycle,
        )

    def _run_pending_cycle(self) -> None:
        snapshot, self._pending_snapshot = self._pending_snapshot, None
        if snapshot is None or self._state != EngineState.ACTIVE:
            return
        self._spawn(self.process(snapshot))

    def _spawn(self, coroutine: Awaitable[object]) -> asyncio.Task[object]:
        task: asyncio.Task[object] = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every spawned cycle and prefetch task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run_polling(self, source: SnapshotSource) -> None:
        """Poll a snapshot source until the engine stops.

        While paused the loop keeps running but does not read the source.
        Errors raised by the source or by a cycle are logged and polling
        continues.

        Args:
            source: Returns the current snapshot (or an awaitable of it),
                or None when there is nothing new.
        """
        interval = self.settings.poll_interval_ms / 1000
        while self._state != EngineState.INACTIVE:
            if self._state == EngineState.ACTIVE:
                try:
                    snapshot = source()
                    if inspect.isawaitable(snapshot):
                        snapshot = await snapshot
                    if snapshot is not None and self._state == EngineState.ACTIVE:
                        await self.process(snapshot)
                except Exception:
                    # A bad poll must not end the session
                    logger.exception("Snapshot poll failed", epoch=self._epoch)
            await asyncio.sleep(interval)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process(self, snapshot: CombatSnapshot) -> list[DisplayedReminder]:
        """Run one processing cycle.

        Args:
            snapshot: Current combat state.

        Returns:
            Reminders shown immediately by this cycle; delayed ones appear
            when their display timer fires.
        """
        if self._state != EngineState.ACTIVE:
            return []
        epoch = self._epoch

        warnings = self.validator.validate(snapshot)
        context = self.builder.build(snapshot)
        fingerprint = context_fingerprint(context)
        if fingerprint == self._previous_fingerprint:
            self._stats.skipped_cycles += 1
            return []

        self._stats.cycles += 1
        events = diff_contexts(self._previous, context, timestamp=self._clock())
        predictions = (
            self.forecaster.forecast(context) if self.settings.enable_predictive else []
        )
        context = context.model_copy(
            update={"recent_events": tuple(events), "upcoming_events": tuple(predictions)}
        )
        previous = self._previous
        self._previous = context
        self._previous_fingerprint = fingerprint
        self._warnings = warnings
        self._predictions = predictions

        requests = self.planner.plan(
            context,
            events,
            previous=previous,
            predictions=predictions,
        )
        for request in requests:
            if request.prefetch:
                self._spawn(self._prefetch(request, epoch))

        results = await asyncio.gather(
            *(self._resolve(r, epoch) for r in requests if not r.prefetch)
        )
        if epoch != self._epoch:
            return []
        contents = [c for c in results if c is not None]
        logger.debug(
            "Cycle resolved",
            round=context.round,
            turn=context.current_turn,
            events=len(events),
            requests=len(requests),
            reminders=len(contents),
        )
        return self._display_batch(self._sort(self._consolidate(contents)))

    async def _resolve(self, request: GenerationRequest, epoch: int) -> ReminderContent | None:
        key = cache_key(request)
        if self.settings.enable_cache:
            cached = self.cache.get(key)
            if cached is not None:
                self._stats.cache_hits += 1
                return normalize_content(cached, request)

        fallback = False
        async with self.limiter.slot(request.urgency):
            if epoch != self._epoch:
                self._stats.discarded += 1
                return None
            try:
                content = await self.generators.generate(request)
            except GenerationError as exc:
                logger.warning(
                    "Generation failed, using fallback reminder",
                    reminder_type=request.reminder_type,
                    error=exc.message,
                )
                content = fallback_reminder(request)
                fallback = True

        if epoch != self._epoch:
            self._stats.discarded += 1
            return None
        if content is None:
            return None
        if fallback:
            self._stats.fallbacks += 1
        else:
            self._stats.generated += 1
            if self.settings.enable_cache:
                self.cache.set(key, content)
        return content

    async def _prefetch(self, request: GenerationRequest, epoch: int) -> None:
        key = cache_key(request)
        if key in self.cache:
            return
        async with self.limiter.slot(request.urgency):
            if epoch != self._epoch:
                return
            try:
                content = await self.generators.generate(request)
            except GenerationError as exc:
                logger.debug("Prefetch failed", reminder_type=request.reminder_type, error=exc.message)
                return
        if epoch != self._epoch:
            self._stats.discarded += 1
            return
        if content is not None:
            self.cache.set(key, content)
            self._stats.prefetched += 1

    # -------------------------------------------------------------------------
    # Consolidation and display
    # -------------------------------------------------------------------------

    def _consolidate(self, contents: list[ReminderContent]) -> list[ReminderContent]:
        """Merge consolidatable types into one entry per type.

        Other types keep one entry per reminder ID.
        """
        unique: dict[str, ReminderContent] = {}
        for content in contents:
            unique.setdefault(content.id, content)

        groups: dict[str, list[ReminderContent]] = {}
        merged: list[ReminderContent] = []
        for content in unique.values():
            if content.type in CONSOLIDATED_TYPES:
                if content.type not in groups:
                    groups[content.type] = []
                    merged.append(content)
                groups[content.type].append(content)
            else:
                merged.append(content)

        result: list[ReminderContent] = []
        for content in merged:
            group = groups.get(content.type) if content.type in CONSOLIDATED_TYPES else None
            if not group or len(group) == 1:
                result.append(content)
                continue
            digest = hashlib.sha256("|".join(sorted(c.id for c in group)).encode()).hexdigest()
            result.append(
                content.model_copy(
                    update={
                        "id": f"consolidated-{content.type}-{digest[:12]}",
                        "content": "\n\n".join(c.content for c in group),
                        "urgency": Urgency.highest(*(c.urgency for c in group)),
                        "display_duration": (
                            0
                            if any(c.display_duration == 0 for c in group)
                            else max(c.display_duration for c in group)
                        ),
                        "persistent": any(c.persistent for c in group),
                        "context": {"merged": [c.id for c in group]},
                    }
                )
            )
        return result

    def _sort(self, contents: list[ReminderContent]) -> list[ReminderContent]:
        return sorted(
            contents,
            key=lambda c: (-c.urgency.rank, self.settings.priority_index(c.type)),
        )

    def _display_batch(self, batch: list[ReminderContent]) -> list[DisplayedReminder]:
        if self._state == EngineState.PAUSED:
            self._held.extend(batch)
            return []
        shown: list[DisplayedReminder] = []
        for content in batch:
            delay = content.timing.delay_ms
            if delay > 0:
                self.scheduler.schedule(
                    _display_key(content.id),
                    delay,
                    partial(self._show_delayed, content, self._epoch),
                )
            else:
                shown.append(self._show(content))
        if shown:
            self._notify_listeners()
        return shown

    def _show_delayed(self, content: ReminderContent, epoch: int) -> None:
        if epoch != self._epoch or self._state == EngineState.INACTIVE:
            return
        if self._state == EngineState.PAUSED:
            self._held.append(content)
            return
        self._show(content)
        self._notify_listeners()

    def _show(self, content: ReminderContent) -> DisplayedReminder:
        reminder = DisplayedReminder(**content.model_dump(), start_time=self._clock())
        # Re-showing an ID replaces the entry and restarts its timer
        self._active.pop(reminder.id, None)
        self._active[reminder.id] = reminder
        self._stats.displayed += 1
        if reminder.display_duration > 0:
            self.scheduler.schedule(
                _dismiss_key(reminder.id),
                reminder.display_duration,
                partial(self.dismiss, reminder.id),
            )
        else:
            self.scheduler.cancel(_dismiss_key(reminder.id))
        return reminder

    def dismiss(self, reminder_id: str) -> bool:
        """Remove a reminder, manually or from its auto-dismiss timer.

        A reminder still waiting for its display delay, or held while
        paused, is dropped and never appears.

        Args:
            reminder_id: ID of the reminder.

        Returns:
            True if it was shown or pending; dismissing twice is harmless.
        """
        self.scheduler.cancel(_dismiss_key(reminder_id))
        pending = self.scheduler.cancel(_display_key(reminder_id))
        held = len(self._held)
        self._held = [c for c in self._held if c.id != reminder_id]
        pending = pending or len(self._held) != held
        if self._active.pop(reminder_id, None) is None:
            return pending
        self._stats.dismissed += 1
        self._notify_listeners()
        return True

    def clear_all(self) -> int:
        """Dismiss every shown reminder and drop pending ones.

        Returns:
            Number of shown reminders removed.
        """
        ids = list(self._active)
        for reminder_id in ids:
            self.scheduler.cancel(_dismiss_key(reminder_id))
        for key in self.scheduler.pending():
            if key.startswith(_display_key("")):
                self.scheduler.cancel(key)
        self._held.clear()
        self._active.clear()
        self._stats.dismissed += len(ids)
        if ids:
            self._notify_listeners()
        return len(ids)

    # -------------------------------------------------------------------------
    # Cache sweep
    # -------------------------------------------------------------------------

    def _schedule_cache_sweep(self) -> None:
        self.scheduler.schedule(
            CACHE_SWEEP_TASK_KEY,
            int(self.cache.sweep_interval_seconds * 1000),
            self._sweep_cache,
        )

    def _sweep_cache(self) -> None:
        if self._state == EngineState.INACTIVE:
            return
        self.cache.cleanup_expired()
        self._schedule_cache_sweep()


__all__ = [
    "EngineStats",
    "GenerationLimiter",
    "ReminderListener",
    "ReminderOrchestrator",
    "SnapshotSource",
]
