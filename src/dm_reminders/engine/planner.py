"""Decide which reminders a context change calls for.

The planner is the decision core of the engine. For one processing cycle
it reads the new context, the changes detected against the previous one
and the fired trigger rules, and returns the generation requests to run.
Triggers are always evaluated before predictions are consumed; predicted
events only ever produce prefetch requests that warm the cache.

Planning is deterministic and side-effect free.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dm_reminders.core.config import ReminderSettings
from dm_reminders.core.constants import (
    CONCENTRATION_BASE_DC,
    CRITICAL_CONDITIONS,
    SEVERE_CONDITIONS,
)
from dm_reminders.core.logging import get_logger
from dm_reminders.engine.abilities import AbilityParser
from dm_reminders.engine.generation import (
    cache_key,
    concentration_payload,
    condition_payload,
    death_payload,
    environmental_payload,
    lair_payload,
    legendary_payload,
    round_start_payload,
    tactical_payload,
    turn_end_payload,
    turn_start_payload,
)
from dm_reminders.engine.initiative import InitiativeTimingResolver
from dm_reminders.engine.triggers import (
    TriggerEvaluator,
    adjust_for_creature,
    adjust_for_encounter,
    reminder_type_of,
)
from dm_reminders.models.enums import (
    PredictionType,
    ReminderType,
    StateChangeType,
    TriggerTiming,
    Urgency,
)
from dm_reminders.models.reminders import GenerationRequest


if TYPE_CHECKING:
    from collections.abc import Iterable

    from dm_reminders.models.context import (
        ActiveCondition,
        EncounterContext,
        PredictedEvent,
        StateChangeEvent,
    )
    from dm_reminders.models.creature import Creature
    from dm_reminders.models.reminders import Trigger

logger = get_logger(__name__)


def condition_urgency(name: str) -> Urgency:
    """Urgency of a newly applied condition.

    Returns:
        Critical for incapacitating conditions, high for severe ones,
        medium otherwise.
    """
    lowered = name.strip().lower()
    if lowered in CRITICAL_CONDITIONS:
        return Urgency.CRITICAL
    if lowered in SEVERE_CONDITIONS:
        return Urgency.HIGH
    return Urgency.MEDIUM


def concentration_dc(damage: int) -> int:
    """Constitution save DC to keep concentration after taking damage."""
    return max(CONCENTRATION_BASE_DC, damage // 2)


class _CyclePlan:
    """Mutable state of one planning pass."""

    def __init__(self, planner: ReminderPlanner, context: EncounterContext) -> None:
        self.planner = planner
        self.context = context
        self.requests: list[GenerationRequest] = []
        self._seen: set[tuple[str, bool]] = set()
        self._fired: dict[str | None, frozenset[str]] = {}

    def fired(self, creature_id: str | None) -> frozenset[str]:
        if creature_id not in self._fired:
            self._fired[creature_id] = self.planner.evaluator.evaluate(self.context, creature_id)
        return self._fired[creature_id]

    def trigger(self, reminder_type: ReminderType, creature_id: str | None) -> Trigger | None:
        """Most urgent fired rule producing the given type, if any."""
        fired = self.fired(creature_id)
        matches = [
            t
            for t in self.planner.evaluator.registry
            if t.key in fired and reminder_type_of(t) == reminder_type
        ]
        return max(matches, key=lambda t: t.urgency.rank, default=None)

    def add(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        *,
        trigger: Trigger | None,
        creature: Creature | None = None,
        urgency: Urgency | None = None,
        prefetch: bool = False,
    ) -> None:
        request = self.planner.build_request(
            self.context,
            reminder_type,
            payload,
            trigger=trigger,
            creature=creature,
            urgency=urgency,
            prefetch=prefetch,
        )
        key = cache_key(request)
        identity = (key, prefetch)
        if identity in self._seen or (prefetch and (key, False) in self._seen):
            return
        self._seen.add(identity)
        self.requests.append(request)


class ReminderPlanner:
    """Turn context changes into generation requests.

    Example:
        >>> planner = ReminderPlanner()
        >>> requests = planner.plan(context, diff_contexts(None, context))
        >>> [r.reminder_type for r in requests]
        ['turn_start', 'lair_actions', 'round_start']
    """

    def __init__(
        self,
        settings: ReminderSettings | None = None,
        *,
        evaluator: TriggerEvaluator | None = None,
        resolver: InitiativeTimingResolver | None = None,
        parser: AbilityParser | None = None,
    ) -> None:
        """Initialize the planner.

        Args:
            settings: Reminder configuration.
            evaluator: Trigger evaluator; stock rules if None.
            resolver: Initiative timing resolver.
            parser: Ability parser.
        """
        self.settings = settings or ReminderSettings()
        self.evaluator = evaluator or TriggerEvaluator()
        self.resolver = resolver or InitiativeTimingResolver()
        self.parser = parser or AbilityParser()

    def build_request(
        self,
        context: EncounterContext,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        *,
        trigger: Trigger | None = None,
        creature: Creature | None = None,
        urgency: Urgency | None = None,
        prefetch: bool = False,
    ) -> GenerationRequest:
        """Build one request with configured display metadata.

        The urgency is the highest of the rule's urgency (or the given
        one), the configured floor for the type and the creature and
        encounter adjustments.
        """
        base = Urgency.highest(
            urgency or Urgency.LOW,
            trigger.urgency if trigger else Urgency.LOW,
            self.settings.urgency_thresholds[reminder_type],
        )
        if creature is not None:
            base = adjust_for_creature(base, creature, context.round)
        base = adjust_for_encounter(base, context)
        return GenerationRequest(
            reminder_type=reminder_type,
            payload=payload,
            urgency=base,
            position=self.settings.display_positions[reminder_type],
            timing=trigger.timing if trigger else TriggerTiming.IMMEDIATE,
            display_duration=self.settings.auto_hide_durations[reminder_type],
            creature_id=creature.id if creature else None,
            creature_name=creature.name if creature else None,
            trigger_key=trigger.key if trigger else None,
            prefetch=prefetch,
        )

    def plan(
        self,
        context: EncounterContext,
        events: Iterable[StateChangeEvent],
        *,
        previous: EncounterContext | None = None,
        predictions: Iterable[PredictedEvent] = (),
    ) -> list[GenerationRequest]:
        """Plan the reminders for one cycle.

        Args:
            context: New context.
            events: Changes detected against ``previous``.
            previous: Context of the previous cycle, if any.
            predictions: Forecast for ``context``.

        Returns:
            Requests in planning order: turn, timing windows, round,
            HP-driven, condition, then prefetch.
        """
        events = list(events)
        kinds = {e.type for e in events}
        cycle = _CyclePlan(self, context)
        current = context.current_creature

        turn_moved = bool(
            kinds & {StateChangeType.TURN_CHANGE, StateChangeType.COMBAT_START}
        )
        round_moved = bool(
            kinds & {StateChangeType.ROUND_CHANGE, StateChangeType.COMBAT_START}
        )

        if turn_moved and current is not None:
            self._plan_turn(cycle, current)
            previous_creature = previous.current_creature if previous else None
            self._plan_windows(cycle, previous_creature, current)
            if previous_creature is not None:
                self._plan_turn_end(cycle, previous_creature)

        if round_moved:
            self._plan_round(cycle)

        for event in events:
            if event.type == StateChangeType.HP_CHANGE:
                self._plan_hp_change(cycle, event)
            elif event.type == StateChangeType.CREATURE_DEATH:
                self._plan_death(cycle, event)
            elif event.type == StateChangeType.CONDITION_CHANGE:
                self._plan_conditions_added(cycle, event)

        if self.settings.enable_predictive and self.settings.enable_cache:
            self._plan_prefetch(cycle, predictions)

        logger.debug(
            "Cycle planned",
            round=context.round,
            turn=context.current_turn,
            events=[str(k) for k in kinds],
            requests=len(cycle.requests),
        )
        return cycle.requests

    # -------------------------------------------------------------------------
    # Turn and round
    # -------------------------------------------------------------------------

    def _plan_turn(self, cycle: _CyclePlan, creature: Creature) -> None:
        context = cycle.context
        parsed = self.parser.parse(creature)

        trigger = cycle.trigger(ReminderType.TURN_START, creature.id)
        if trigger is not None:
            cycle.add(
                ReminderType.TURN_START,
                turn_start_payload(context, creature, parsed),
                trigger=trigger,
                creature=creature,
            )

        self._plan_critical_hp(cycle, creature)

        conditions = context.conditions_for(creature.id)
        trigger = cycle.trigger(ReminderType.CONDITION_REMINDER, creature.id)
        if trigger is not None and conditions:
            cycle.add(
                ReminderType.CONDITION_REMINDER,
                condition_payload(context, conditions),
                trigger=trigger,
                creature=creature,
                urgency=Urgency.highest(*(condition_urgency(c.name) for c in conditions)),
            )

        trigger = cycle.trigger(ReminderType.TACTICAL_SUGGESTION, creature.id)
        if trigger is not None and not creature.is_pc:
            cycle.add(
                ReminderType.TACTICAL_SUGGESTION,
                tactical_payload(context, creature, parsed),
                trigger=trigger,
                creature=creature,
            )

    def _plan_windows(
        self,
        cycle: _CyclePlan,
        previous: Creature | None,
        current: Creature,
    ) -> None:
        context = cycle.context
        passed = self.resolver.windows_between(context, previous, current)

        lair_actions = [a for w in passed if w.includes_lair for a in w.lair_actions]
        trigger = cycle.trigger(ReminderType.LAIR_ACTIONS, current.id)
        if lair_actions and trigger is not None:
            owner = context.creature_by_id(lair_actions[0].owner_id)
            cycle.add(
                ReminderType.LAIR_ACTIONS,
                lair_payload(context, lair_actions),
                trigger=trigger,
                creature=owner,
            )

        # One reminder per legendary actor, for the latest window it can use
        latest: dict[str, tuple[Any, str | None]] = {}
        for window in passed:
            if not window.is_legendary_window:
                continue
            for legendary in window.legendary_creatures:
                latest[legendary.id] = (legendary, window.creature_name)
        for legendary, after in latest.values():
            creature = context.creature_by_id(legendary.id)
            if creature is None:
                continue
            trigger = cycle.trigger(ReminderType.LEGENDARY_ACTIONS, legendary.id)
            if trigger is None:
                continue
            cycle.add(
                ReminderType.LEGENDARY_ACTIONS,
                legendary_payload(context, legendary, self.parser.parse(creature), after=after),
                trigger=trigger,
                creature=creature,
            )

    def _plan_turn_end(self, cycle: _CyclePlan, finished: Creature) -> None:
        creature = cycle.context.creature_by_id(finished.id)
        if creature is None or not creature.is_alive:
            return
        parsed = self.parser.parse(creature)
        if not parsed.turn_end:
            return
        trigger = cycle.trigger(ReminderType.TURN_END, creature.id)
        if trigger is not None:
            cycle.add(
                ReminderType.TURN_END,
                turn_end_payload(cycle.context, creature, parsed),
                trigger=trigger,
                creature=creature,
            )

    def _plan_round(self, cycle: _CyclePlan) -> None:
        context = cycle.context
        current = context.current_creature
        current_id = current.id if current else None

        trigger = cycle.trigger(ReminderType.ROUND_START, current_id)
        if trigger is not None:
            cycle.add(ReminderType.ROUND_START, round_start_payload(context), trigger=trigger)

        trigger = cycle.trigger(ReminderType.ENVIRONMENTAL, current_id)
        if trigger is not None and context.environmental_factors:
            cycle.add(ReminderType.ENVIRONMENTAL, environmental_payload(context), trigger=trigger)

    # -------------------------------------------------------------------------
    # HP and conditions
    # -------------------------------------------------------------------------

    def _plan_critical_hp(self, cycle: _CyclePlan, creature: Creature) -> None:
        if not creature.is_alive:
            return
        trigger = cycle.trigger(ReminderType.DEATH_TRIGGER, creature.id)
        if trigger is None:
            return
        cycle.add(
            ReminderType.DEATH_TRIGGER,
            death_payload(cycle.context, creature, self.parser.parse(creature), reason="critical_hp"),
            trigger=trigger,
            creature=creature,
        )

    def _plan_hp_change(self, cycle: _CyclePlan, event: StateChangeEvent) -> None:
        context = cycle.context
        for creature_id in event.affected_creatures:
            creature = context.creature_by_id(creature_id)
            if creature is None:
                continue
            damage = int(event.before.get("hp", 0)) - int(event.after.get("hp", 0))
            if damage > 0 and creature.is_alive and creature.is_concentrating:
                trigger = cycle.trigger(ReminderType.CONCENTRATION_CHECK, creature.id)
                if trigger is not None:
                    cycle.add(
                        ReminderType.CONCENTRATION_CHECK,
                        concentration_payload(creature, damage=damage, dc=concentration_dc(damage)),
                        trigger=trigger,
                        creature=creature,
                    )
            if damage > 0:
                self._plan_critical_hp(cycle, creature)

    def _plan_death(self, cycle: _CyclePlan, event: StateChangeEvent) -> None:
        context = cycle.context
        for creature_id in event.affected_creatures:
            creature = context.creature_by_id(creature_id)
            if creature is None:
                continue
            parsed = self.parser.parse(creature)
            if creature.is_pc:
                reason = "death_saves"
            elif parsed.death_triggers:
                reason = "death"
            else:
                continue
            trigger = cycle.trigger(ReminderType.DEATH_TRIGGER, creature.id)
            if trigger is None:
                continue
            cycle.add(
                ReminderType.DEATH_TRIGGER,
                death_payload(context, creature, parsed, reason=reason),
                trigger=trigger,
                creature=creature,
                urgency=Urgency.CRITICAL,
            )

    def _plan_conditions_added(self, cycle: _CyclePlan, event: StateChangeEvent) -> None:
        context = cycle.context
        added_ids = set(event.after.get("added", []))
        added: list[ActiveCondition] = [c for c in context.active_conditions if c.id in added_ids]
        for condition in added:
            trigger = cycle.trigger(ReminderType.CONDITION_REMINDER, condition.creature_id)
            if trigger is None:
                continue
            cycle.add(
                ReminderType.CONDITION_REMINDER,
                condition_payload(context, [condition]),
                trigger=trigger,
                creature=context.creature_by_id(condition.creature_id),
                urgency=condition_urgency(condition.name),
            )

    # -------------------------------------------------------------------------
    # Prefetch
    # -------------------------------------------------------------------------

    def _plan_prefetch(self, cycle: _CyclePlan, predictions: Iterable[PredictedEvent]) -> None:
        context = cycle.context
        current = context.current_creature
        threshold = self.settings.prediction_threshold
        for prediction in predictions:
            if prediction.probability < threshold:
                continue
            if prediction.type == PredictionType.POTENTIAL_DEATH and prediction.creature_id:
                creature = context.creature_by_id(prediction.creature_id)
                trigger = cycle.trigger(ReminderType.DEATH_TRIGGER, prediction.creature_id)
                if creature is None or trigger is None:
                    continue
                cycle.add(
                    ReminderType.DEATH_TRIGGER,
                    death_payload(context, creature, self.parser.parse(creature), reason="critical_hp"),
                    trigger=trigger,
                    creature=creature,
                    prefetch=True,
                )
            elif prediction.type == PredictionType.LEGENDARY_ACTION_WINDOW and prediction.creature_id:
                legendary = context.legendary_for(prediction.creature_id)
                creature = context.creature_by_id(prediction.creature_id)
                trigger = cycle.trigger(ReminderType.LEGENDARY_ACTIONS, prediction.creature_id)
                if legendary is None or creature is None or trigger is None or current is None:
                    continue
                if current.id == legendary.id:
                    continue
                cycle.add(
                    ReminderType.LEGENDARY_ACTIONS,
                    legendary_payload(
                        context, legendary, self.parser.parse(creature), after=current.name
                    ),
                    trigger=trigger,
                    creature=creature,
                    prefetch=True,
                )
            elif prediction.type == PredictionType.LAIR_ACTION_TRIGGER:
                upcoming = context.model_copy(update={"round": context.round + 1})
                trigger = cycle.trigger(ReminderType.LAIR_ACTIONS, current.id if current else None)
                if trigger is None or not context.lair_actions:
                    continue
                owner = context.creature_by_id(context.lair_actions[0].owner_id)
                cycle.add(
                    ReminderType.LAIR_ACTIONS,
                    lair_payload(upcoming, context.lair_actions),
                    trigger=trigger,
                    creature=owner,
                    prefetch=True,
                )


__all__ = [
    "ReminderPlanner",
    "concentration_dc",
    "condition_urgency",
]
