"""Declarative trigger rules and their evaluation.

A trigger fires when all of its conditions hold for the creature being
evaluated (by default the creature whose turn it is). Triggers without
conditions always fire. Evaluation is pure: no clock reads, no
randomness, so the same context always yields the same trigger set.

The evaluator returns trigger keys only; turning a key into reminder text
happens downstream in the planner and the generators.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from dm_reminders.core.constants import (
    CONDITIONS_FOR_ESCALATION,
    CRITICAL_CREATURES_FOR_ESCALATION,
    CRITICAL_HP_FRACTION,
    ESCALATION_ROUND,
    INDEFINITE_DURATION,
    NEAR_DEATH_FRACTION,
)
from dm_reminders.core.exceptions import TriggerError, TriggerRegistrationError
from dm_reminders.core.logging import get_logger
from dm_reminders.models.enums import (
    ComparisonOperator,
    ConditionType,
    DisplayPosition,
    ReminderType,
    TriggerTiming,
    Urgency,
)
from dm_reminders.models.reminders import Trigger, TriggerCondition


if TYPE_CHECKING:
    from dm_reminders.models.context import EncounterContext
    from dm_reminders.models.creature import Creature

logger = get_logger(__name__)

# Checked in order; the first matching fragment wins
_KEY_FRAGMENTS: tuple[tuple[str, ReminderType], ...] = (
    ("death", ReminderType.DEATH_TRIGGER),
    ("legendary", ReminderType.LEGENDARY_ACTIONS),
    ("lair", ReminderType.LAIR_ACTIONS),
    ("concentration", ReminderType.CONCENTRATION_CHECK),
    ("condition", ReminderType.CONDITION_REMINDER),
    ("environment", ReminderType.ENVIRONMENTAL),
    ("tactical", ReminderType.TACTICAL_SUGGESTION),
    ("round", ReminderType.ROUND_START),
    ("turn_end", ReminderType.TURN_END),
    ("turn", ReminderType.TURN_START),
)


def reminder_type_for_key(key: str) -> ReminderType:
    """Map a trigger key to the reminder kind it produces.

    Args:
        key: Trigger key, e.g. ``"turn_start_dragon"``.

    Returns:
        The reminder type; unknown keys map to tactical suggestions.
    """
    lowered = key.lower()
    for fragment, reminder_type in _KEY_FRAGMENTS:
        if fragment in lowered:
            return reminder_type
    return ReminderType.TACTICAL_SUGGESTION


def reminder_type_of(trigger: Trigger) -> ReminderType:
    """Reminder kind of a trigger, explicit or inferred from its key."""
    return trigger.reminder_type or reminder_type_for_key(trigger.key)


# =============================================================================
# Registry
# =============================================================================


class TriggerRegistry:
    """Read-mostly collection of trigger rules keyed by rule ID.

    Rules are registered once at startup. Registering the same key twice
    is a programming error.
    """

    def __init__(self, triggers: list[Trigger] | None = None) -> None:
        """Initialize the registry.

        Args:
            triggers: Rules to register immediately.
        """
        self._triggers: dict[str, Trigger] = {}
        for trigger in triggers or []:
            self.register(trigger)

    def register(self, trigger: Trigger) -> None:
        """Add a rule.

        Args:
            trigger: Rule to add.

        Raises:
            TriggerRegistrationError: If the key is already registered.
        """
        if trigger.key in self._triggers:
            raise TriggerRegistrationError(
                "Trigger already registered",
                trigger_key=trigger.key,
            )
        self._triggers[trigger.key] = trigger
        logger.debug("Trigger registered", trigger_key=trigger.key, urgency=trigger.urgency)

    def get(self, key: str) -> Trigger | None:
        """Look up a rule by key."""
        return self._triggers.get(key)

    def for_type(self, reminder_type: ReminderType) -> list[Trigger]:
        """Rules producing the given reminder type, in registration order."""
        return [t for t in self._triggers.values() if reminder_type_of(t) == reminder_type]

    def __iter__(self) -> Iterator[Trigger]:
        return iter(self._triggers.values())

    def __len__(self) -> int:
        return len(self._triggers)

    def __contains__(self, key: object) -> bool:
        return key in self._triggers


def _condition(
    condition_type: ConditionType,
    operator: ComparisonOperator,
    value: float | int | str,
) -> TriggerCondition:
    return TriggerCondition(type=condition_type, operator=operator, value=value)


def default_triggers() -> list[Trigger]:
    """The stock rule set.

    Returns:
        One rule per reminder type plus creature-type variants of the
        turn-start rule.
    """
    return [
        Trigger(
            key="death_trigger",
            urgency=Urgency.CRITICAL,
            position=DisplayPosition.CENTER_ALERT,
            conditions=(
                _condition(ConditionType.HP_THRESHOLD, ComparisonOperator.LTE, CRITICAL_HP_FRACTION),
            ),
            description="Creature at or below a quarter of its hit points",
        ),
        Trigger(
            key="legendary_actions",
            urgency=Urgency.HIGH,
            position=DisplayPosition.SIDEBAR,
            conditions=(_condition(ConditionType.TURN_COUNT, ComparisonOperator.GTE, 0),),
            description="Legendary actions available after another creature's turn",
        ),
        Trigger(
            key="lair_actions",
            urgency=Urgency.CRITICAL,
            position=DisplayPosition.CENTER_ALERT,
            conditions=(_condition(ConditionType.ROUND_NUMBER, ComparisonOperator.GTE, 1),),
            description="Lair actions on initiative 20",
        ),
        Trigger(
            key="turn_start",
            urgency=Urgency.MEDIUM,
            position=DisplayPosition.TURN_PANEL,
            description="Summary at the start of every turn",
        ),
        Trigger(
            key="turn_start_dragon",
            urgency=Urgency.HIGH,
            position=DisplayPosition.TURN_PANEL,
            reminder_type=ReminderType.TURN_START,
            conditions=(
                _condition(ConditionType.CREATURE_TYPE, ComparisonOperator.CONTAINS, "dragon"),
            ),
            description="Dragons: breath weapon recharge and frightful presence",
        ),
        Trigger(
            key="turn_start_undead",
            urgency=Urgency.MEDIUM,
            position=DisplayPosition.TURN_PANEL,
            reminder_type=ReminderType.TURN_START,
            conditions=(
                _condition(ConditionType.CREATURE_TYPE, ComparisonOperator.CONTAINS, "undead"),
            ),
            description="Undead: turn resistance and radiant vulnerabilities",
        ),
        Trigger(
            key="turn_end",
            urgency=Urgency.LOW,
            position=DisplayPosition.TURN_PANEL,
            description="Effects that resolve at the end of a turn",
        ),
        Trigger(
            key="round_start",
            urgency=Urgency.HIGH,
            position=DisplayPosition.ROUND_HEADER,
            description="Start of a new round",
        ),
        Trigger(
            key="condition_reminder",
            urgency=Urgency.MEDIUM,
            position=DisplayPosition.CREATURE_CARD,
            conditions=(
                _condition(ConditionType.CONDITION_DURATION, ComparisonOperator.GT, 0),
            ),
            description="Conditions on the acting creature with a running duration",
        ),
        Trigger(
            key="condition_reminder_indefinite",
            urgency=Urgency.MEDIUM,
            position=DisplayPosition.CREATURE_CARD,
            reminder_type=ReminderType.CONDITION_REMINDER,
            conditions=(
                _condition(
                    ConditionType.CONDITION_DURATION,
                    ComparisonOperator.EQ,
                    INDEFINITE_DURATION,
                ),
            ),
            description="Conditions on the acting creature that last until removed",
        ),
        Trigger(
            key="concentration_check",
            urgency=Urgency.HIGH,
            position=DisplayPosition.CREATURE_CARD,
            description="Concentration saving throw after damage",
        ),
        Trigger(
            key="environmental",
            urgency=Urgency.MEDIUM,
            position=DisplayPosition.SIDEBAR,
            timing=TriggerTiming.DELAYED_500MS,
            conditions=(_condition(ConditionType.ROUND_NUMBER, ComparisonOperator.GTE, 1),),
            description="Battlefield hazards and auras",
        ),
        Trigger(
            key="tactical_suggestion",
            urgency=Urgency.LOW,
            position=DisplayPosition.FLOATING,
            timing=TriggerTiming.DELAYED_2S,
            conditions=(_condition(ConditionType.ROUND_NUMBER, ComparisonOperator.GTE, 2),),
            description="Tactical hints for facilitator-run creatures",
        ),
    ]


def default_registry() -> TriggerRegistry:
    """A registry loaded with :func:`default_triggers`."""
    return TriggerRegistry(default_triggers())


# =============================================================================
# Evaluation
# =============================================================================


def compare(
    actual: float | int | str,
    operator: ComparisonOperator,
    expected: float | int | str,
) -> bool:
    """Compare a context-derived value against a configured one.

    ``contains`` is a case-insensitive substring test on the string forms
    of both values.

    Args:
        actual: Value read from the context.
        operator: Comparison to apply.
        expected: Configured value.

    Returns:
        The comparison result; mismatched types compare as False.

    Raises:
        TriggerError: If the operator is unknown.
    """
    if operator == ComparisonOperator.CONTAINS:
        return str(expected).lower() in str(actual).lower()
    if operator == ComparisonOperator.EQ:
        return actual == expected
    try:
        if operator == ComparisonOperator.LT:
            return actual < expected  # type: ignore[operator]
        if operator == ComparisonOperator.GT:
            return actual > expected  # type: ignore[operator]
        if operator == ComparisonOperator.LTE:
            return actual <= expected  # type: ignore[operator]
        if operator == ComparisonOperator.GTE:
            return actual >= expected  # type: ignore[operator]
    except TypeError:
        return False
    raise TriggerError("Unknown comparison operator", details={"operator": str(operator)})


class TriggerEvaluator:
    """Evaluate trigger rules against an encounter context.

    Example:
        >>> evaluator = TriggerEvaluator(default_registry())
        >>> "death_trigger" in evaluator.evaluate(context)
        True
    """

    def __init__(self, registry: TriggerRegistry | None = None) -> None:
        """Initialize the evaluator.

        Args:
            registry: Rules to evaluate; the stock rules if None.
        """
        self.registry = registry if registry is not None else default_registry()

    def evaluate(
        self,
        context: EncounterContext,
        creature_id: str | None = None,
    ) -> frozenset[str]:
        """Keys of every rule that fires.

        Args:
            context: Encounter context.
            creature_id: Creature to evaluate for; the acting creature if None.

        Returns:
            Fired trigger keys (empty when there is no creature to evaluate).
        """
        creature = (
            context.current_creature
            if creature_id is None
            else context.creature_by_id(creature_id)
        )
        if creature is None:
            return frozenset()
        return frozenset(
            trigger.key
            for trigger in self.registry
            if all(self.check_condition(c, context, creature) for c in trigger.conditions)
        )

    def fired_triggers(
        self,
        context: EncounterContext,
        creature_id: str | None = None,
    ) -> list[Trigger]:
        """Fired rules as objects, in registration order."""
        keys = self.evaluate(context, creature_id)
        return [t for t in self.registry if t.key in keys]

    def check_condition(
        self,
        condition: TriggerCondition,
        context: EncounterContext,
        creature: Creature,
    ) -> bool:
        """Evaluate one predicate.

        ``condition_duration`` holds if any active condition on the creature
        satisfies the comparison.

        Raises:
            TriggerError: If the predicate type is unknown.
        """
        if condition.type == ConditionType.HP_THRESHOLD:
            return compare(creature.hp_fraction, condition.operator, condition.value)
        if condition.type == ConditionType.TURN_COUNT:
            return compare(context.current_turn, condition.operator, condition.value)
        if condition.type == ConditionType.ROUND_NUMBER:
            return compare(context.round, condition.operator, condition.value)
        if condition.type == ConditionType.CREATURE_TYPE:
            return compare(creature.creature_type, condition.operator, condition.value)
        if condition.type == ConditionType.CONDITION_DURATION:
            return any(
                compare(c.duration, condition.operator, condition.value)
                for c in context.conditions_for(creature.id)
            )
        raise TriggerError(
            "Unknown trigger condition type",
            details={"condition_type": str(condition.type)},
        )


# =============================================================================
# Urgency Adjustment
# =============================================================================


def adjust_for_creature(urgency: Urgency, creature: Creature, round_number: int) -> Urgency:
    """Raise urgency for a creature in danger or a long fight.

    Never lowers the given urgency.

    Args:
        urgency: Starting urgency.
        creature: Creature the reminder is about.
        round_number: Current round.

    Returns:
        Critical at <= 10% HP, at least high at <= 25% HP or from round 5.
    """
    if creature.hp_fraction <= NEAR_DEATH_FRACTION:
        return Urgency.CRITICAL
    if creature.hp_fraction <= CRITICAL_HP_FRACTION or round_number >= ESCALATION_ROUND:
        return Urgency.highest(urgency, Urgency.HIGH)
    return urgency


def adjust_for_encounter(urgency: Urgency, context: EncounterContext) -> Urgency:
    """Raise urgency one level when the whole encounter is under pressure.

    Args:
        urgency: Starting urgency.
        context: Encounter context.

    Returns:
        One level higher when two or more creatures are at <= 25% HP or
        five or more conditions are active, otherwise unchanged.
    """
    critical = sum(1 for c in context.creatures if c.hp_fraction <= CRITICAL_HP_FRACTION)
    if (
        critical >= CRITICAL_CREATURES_FOR_ESCALATION
        or len(context.active_conditions) >= CONDITIONS_FOR_ESCALATION
    ):
        return urgency.raised()
    return urgency


__all__ = [
    "TriggerRegistry",
    "TriggerEvaluator",
    "default_triggers",
    "default_registry",
    "compare",
    "reminder_type_for_key",
    "reminder_type_of",
    "adjust_for_creature",
    "adjust_for_encounter",
]
