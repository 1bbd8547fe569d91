"""Enumerations shared by the reminder engine models.

All enums are ``StrEnum`` so they compare equal to their wire values and
serialize cleanly through pydantic.
"""

from __future__ import annotations

from enum import StrEnum


class ReminderType(StrEnum):
    """The ten kinds of reminder the engine can surface."""

    TURN_START = "turn_start"
    TURN_END = "turn_end"
    ROUND_START = "round_start"
    CONDITION_REMINDER = "condition_reminder"
    DEATH_TRIGGER = "death_trigger"
    LEGENDARY_ACTIONS = "legendary_actions"
    LAIR_ACTIONS = "lair_actions"
    CONCENTRATION_CHECK = "concentration_check"
    ENVIRONMENTAL = "environmental"
    TACTICAL_SUGGESTION = "tactical_suggestion"


class Urgency(StrEnum):
    """Four-level severity used to order and style reminders."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more urgent (low=1 .. critical=4)."""
        return _URGENCY_RANKS[self]

    def raised(self, levels: int = 1) -> Urgency:
        """Return the urgency ``levels`` steps higher, capped at critical."""
        order = list(Urgency)
        index = min(order.index(self) + levels, len(order) - 1)
        return order[index]

    @classmethod
    def highest(cls, *urgencies: Urgency) -> Urgency:
        """Return the most urgent of the given values (low if none)."""
        return max(urgencies, key=lambda u: u.rank, default=cls.LOW)


_URGENCY_RANKS = {
    Urgency.LOW: 1,
    Urgency.MEDIUM: 2,
    Urgency.HIGH: 3,
    Urgency.CRITICAL: 4,
}


class DisplayPosition(StrEnum):
    """Display targets understood by the rendering surface."""

    TURN_PANEL = "turn-panel"
    CENTER_ALERT = "center-alert"
    SIDEBAR = "sidebar"
    CREATURE_CARD = "creature-card"
    ROUND_HEADER = "round-header"
    FLOATING = "floating"


class TriggerTiming(StrEnum):
    """When a reminder should appear after its cycle completes."""

    IMMEDIATE = "immediate"
    DELAYED_500MS = "delayed-500ms"
    DELAYED_1S = "delayed-1s"
    DELAYED_2S = "delayed-2s"

    @property
    def delay_ms(self) -> int:
        """Display delay in milliseconds."""
        return _TIMING_DELAYS[self]


_TIMING_DELAYS = {
    TriggerTiming.IMMEDIATE: 0,
    TriggerTiming.DELAYED_500MS: 500,
    TriggerTiming.DELAYED_1S: 1000,
    TriggerTiming.DELAYED_2S: 2000,
}


class StateChangeType(StrEnum):
    """Discrete changes detected between two encounter snapshots."""

    TURN_CHANGE = "turn_change"
    ROUND_CHANGE = "round_change"
    HP_CHANGE = "hp_change"
    CONDITION_CHANGE = "condition_change"
    CREATURE_DEATH = "creature_death"
    COMBAT_START = "combat_start"
    COMBAT_END = "combat_end"


class PredictionType(StrEnum):
    """Kinds of future events the forecaster estimates."""

    POTENTIAL_DEATH = "potential_death"
    CONDITION_ENDING = "condition_ending"
    LEGENDARY_ACTION_WINDOW = "legendary_action_window"
    LAIR_ACTION_TRIGGER = "lair_action_trigger"
    SPELL_CONCENTRATION = "spell_concentration"


class ConditionType(StrEnum):
    """Predicate kinds a trigger condition can test."""

    HP_THRESHOLD = "hp_threshold"
    TURN_COUNT = "turn_count"
    CONDITION_DURATION = "condition_duration"
    CREATURE_TYPE = "creature_type"
    ROUND_NUMBER = "round_number"


class ComparisonOperator(StrEnum):
    """Operators used by trigger conditions."""

    EQ = "eq"
    LT = "lt"
    GT = "gt"
    LTE = "lte"
    GTE = "gte"
    CONTAINS = "contains"


class EngineState(StrEnum):
    """Lifecycle states of the orchestrator."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAUSED = "paused"


class IssueSeverity(StrEnum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class WindowType(StrEnum):
    """Kinds of slot in the per-round initiative timeline."""

    CREATURE_TURN = "creature_turn"
    LAIR_ACTION = "lair_action"
    LEGENDARY_ACTION_WINDOW = "legendary_action_window"


__all__ = [
    "ReminderType",
    "Urgency",
    "DisplayPosition",
    "TriggerTiming",
    "StateChangeType",
    "PredictionType",
    "ConditionType",
    "ComparisonOperator",
    "EngineState",
    "IssueSeverity",
    "WindowType",
]
