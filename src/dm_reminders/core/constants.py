"""Engine-wide constants for the DM reminder engine.

This module collects the D&D 5E rule values, the forecasting tables and
the default per-type display configuration used across the engine.
"""

from __future__ import annotations

from dm_reminders.models.creature import DEFAULT_LEGENDARY_ACTIONS, INDEFINITE_DURATION
from dm_reminders.models.enums import DisplayPosition, ReminderType, Urgency

# =============================================================================
# D&D 5E Rules Constants
# =============================================================================

LAIR_ACTION_INITIATIVE = 20
"""Initiative count on which lair actions occur (losing ties)."""

MAX_LEGENDARY_ACTION_COST = 3
"""Highest cost a single legendary action may have."""

LEGENDARY_WINDOW_OFFSET = 0.1
"""Offset below a creature's initiative at which the following legendary window sorts."""

CONCENTRATION_BASE_DC = 10
"""Minimum DC of a concentration saving throw."""

DEFAULT_RECHARGE = "6"
"""Recharge roll assumed when an ability says 'recharge' without a range."""

# =============================================================================
# Hit Point Bands
# =============================================================================

NEAR_DEATH_FRACTION = 0.1
"""HP fraction at or below which a creature is treated as about to drop."""

CRITICAL_HP_FRACTION = 0.25
"""HP fraction at or below which death-trigger reminders fire."""

BLOODIED_FRACTION = 0.5
"""HP fraction at or below which a creature is bloodied."""

DEATH_WATCH_FRACTION = 0.3
"""HP fraction at or below which the forecaster predicts a potential death."""

# Canonical death-probability bands: (upper HP fraction, probability)
DEATH_PROBABILITY_BANDS: tuple[tuple[float, float], ...] = (
    (0.1, 0.9),
    (0.2, 0.8),
    (0.3, 0.6),
)

DEATH_PROBABILITY_FLOOR = 0.3
"""Death probability for creatures above every band."""

# =============================================================================
# Forecast Probabilities
# =============================================================================

CONDITION_ENDING_NEXT_TURN = 0.9
"""Probability that a condition with one turn left ends."""

CONDITION_ENDING_SOON = 0.7
"""Probability that a condition with two turns left ends."""

LEGENDARY_WINDOW_PROBABILITY = 0.8
"""Probability a legendary actor with budget acts on the next turn."""

LAIR_TRIGGER_PROBABILITY = 0.95
"""Probability of the lair action occurring this round."""

CONCENTRATION_RISK_PROBABILITY = 0.6
"""Probability a wounded concentrating creature must make a check."""

DEFAULT_PREDICTION_THRESHOLD = 0.7
"""Minimum probability at which a prediction prefetches content."""

# =============================================================================
# Encounter Pressure
# =============================================================================

ESCALATION_ROUND = 5
"""Round from which turn reminders are raised to high urgency."""

CRITICAL_CREATURES_FOR_ESCALATION = 2
"""Creatures at critical HP that raise urgency across the encounter."""

CONDITIONS_FOR_ESCALATION = 5
"""Active conditions that raise urgency across the encounter."""

CRITICAL_CONDITIONS = frozenset({"stunned", "paralyzed", "unconscious", "dying"})
"""Conditions that make a condition reminder critical."""

SEVERE_CONDITIONS = frozenset({"restrained", "frightened", "charmed", "poisoned"})
"""Conditions that make a condition reminder high urgency."""

# =============================================================================
# Cache Relevancy Weights
# =============================================================================

URGENCY_WEIGHT = 0.4
TYPE_WEIGHT = 0.3
LENGTH_WEIGHT = 0.2
PERSISTENT_BONUS = 1.0
MAX_RELEVANCY = 10.0

TYPE_IMPORTANCE: dict[ReminderType, int] = {
    ReminderType.DEATH_TRIGGER: 5,
    ReminderType.LEGENDARY_ACTIONS: 4,
    ReminderType.LAIR_ACTIONS: 4,
    ReminderType.TURN_START: 3,
    ReminderType.CONDITION_REMINDER: 3,
    ReminderType.CONCENTRATION_CHECK: 3,
    ReminderType.ENVIRONMENTAL: 2,
    ReminderType.ROUND_START: 2,
    ReminderType.TACTICAL_SUGGESTION: 1,
    ReminderType.TURN_END: 1,
}
"""Relative importance of each reminder type in the cache relevancy score."""

DEFAULT_CACHE_TTL_SECONDS = 300.0
"""Lifetime of a cached reminder."""

# =============================================================================
# Default Display Configuration
# =============================================================================

DEFAULT_DISPLAY_POSITIONS: dict[ReminderType, DisplayPosition] = {
    ReminderType.TURN_START: DisplayPosition.TURN_PANEL,
    ReminderType.TURN_END: DisplayPosition.TURN_PANEL,
    ReminderType.ROUND_START: DisplayPosition.ROUND_HEADER,
    ReminderType.CONDITION_REMINDER: DisplayPosition.CREATURE_CARD,
    ReminderType.DEATH_TRIGGER: DisplayPosition.CENTER_ALERT,
    ReminderType.LEGENDARY_ACTIONS: DisplayPosition.SIDEBAR,
    ReminderType.LAIR_ACTIONS: DisplayPosition.CENTER_ALERT,
    ReminderType.CONCENTRATION_CHECK: DisplayPosition.CREATURE_CARD,
    ReminderType.ENVIRONMENTAL: DisplayPosition.SIDEBAR,
    ReminderType.TACTICAL_SUGGESTION: DisplayPosition.FLOATING,
}

DEFAULT_URGENCY_THRESHOLDS: dict[ReminderType, Urgency] = {
    ReminderType.TURN_START: Urgency.MEDIUM,
    ReminderType.TURN_END: Urgency.LOW,
    ReminderType.ROUND_START: Urgency.HIGH,
    ReminderType.CONDITION_REMINDER: Urgency.MEDIUM,
    ReminderType.DEATH_TRIGGER: Urgency.CRITICAL,
    ReminderType.LEGENDARY_ACTIONS: Urgency.HIGH,
    ReminderType.LAIR_ACTIONS: Urgency.CRITICAL,
    ReminderType.CONCENTRATION_CHECK: Urgency.HIGH,
    ReminderType.ENVIRONMENTAL: Urgency.MEDIUM,
    ReminderType.TACTICAL_SUGGESTION: Urgency.LOW,
}

# Milliseconds; 0 keeps the reminder until it is dismissed by hand
DEFAULT_AUTO_HIDE_DURATIONS: dict[ReminderType, int] = {
    ReminderType.TURN_START: 8000,
    ReminderType.TURN_END: 3000,
    ReminderType.ROUND_START: 5000,
    ReminderType.CONDITION_REMINDER: 6000,
    ReminderType.DEATH_TRIGGER: 0,
    ReminderType.LEGENDARY_ACTIONS: 10000,
    ReminderType.LAIR_ACTIONS: 0,
    ReminderType.CONCENTRATION_CHECK: 8000,
    ReminderType.ENVIRONMENTAL: 12000,
    ReminderType.TACTICAL_SUGGESTION: 15000,
}

DEFAULT_TYPE_PRIORITY: tuple[ReminderType, ...] = (
    ReminderType.DEATH_TRIGGER,
    ReminderType.LAIR_ACTIONS,
    ReminderType.LEGENDARY_ACTIONS,
    ReminderType.TURN_START,
    ReminderType.CONDITION_REMINDER,
    ReminderType.CONCENTRATION_CHECK,
    ReminderType.ENVIRONMENTAL,
    ReminderType.TACTICAL_SUGGESTION,
    ReminderType.TURN_END,
    ReminderType.ROUND_START,
)
"""Tie-break order among reminders of equal urgency."""

CONSOLIDATED_TYPES = frozenset(
    {ReminderType.CONDITION_REMINDER, ReminderType.ENVIRONMENTAL}
)
"""Reminder types merged into a single entry per cycle."""

# =============================================================================
# Text Analysis Keywords
# =============================================================================

ENVIRONMENT_KEYWORDS: tuple[str, ...] = (
    "difficult terrain",
    "darkness",
    "fog",
    "fire",
    "ice",
    "poison gas",
    "water",
    "height advantage",
)
"""Keywords pulled out of combat notes as environmental factors."""

DAMAGE_TYPES: tuple[str, ...] = (
    "fire",
    "cold",
    "lightning",
    "thunder",
    "acid",
    "poison",
    "psychic",
    "necrotic",
    "radiant",
    "force",
    "bludgeoning",
    "piercing",
    "slashing",
)

SAVING_THROWS: tuple[str, ...] = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)


__all__ = [
    "LAIR_ACTION_INITIATIVE",
    "DEFAULT_LEGENDARY_ACTIONS",
    "MAX_LEGENDARY_ACTION_COST",
    "LEGENDARY_WINDOW_OFFSET",
    "INDEFINITE_DURATION",
    "CONCENTRATION_BASE_DC",
    "DEFAULT_RECHARGE",
    "NEAR_DEATH_FRACTION",
    "CRITICAL_HP_FRACTION",
    "BLOODIED_FRACTION",
    "DEATH_WATCH_FRACTION",
    "DEATH_PROBABILITY_BANDS",
    "DEATH_PROBABILITY_FLOOR",
    "CONDITION_ENDING_NEXT_TURN",
    "CONDITION_ENDING_SOON",
    "LEGENDARY_WINDOW_PROBABILITY",
    "LAIR_TRIGGER_PROBABILITY",
    "CONCENTRATION_RISK_PROBABILITY",
    "DEFAULT_PREDICTION_THRESHOLD",
    "ESCALATION_ROUND",
    "CRITICAL_CREATURES_FOR_ESCALATION",
    "CONDITIONS_FOR_ESCALATION",
    "CRITICAL_CONDITIONS",
    "SEVERE_CONDITIONS",
    "URGENCY_WEIGHT",
    "TYPE_WEIGHT",
    "LENGTH_WEIGHT",
    "PERSISTENT_BONUS",
    "MAX_RELEVANCY",
    "TYPE_IMPORTANCE",
    "DEFAULT_CACHE_TTL_SECONDS",
    "DEFAULT_DISPLAY_POSITIONS",
    "DEFAULT_URGENCY_THRESHOLDS",
    "DEFAULT_AUTO_HIDE_DURATIONS",
    "DEFAULT_TYPE_PRIORITY",
    "CONSOLIDATED_TYPES",
    "ENVIRONMENT_KEYWORDS",
    "DAMAGE_TYPES",
    "SAVING_THROWS",
]
