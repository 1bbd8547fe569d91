"""Pydantic V2 schemas for the DM reminder engine.

Submodules:
    enums: Enumeration types (ReminderType, Urgency, DisplayPosition, ...)
    creature: Upstream combat-state snapshot (Creature, CombatSnapshot)
    context: Normalized encounter context, state changes and predictions
    reminders: Trigger rules, generation requests and reminder content

Example:
    >>> from dm_reminders.models import CombatSnapshot, Creature
    >>> goblin = Creature(id="g1", name="Goblin", initiative=12, hp=7, max_hp=7)
    >>> snapshot = CombatSnapshot(current_turn=0, round=1, creatures=(goblin,))
"""

from __future__ import annotations

# =============================================================================
# Enumerations
# =============================================================================
from dm_reminders.models.enums import (
    ComparisonOperator,
    ConditionType,
    DisplayPosition,
    EngineState,
    IssueSeverity,
    PredictionType,
    ReminderType,
    StateChangeType,
    TriggerTiming,
    Urgency,
    WindowType,
)

# =============================================================================
# Combat Snapshot
# =============================================================================
from dm_reminders.models.creature import (
    CombatSnapshot,
    Creature,
    CreatureAction,
    CreatureCondition,
    SpecialAbility,
)

# =============================================================================
# Encounter Context
# =============================================================================
from dm_reminders.models.context import (
    ActiveCondition,
    EncounterContext,
    LairAction,
    LegendaryCreature,
    PredictedEvent,
    StateChangeEvent,
)

# =============================================================================
# Triggers & Reminders
# =============================================================================
from dm_reminders.models.reminders import (
    DisplayedReminder,
    GenerationRequest,
    ReminderContent,
    Trigger,
    TriggerCondition,
)


__all__ = [
    # Enums
    "ComparisonOperator",
    "ConditionType",
    "DisplayPosition",
    "EngineState",
    "IssueSeverity",
    "PredictionType",
    "ReminderType",
    "StateChangeType",
    "TriggerTiming",
    "Urgency",
    "WindowType",
    # Snapshot
    "CombatSnapshot",
    "Creature",
    "CreatureAction",
    "CreatureCondition",
    "SpecialAbility",
    # Context
    "ActiveCondition",
    "EncounterContext",
    "LairAction",
    "LegendaryCreature",
    "PredictedEvent",
    "StateChangeEvent",
    # Reminders
    "DisplayedReminder",
    "GenerationRequest",
    "ReminderContent",
    "Trigger",
    "TriggerCondition",
]
