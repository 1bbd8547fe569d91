"""DM Reminders - reminder decision engine for turn-based tabletop combat.

Given a continuously changing combat state, the engine decides what to
tell the facilitator, when, and how urgently: turn summaries, lair and
legendary action timing, death and concentration checks, condition
tracking and battlefield hazards.

ARCHITECTURE:
- The combat tracker owns the state; the engine only reads snapshots
- Rules and timing are deterministic Python
- Reminder text comes from pluggable generators, with a built-in writer
  and a fallback that never leaves the facilitator without a reminder

Example:
    >>> from dm_reminders import CombatSnapshot, Creature, ReminderOrchestrator
    >>>
    >>> dragon = Creature(id="d1", name="Adult Red Dragon", initiative=20, hp=256, max_hp=256)
    >>> snapshot = CombatSnapshot(current_turn=0, round=1, creatures=(dragon,))
    >>>
    >>> orchestrator = ReminderOrchestrator()
    >>> orchestrator.start()
    >>> shown = await orchestrator.process(snapshot)

Modules:
    core: Configuration, logging, constants and exceptions.
    models: Pydantic V2 schemas for snapshots, contexts and reminders.
    engine: Context building, rules, forecasting, caching and orchestration.
"""

from __future__ import annotations

# Core
from dm_reminders.core.config import GenerationSettings, ReminderSettings, Settings, get_settings
from dm_reminders.core.exceptions import ReminderEngineError
from dm_reminders.core.logging import configure_logging, get_logger

# Models
from dm_reminders.models import (
    CombatSnapshot,
    Creature,
    CreatureAction,
    CreatureCondition,
    DisplayedReminder,
    EncounterContext,
    ReminderContent,
    ReminderType,
    SpecialAbility,
    Urgency,
)

# Engine
from dm_reminders.engine import (
    ContentGenerator,
    GeneratorTable,
    ReminderCache,
    ReminderOrchestrator,
)


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "ReminderEngineError",
    "Settings",
    "ReminderSettings",
    "GenerationSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Models
    "CombatSnapshot",
    "Creature",
    "CreatureAction",
    "CreatureCondition",
    "SpecialAbility",
    "EncounterContext",
    "ReminderContent",
    "DisplayedReminder",
    "ReminderType",
    "Urgency",
    # Engine
    "ContentGenerator",
    "GeneratorTable",
    "ReminderCache",
    "ReminderOrchestrator",
]
