"""Reminder decision engine.

Submodules:
    context: Snapshot normalization into EncounterContext
    differ: State-change detection between successive contexts
    abilities: Stat block text classification
    initiative: Lair and legendary action timing
    triggers: Declarative trigger rules and their evaluation
    forecaster: Predicted events
    cache: LRU + TTL reminder content cache
    generation: Generator capability table and deterministic writer
    validator: Rules-consistency diagnostics
    scheduler: Keyed timers
    planner: Generation requests for a context change
    orchestrator: Session lifecycle, generation and display pipeline

Example:
    >>> from dm_reminders.engine import ReminderOrchestrator
    >>>
    >>> orchestrator = ReminderOrchestrator()
    >>> orchestrator.start()
    >>> shown = await orchestrator.process(snapshot)
    >>> orchestrator.dismiss(shown[0].id)
    True
"""

from __future__ import annotations

# =============================================================================
# Context
# =============================================================================
from dm_reminders.engine.context import ContextBuilder, context_fingerprint
from dm_reminders.engine.differ import diff_contexts

# =============================================================================
# Rules
# =============================================================================
from dm_reminders.engine.abilities import AbilityParser, ParsedAbilities
from dm_reminders.engine.initiative import (
    InitiativeTimingResolver,
    InitiativeWindow,
    initiative_order,
)
from dm_reminders.engine.triggers import (
    TriggerEvaluator,
    TriggerRegistry,
    default_registry,
)
from dm_reminders.engine.forecaster import Forecaster, death_probability
from dm_reminders.engine.validator import EncounterValidator, ValidationIssue

# =============================================================================
# Content
# =============================================================================
from dm_reminders.engine.cache import CacheStats, ReminderCache
from dm_reminders.engine.generation import (
    ContentGenerator,
    GeneratorTable,
    RetryingGenerator,
    StructuredReminderWriter,
    fallback_reminder,
)

# =============================================================================
# Pipeline
# =============================================================================
from dm_reminders.engine.scheduler import AsyncioScheduler, Scheduler
from dm_reminders.engine.planner import ReminderPlanner
from dm_reminders.engine.orchestrator import (
    EngineStats,
    GenerationLimiter,
    ReminderOrchestrator,
)


__all__ = [
    # Context
    "ContextBuilder",
    "context_fingerprint",
    "diff_contexts",
    # Rules
    "AbilityParser",
    "ParsedAbilities",
    "InitiativeTimingResolver",
    "InitiativeWindow",
    "initiative_order",
    "TriggerEvaluator",
    "TriggerRegistry",
    "default_registry",
    "Forecaster",
    "death_probability",
    "EncounterValidator",
    "ValidationIssue",
    # Content
    "CacheStats",
    "ReminderCache",
    "ContentGenerator",
    "GeneratorTable",
    "RetryingGenerator",
    "StructuredReminderWriter",
    "fallback_reminder",
    # Pipeline
    "AsyncioScheduler",
    "Scheduler",
    "ReminderPlanner",
    "EngineStats",
    "GenerationLimiter",
    "ReminderOrchestrator",
]
