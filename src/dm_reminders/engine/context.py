"""Normalization of raw combat state into an ``EncounterContext``.

The builder is the only place snapshot data is interpreted: it clamps the
turn pointer, expands conditions into creature-scoped entries, collects
legendary and lair actors and reads environmental factors out of the
facilitator's notes. Invariant violations are not raised here; the
validator reports them and the engine keeps working on best-effort data.
"""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

from dm_reminders.core.constants import ENVIRONMENT_KEYWORDS
from dm_reminders.core.logging import get_logger
from dm_reminders.engine.abilities import describe_environmental_effect
from dm_reminders.models.context import (
    ActiveCondition,
    EncounterContext,
    LairAction,
    LegendaryCreature,
)


if TYPE_CHECKING:
    from collections.abc import Iterable

    from dm_reminders.models.creature import CombatSnapshot, Creature

logger = get_logger(__name__)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class ContextBuilder:
    """Build immutable encounter contexts from combat snapshots.

    Example:
        >>> builder = ContextBuilder()
        >>> context = builder.build(snapshot)
        >>> context.current_creature.name
        'Adult Red Dragon'
    """

    def build(
        self,
        snapshot: CombatSnapshot,
        *,
        environmental_factors: Iterable[str] | None = None,
    ) -> EncounterContext:
        """Normalize a snapshot.

        Args:
            snapshot: Upstream combat state.
            environmental_factors: Extra factors supplied by the host, added
                after the ones found in the notes.

        Returns:
            A new context; ``recent_events`` and ``upcoming_events`` are left
            empty for the orchestrator to fill in.
        """
        creatures = snapshot.creatures
        current_turn = snapshot.current_turn
        if creatures and not 0 <= current_turn < len(creatures):
            clamped = min(max(current_turn, 0), len(creatures) - 1)
            logger.warning(
                "Turn pointer out of range, clamping",
                current_turn=current_turn,
                creatures=len(creatures),
                clamped=clamped,
            )
            current_turn = clamped
        elif not creatures:
            current_turn = 0

        factors = self.extract_environmental_factors(snapshot.notes, creatures)
        for factor in environmental_factors or ():
            if factor not in factors:
                factors.append(factor)

        return EncounterContext(
            current_turn=current_turn,
            round=snapshot.round,
            creatures=creatures,
            active_conditions=self.collect_active_conditions(creatures),
            legendary_creatures=self.collect_legendary_creatures(creatures),
            lair_actions=self.collect_lair_actions(creatures),
            environmental_factors=tuple(factors),
            notes=snapshot.notes,
        )

    @staticmethod
    def collect_active_conditions(
        creatures: Iterable[Creature],
    ) -> tuple[ActiveCondition, ...]:
        """Expand creature conditions into creature-scoped entries.

        Conditions whose duration reached 0 have expired and are dropped.

        Args:
            creatures: Creatures to read.

        Returns:
            One entry per creature-condition pair still in effect.
        """
        active: list[ActiveCondition] = []
        for creature in creatures:
            for condition in creature.conditions:
                if condition.duration == 0:
                    continue
                local_id = condition.id or _slug(condition.name)
                active.append(
                    ActiveCondition(
                        id=f"{creature.id}:{local_id}",
                        name=condition.name,
                        creature_id=creature.id,
                        creature_name=creature.name,
                        duration=condition.duration,
                        description=condition.description,
                        source=condition.source,
                    )
                )
        return tuple(active)

    @staticmethod
    def collect_legendary_creatures(
        creatures: Iterable[Creature],
    ) -> tuple[LegendaryCreature, ...]:
        """Collect creatures with legendary actions.

        The remaining budget defaults to the total and is clamped into
        ``[0, total]``.
        """
        legendary: list[LegendaryCreature] = []
        for creature in creatures:
            if not creature.has_legendary_actions:
                continue
            total = creature.legendary_actions_total
            remaining = creature.legendary_actions_remaining
            if remaining is None:
                remaining = total
            legendary.append(
                LegendaryCreature(
                    id=creature.id,
                    name=creature.name,
                    initiative=creature.initiative,
                    legendary_actions_total=total,
                    legendary_actions_remaining=min(max(remaining, 0), total),
                    actions=creature.legendary_actions,
                    is_active=creature.is_alive,
                )
            )
        return tuple(legendary)

    @staticmethod
    def collect_lair_actions(creatures: Iterable[Creature]) -> tuple[LairAction, ...]:
        """Collect lair actions of living lair owners."""
        lair: list[LairAction] = []
        for creature in creatures:
            if not creature.has_lair_actions or not creature.is_alive:
                continue
            for index, action in enumerate(creature.lair_actions):
                lair.append(
                    LairAction(
                        id=f"{creature.id}-lair-{index}",
                        name=action.name,
                        description=action.description,
                        owner_id=creature.id,
                        environment_effect=describe_environmental_effect(action.description),
                    )
                )
        return tuple(lair)

    @staticmethod
    def extract_environmental_factors(
        notes: str,
        creatures: Iterable[Creature],
    ) -> list[str]:
        """Read environmental factors from notes and creature auras.

        Args:
            notes: Facilitator notes.
            creatures: Creatures whose auras count as environment.

        Returns:
            Keywords found in the notes, then ``"Name: Ability"`` entries.
        """
        lowered = notes.lower()
        factors = [keyword for keyword in ENVIRONMENT_KEYWORDS if keyword in lowered]
        for creature in creatures:
            for ability in creature.special_abilities:
                text = f"{ability.name} {ability.description}".lower()
                if "aura" in text or "environment" in text:
                    factors.append(f"{creature.name}: {ability.name}")
        return factors


def context_fingerprint(context: EncounterContext) -> str:
    """Stable hash of the parts of a context that drive reminders.

    Two contexts with the same fingerprint produce the same reminders, so
    the orchestrator skips cycles whose fingerprint did not change.

    Args:
        context: Context to fingerprint.

    Returns:
        Hex digest.
    """
    parts = [f"t{context.current_turn}", f"r{context.round}"]
    for creature in context.creatures:
        conditions = ",".join(
            sorted(f"{c.name}:{c.duration}" for c in creature.conditions)
        )
        parts.append(
            f"{creature.id}|{creature.hp}|{creature.max_hp}|{conditions}"
            f"|{creature.initiative}|{creature.is_pc}|{creature.creature_type}"
            f"|{creature.legendary_actions_remaining}/{creature.legendary_actions_total}"
            f"|{len(creature.legendary_actions)}|{len(creature.lair_actions)}"
            f"|{creature.concentration_spell}"
        )
    parts.append(f"c{len(context.active_conditions)}")
    parts.extend(context.environmental_factors)
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()


__all__ = [
    "ContextBuilder",
    "context_fingerprint",
]
