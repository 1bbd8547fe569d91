"""Pydantic V2 schemas for the upstream combat-state snapshot.

The combat tracker owns this data; the reminder engine only reads it. A
snapshot is taken on every mutation (turn advance, HP change, condition
added or removed) and handed to the orchestrator.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field


DEFAULT_LEGENDARY_ACTIONS = 3
"""Legendary action budget per round for most legendary creatures."""

INDEFINITE_DURATION = -1
"""Condition duration meaning 'until removed'."""


class CreatureCondition(BaseModel):
    """A status effect applied to a creature.

    Attributes:
        name: Condition name (e.g. "poisoned").
        id: Optional upstream identifier; the name is used when absent.
        description: Free-form rules text.
        duration: Turns remaining; -1 is indefinite, 0 expires now.
        source: What applied the condition, if known.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Condition name")
    id: str | None = Field(default=None, description="Upstream condition ID")
    description: str = Field(default="", description="Rules text")
    duration: int = Field(
        default=INDEFINITE_DURATION,
        description="Turns remaining (-1 indefinite)",
    )
    source: str | None = Field(default=None, description="Source of the condition")


class CreatureAction(BaseModel):
    """An action, reaction, legendary or lair action from a stat block.

    Attributes:
        name: Action name.
        description: Stat block text.
        id: Optional upstream identifier.
        action_type: Free-form category (action, bonus, reaction, ...).
        cost: Legendary action cost, when the stat block gives one.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Action name")
    description: str = Field(default="", description="Stat block text")
    id: str | None = Field(default=None, description="Upstream action ID")
    action_type: str = Field(default="action", description="Action category")
    cost: int | None = Field(default=None, ge=0, description="Legendary action cost")


class SpecialAbility(BaseModel):
    """A trait or special ability from a stat block.

    Attributes:
        name: Ability name.
        description: Stat block text.
        id: Optional upstream identifier.
        ability_type: Free-form category (passive, triggered, ...).
        recharge: Recharge notation such as "5-6", if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Ability name")
    description: str = Field(default="", description="Stat block text")
    id: str | None = Field(default=None, description="Upstream ability ID")
    ability_type: str = Field(default="passive", description="Ability category")
    recharge: str | None = Field(default=None, description="Recharge notation")


class Creature(BaseModel):
    """A combatant as reported by the combat tracker.

    Attributes:
        id: Unique combatant identifier.
        name: Display name.
        is_pc: Whether a player controls this creature.
        initiative: Initiative count this combat.
        hp: Current hit points.
        max_hp: Maximum hit points.
        temp_hp: Temporary hit points.
        ac: Armor class.
        level: Character level (player characters).
        creature_type: Creature type text, e.g. "dragon" or "undead".
        cr: Challenge rating text, e.g. "1/2".
        conditions: Conditions currently applied.
        actions: Regular actions.
        special_abilities: Traits and special abilities.
        legendary_actions: Legendary actions, if any.
        legendary_actions_total: Legendary action budget per round.
        legendary_actions_remaining: Unspent budget (None means full).
        lair_actions: Lair actions owned by this creature.
        reactions: Reactions.
        concentration_spell: Spell being concentrated on, if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Unique combatant ID")
    name: str = Field(min_length=1, max_length=100, description="Display name")
    is_pc: bool = Field(default=False, description="Player controlled")
    initiative: int = Field(description="Initiative count")
    hp: int = Field(description="Current HP")
    max_hp: Annotated[int, Field(ge=1, description="Maximum HP")]
    temp_hp: Annotated[int, Field(ge=0, description="Temporary HP")] = 0
    ac: Annotated[int, Field(ge=0, le=40, description="Armor class")] = 10
    level: int | None = Field(default=None, ge=1, le=30, description="Character level")
    creature_type: str = Field(default="", description="Creature type")
    cr: str | None = Field(default=None, description="Challenge rating")
    conditions: tuple[CreatureCondition, ...] = Field(default=(), description="Conditions")
    actions: tuple[CreatureAction, ...] = Field(default=(), description="Actions")
    special_abilities: tuple[SpecialAbility, ...] = Field(
        default=(),
        description="Special abilities",
    )
    legendary_actions: tuple[CreatureAction, ...] = Field(
        default=(),
        description="Legendary actions",
    )
    legendary_actions_total: Annotated[int, Field(ge=0)] = DEFAULT_LEGENDARY_ACTIONS
    legendary_actions_remaining: int | None = Field(
        default=None,
        description="Unspent legendary actions",
    )
    lair_actions: tuple[CreatureAction, ...] = Field(default=(), description="Lair actions")
    reactions: tuple[CreatureAction, ...] = Field(default=(), description="Reactions")
    concentration_spell: str | None = Field(default=None, description="Concentrating on")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hp_fraction(self) -> float:
        """Current HP as a fraction of maximum HP."""
        return self.hp / self.max_hp

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_alive(self) -> bool:
        """Check if the creature still has hit points."""
        return self.hp > 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_concentrating(self) -> bool:
        """Check if the creature is maintaining concentration.

        Returns:
            True if a concentration spell is set or a concentration
            condition is applied.
        """
        if self.concentration_spell:
            return True
        return any("concentrat" in c.name.lower() for c in self.conditions)

    @property
    def has_legendary_actions(self) -> bool:
        """Check if the creature has a legendary action list."""
        return bool(self.legendary_actions)

    @property
    def has_lair_actions(self) -> bool:
        """Check if the creature owns lair actions."""
        return bool(self.lair_actions)


class CombatSnapshot(BaseModel):
    """Read-only view of the combat tracker at one moment.

    Attributes:
        current_turn: Index of the acting creature in ``creatures``.
        round: Combat round, starting at 1.
        creatures: Combatants in tracker order.
        notes: Facilitator notes for the encounter.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    current_turn: int = Field(default=0, description="Index of acting creature")
    round: Annotated[int, Field(ge=1, description="Combat round")] = 1
    creatures: tuple[Creature, ...] = Field(default=(), description="Combatants")
    notes: str = Field(default="", description="Encounter notes")


__all__ = [
    "DEFAULT_LEGENDARY_ACTIONS",
    "INDEFINITE_DURATION",
    "CreatureCondition",
    "CreatureAction",
    "SpecialAbility",
    "Creature",
    "CombatSnapshot",
]
