"""Pydantic V2 schemas for the normalized encounter context.

An ``EncounterContext`` is an immutable snapshot built from the upstream
combat state on every tick. Successive contexts are compared, never
mutated; each tick produces a new one.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from dm_reminders.models.creature import Creature, CreatureAction
from dm_reminders.models.enums import PredictionType, StateChangeType


class ActiveCondition(BaseModel):
    """One creature-condition pair that is still in effect.

    Attributes:
        id: Stable identifier, unique per creature and condition.
        name: Condition name.
        creature_id: Creature the condition applies to.
        creature_name: Display name of that creature.
        duration: Turns remaining (-1 indefinite, never 0).
        description: Rules text.
        source: What applied the condition, if known.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Creature-scoped condition ID")
    name: str = Field(description="Condition name")
    creature_id: str = Field(description="Affected creature")
    creature_name: str = Field(description="Affected creature name")
    duration: int = Field(description="Turns remaining")
    description: str = Field(default="", description="Rules text")
    source: str | None = Field(default=None, description="Source")


class LegendaryCreature(BaseModel):
    """A creature able to take legendary actions between turns.

    Attributes:
        id: Creature identifier.
        name: Creature name.
        initiative: The creature's own initiative count.
        legendary_actions_total: Budget per round.
        legendary_actions_remaining: Unspent budget this round.
        actions: Available legendary actions.
        is_active: Whether the creature can still act (alive).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Creature ID")
    name: str = Field(description="Creature name")
    initiative: int = Field(description="Creature initiative")
    legendary_actions_total: Annotated[int, Field(ge=0)] = 3
    legendary_actions_remaining: Annotated[int, Field(ge=0)] = 3
    actions: tuple[CreatureAction, ...] = Field(default=(), description="Legendary actions")
    is_active: bool = Field(default=True, description="Can still act")

    @model_validator(mode="after")
    def validate_budget(self) -> "LegendaryCreature":
        """Ensure the remaining budget never exceeds the total.

        Raises:
            ValueError: If remaining > total.
        """
        if self.legendary_actions_remaining > self.legendary_actions_total:
            raise ValueError(
                f"legendary_actions_remaining ({self.legendary_actions_remaining}) "
                f"exceeds legendary_actions_total ({self.legendary_actions_total})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_act(self) -> bool:
        """Check if the creature is active and has budget left."""
        return self.is_active and self.legendary_actions_remaining > 0


class LairAction(BaseModel):
    """A lair action, always resolved on initiative count 20.

    Attributes:
        id: Identifier of the form ``"{owner_id}-lair-{index}"``.
        name: Lair action name.
        description: Stat block text.
        owner_id: Creature whose lair this is.
        initiative: Always 20.
        environment_effect: Short summary of the effect on the battlefield.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Lair action ID")
    name: str = Field(description="Lair action name")
    description: str = Field(default="", description="Stat block text")
    owner_id: str = Field(description="Lair owner")
    initiative: Literal[20] = 20
    environment_effect: str = Field(default="", description="Effect summary")


class StateChangeEvent(BaseModel):
    """A discrete change detected between two successive contexts.

    Attributes:
        type: Kind of change.
        before: Partial state before the change.
        after: Partial state after the change.
        affected_creatures: IDs of creatures the change concerns.
        timestamp: When the change was detected (seconds since epoch).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: StateChangeType = Field(description="Change kind")
    before: dict[str, Any] = Field(default_factory=dict, description="Prior partial state")
    after: dict[str, Any] = Field(default_factory=dict, description="New partial state")
    affected_creatures: tuple[str, ...] = Field(default=(), description="Affected creature IDs")
    timestamp: float = Field(default=0.0, description="Detection time")


class PredictedEvent(BaseModel):
    """A probability-weighted estimate of an upcoming event.

    Attributes:
        id: Identifier unique within one forecast.
        type: Kind of predicted event.
        probability: Likelihood in [0, 1].
        creature_id: Creature the prediction concerns, if any.
        condition_id: Active condition the prediction concerns, if any.
        expected_turn: Turn index at which the event is expected.
        expected_round: Round in which the event is expected.
        description: Human-readable summary.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(description="Prediction ID")
    type: PredictionType = Field(description="Prediction kind")
    probability: Annotated[float, Field(ge=0.0, le=1.0)]
    creature_id: str | None = Field(default=None, description="Creature concerned")
    condition_id: str | None = Field(default=None, description="Condition concerned")
    expected_turn: int | None = Field(default=None, description="Expected turn index")
    expected_round: int | None = Field(default=None, description="Expected round")
    description: str = Field(default="", description="Summary")


class EncounterContext(BaseModel):
    """Immutable, decision-ready view of an encounter.

    Attributes:
        current_turn: Index of the acting creature in ``creatures``.
        round: Combat round (>= 1).
        creatures: Combatants in tracker order.
        active_conditions: Conditions still in effect, one per creature pair.
        legendary_creatures: Creatures with legendary actions.
        lair_actions: Lair actions available this round.
        environmental_factors: Free-form battlefield factors.
        recent_events: Changes detected against the previous context.
        upcoming_events: Forecast for the coming turns.
        notes: Facilitator notes carried over from the snapshot.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    current_turn: Annotated[int, Field(ge=0)] = 0
    round: Annotated[int, Field(ge=1)] = 1
    creatures: tuple[Creature, ...] = Field(default=(), description="Combatants")
    active_conditions: tuple[ActiveCondition, ...] = Field(default=())
    legendary_creatures: tuple[LegendaryCreature, ...] = Field(default=())
    lair_actions: tuple[LairAction, ...] = Field(default=())
    environmental_factors: tuple[str, ...] = Field(default=())
    recent_events: tuple[StateChangeEvent, ...] = Field(default=())
    upcoming_events: tuple[PredictedEvent, ...] = Field(default=())
    notes: str = Field(default="", description="Encounter notes")

    @model_validator(mode="after")
    def validate_turn_pointer(self) -> "EncounterContext":
        """Ensure the turn pointer indexes a creature when any exist.

        Raises:
            ValueError: If current_turn is out of range.
        """
        if self.creatures and self.current_turn >= len(self.creatures):
            raise ValueError(
                f"current_turn {self.current_turn} out of range for "
                f"{len(self.creatures)} creatures"
            )
        return self

    @property
    def current_creature(self) -> Creature | None:
        """The creature whose turn it is, or None for an empty encounter."""
        if not self.creatures:
            return None
        return self.creatures[self.current_turn]

    def creature_by_id(self, creature_id: str) -> Creature | None:
        """Look up a creature by ID.

        Args:
            creature_id: ID to look up.

        Returns:
            The creature, or None if it is not in this context.
        """
        for creature in self.creatures:
            if creature.id == creature_id:
                return creature
        return None

    def conditions_for(self, creature_id: str) -> tuple[ActiveCondition, ...]:
        """Active conditions applied to one creature."""
        return tuple(c for c in self.active_conditions if c.creature_id == creature_id)

    def legendary_for(self, creature_id: str) -> LegendaryCreature | None:
        """Legendary entry of a creature, if it has one."""
        for legendary in self.legendary_creatures:
            if legendary.id == creature_id:
                return legendary
        return None


__all__ = [
    "ActiveCondition",
    "LegendaryCreature",
    "LairAction",
    "StateChangeEvent",
    "PredictedEvent",
    "EncounterContext",
]
