"""Probability-weighted forecasts of upcoming combat events.

Predictions are recomputed from scratch for every context. Condition
durations and HP are mutated by the combat tracker between ticks, so
nothing is carried over from one forecast to the next.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from dm_reminders.core.constants import (
    BLOODIED_FRACTION,
    CONCENTRATION_RISK_PROBABILITY,
    CONDITION_ENDING_NEXT_TURN,
    CONDITION_ENDING_SOON,
    DEATH_PROBABILITY_BANDS,
    DEATH_PROBABILITY_FLOOR,
    DEATH_WATCH_FRACTION,
    LAIR_TRIGGER_PROBABILITY,
    LEGENDARY_WINDOW_PROBABILITY,
)
from dm_reminders.core.logging import get_logger
from dm_reminders.models.context import PredictedEvent
from dm_reminders.models.enums import PredictionType


if TYPE_CHECKING:
    from dm_reminders.models.context import EncounterContext

logger = get_logger(__name__)

CONDITION_EFFECTS: dict[str, str] = {
    "blinded": "Auto-fail sight-based checks, disadvantage on attacks, advantage for attackers",
    "charmed": "Can't attack the charmer, charmer has advantage on social checks",
    "deafened": "Auto-fail hearing-based checks",
    "frightened": "Disadvantage on checks and attacks while the source is in sight, can't move closer",
    "grappled": "Speed 0, ends if the grappler is incapacitated",
    "invisible": "Advantage on attack rolls, disadvantage for attackers",
    "paralyzed": "Incapacitated, auto-fail STR and DEX saves, hits within 5 ft are critical",
    "poisoned": "Disadvantage on attack rolls and ability checks",
    "prone": "Disadvantage on attack rolls, advantage for melee attackers, half movement to stand",
    "restrained": "Speed 0, disadvantage on attacks and DEX saves, advantage for attackers",
    "stunned": "Incapacitated, auto-fail STR and DEX saves, advantage for attackers",
    "unconscious": "Incapacitated, drops held items, hits within 5 ft are critical",
}


def death_probability(hp_fraction: float) -> float:
    """Likelihood that a creature drops in the coming turns.

    The table is monotone non-increasing in ``hp_fraction``.

    Args:
        hp_fraction: Current HP over maximum HP.

    Returns:
        0.9 at <= 10%, 0.8 at <= 20%, 0.6 at <= 30%, otherwise 0.3.
    """
    for upper, probability in DEATH_PROBABILITY_BANDS:
        if hp_fraction <= upper:
            return probability
    return DEATH_PROBABILITY_FLOOR


def condition_effect_text(name: str) -> str | None:
    """Rules summary of a common condition, or None if it is not one."""
    return CONDITION_EFFECTS.get(name.strip().lower())


class Forecaster:
    """Estimate near-future events from an encounter context.

    Example:
        >>> forecaster = Forecaster()
        >>> [p.type for p in forecaster.forecast(context)]
        ['potential_death', 'legendary_action_window', 'lair_action_trigger']
    """

    def forecast(self, context: EncounterContext) -> list[PredictedEvent]:
        """Predict upcoming events.

        Args:
            context: Encounter context.

        Returns:
            Predictions in a fixed order: deaths, condition endings,
            legendary windows, the lair trigger, concentration risks.
        """
        predictions: list[PredictedEvent] = []
        next_turn = context.current_turn + 1

        for creature in context.creatures:
            if not creature.is_alive or creature.hp_fraction > DEATH_WATCH_FRACTION:
                continue
            predictions.append(
                PredictedEvent(
                    id=f"death-{creature.id}",
                    type=PredictionType.POTENTIAL_DEATH,
                    probability=death_probability(creature.hp_fraction),
                    creature_id=creature.id,
                    expected_turn=next_turn,
                    expected_round=context.round,
                    description=f"{creature.name} is at {creature.hp}/{creature.max_hp} HP",
                )
            )

        for condition in context.active_conditions:
            if not 0 < condition.duration <= 2:
                continue
            probability = (
                CONDITION_ENDING_NEXT_TURN if condition.duration == 1 else CONDITION_ENDING_SOON
            )
            predictions.append(
                PredictedEvent(
                    id=f"condition-{condition.id}",
                    type=PredictionType.CONDITION_ENDING,
                    probability=probability,
                    creature_id=condition.creature_id,
                    condition_id=condition.id,
                    expected_turn=context.current_turn + condition.duration,
                    expected_round=context.round,
                    description=f"{condition.name} on {condition.creature_name} is about to end",
                )
            )

        for legendary in context.legendary_creatures:
            if not legendary.can_act:
                continue
            predictions.append(
                PredictedEvent(
                    id=f"legendary-{legendary.id}",
                    type=PredictionType.LEGENDARY_ACTION_WINDOW,
                    probability=LEGENDARY_WINDOW_PROBABILITY,
                    creature_id=legendary.id,
                    expected_turn=next_turn,
                    expected_round=context.round,
                    description=(
                        f"{legendary.name} can use legendary actions "
                        f"({legendary.legendary_actions_remaining}/"
                        f"{legendary.legendary_actions_total} left)"
                    ),
                )
            )

        if context.lair_actions:
            predictions.append(
                PredictedEvent(
                    id=f"lair-round-{context.round + 1}",
                    type=PredictionType.LAIR_ACTION_TRIGGER,
                    probability=LAIR_TRIGGER_PROBABILITY,
                    expected_round=context.round + 1,
                    description="Lair actions on initiative 20 next round",
                )
            )

        for creature in context.creatures:
            if not creature.is_alive or not creature.is_concentrating:
                continue
            if creature.hp_fraction > BLOODIED_FRACTION:
                continue
            predictions.append(
                PredictedEvent(
                    id=f"concentration-{creature.id}",
                    type=PredictionType.SPELL_CONCENTRATION,
                    probability=CONCENTRATION_RISK_PROBABILITY,
                    creature_id=creature.id,
                    expected_turn=next_turn,
                    expected_round=context.round,
                    description=(
                        f"{creature.name} may lose concentration"
                        + (f" on {creature.concentration_spell}" if creature.concentration_spell else "")
                    ),
                )
            )

        logger.debug(
            "Forecast computed",
            round=context.round,
            turn=context.current_turn,
            predictions=len(predictions),
        )
        return predictions


__all__ = [
    "CONDITION_EFFECTS",
    "Forecaster",
    "condition_effect_text",
    "death_probability",
]
