"""Structured ability metadata extracted from stat-block text.

The combat tracker hands the engine free-form ability descriptions. This
module pulls out the parts that affect reminder timing: lair and legendary
actions, effects at the start or end of a turn, death triggers, recharge
abilities and regeneration.

Parsing never raises. Text that cannot be classified is kept as an
unstructured ability with no special timing.

Example:
    >>> parser = AbilityParser()
    >>> parsed = parser.parse(creature)
    >>> [r.recharge_on for r in parsed.recharge_abilities]
    ['5-6']
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from dm_reminders.core.constants import DAMAGE_TYPES, DEFAULT_RECHARGE, SAVING_THROWS
from dm_reminders.core.logging import get_logger


if TYPE_CHECKING:
    from dm_reminders.models.creature import Creature, CreatureAction, SpecialAbility

logger = get_logger(__name__)

# =============================================================================
# Patterns
# =============================================================================

DAMAGE_PATTERN = re.compile(r"(\d+d\d+(?:\s*[+\-]\s*\d+)?)\)?\s*(?:\w+\s+)?damage", re.IGNORECASE)
SAVE_PATTERN = re.compile(
    rf"\b({'|'.join(SAVING_THROWS)})\s+saving\s+throw",
    re.IGNORECASE,
)
SAVE_DC_PATTERN = re.compile(r"\bDC\s*(\d+)", re.IGNORECASE)
RANGE_PATTERN = re.compile(r"(?:range|reach)\s+(\d+\s*(?:/\s*\d+\s*)?(?:ft\.?|feet|foot))", re.IGNORECASE)
AREA_PATTERNS = (
    re.compile(r"\d+-foot(?:-radius)?\s+(?:radius|sphere|cube|cylinder)", re.IGNORECASE),
    re.compile(r"\d+-foot\s+cone", re.IGNORECASE),
    re.compile(r"\d+-foot(?:-long)?\s+line", re.IGNORECASE),
    re.compile(r"\d+\s+by\s+\d+\s+feet?", re.IGNORECASE),
)
RECHARGE_PATTERN = re.compile(r"recharge\s+(\d+(?:\s*[-–]\s*\d+)?)", re.IGNORECASE)
HEALING_PATTERN = re.compile(
    r"(?:regains?|heals?)\s+(\d+)\s*(?:hit\s*points?|hp)",
    re.IGNORECASE,
)
UNLESS_PATTERN = re.compile(r"unless\s+([^.]+)", re.IGNORECASE)
USAGE_PATTERNS = (
    re.compile(r"only if\s+([^.]+)", re.IGNORECASE),
    re.compile(r"requires\s+([^.]+)", re.IGNORECASE),
)
DEATH_PATTERN = re.compile(
    r"\b(?:dies|die|death|destroyed|reduced to 0|drops to 0)\b",
    re.IGNORECASE,
)
ZERO_HP_PATTERN = re.compile(r"\b(?:reduced to 0|drops to 0)\b", re.IGNORECASE)
TURN_START_PATTERN = re.compile(r"\b(?:start|beginning) of\b", re.IGNORECASE)
TURN_END_PATTERN = re.compile(r"\bend of\b", re.IGNORECASE)
AREA_WORDS = ("area", "radius", "line", "cone", "all creatures")


class LegendaryActionKind(StrEnum):
    """Broad category of a legendary action."""

    ATTACK = "attack"
    MOVE = "move"
    SPELL = "spell"
    ABILITY = "ability"


# =============================================================================
# Parsed Structures
# =============================================================================


@dataclass(frozen=True)
class ParsedLairAction:
    """A lair action with its battlefield impact.

    Attributes:
        name: Lair action name.
        description: Stat block text.
        area_effect: Whether it affects an area rather than one target.
        damage_type: Damage type dealt, if any.
        save: Saving throw ability required, if any.
        environmental_effect: One-line summary of the effect.
    """

    name: str
    description: str
    area_effect: bool = False
    damage_type: str | None = None
    save: str | None = None
    environmental_effect: str = ""


@dataclass(frozen=True)
class ParsedLegendaryAction:
    """A legendary action with its cost."""

    name: str
    description: str
    cost: int = 1
    kind: LegendaryActionKind = LegendaryActionKind.ABILITY
    usage_condition: str | None = None


@dataclass(frozen=True)
class ParsedTurnAbility:
    """An ability that resolves at the start or end of its owner's turn."""

    name: str
    description: str
    at_turn_start: bool
    effect: str = ""


@dataclass(frozen=True)
class ParsedCombatAbility:
    """An action with mechanically relevant numbers."""

    name: str
    description: str
    damage: str | None = None
    damage_type: str | None = None
    save: str | None = None
    save_dc: int | None = None
    range: str | None = None
    area: str | None = None


@dataclass(frozen=True)
class ParsedDeathTrigger:
    """An ability that fires when its owner dies or drops to 0 HP."""

    name: str
    description: str
    on_zero_hp: bool = False


@dataclass(frozen=True)
class ParsedRechargeAbility:
    """An ability that recharges on a d6 roll."""

    name: str
    description: str
    recharge_on: str = DEFAULT_RECHARGE

    @property
    def minimum_roll(self) -> int:
        """Lowest d6 result that recharges the ability."""
        head = re.split(r"[-–]", self.recharge_on, maxsplit=1)[0].strip()
        return int(head) if head.isdigit() else 6


@dataclass(frozen=True)
class ParsedRegeneration:
    """A regeneration trait.

    Attributes:
        name: Trait name.
        description: Stat block text.
        amount: Hit points regained per trigger, if stated.
        negated_by: What stops it ("it takes fire damage"), if stated.
        on_turn_start: Whether it resolves at the start of the turn.
    """

    name: str
    description: str
    amount: int | None = None
    negated_by: str | None = None
    on_turn_start: bool = True


@dataclass(frozen=True)
class ParsedAbilities:
    """Everything the parser extracted from one creature."""

    creature_id: str
    lair_actions: tuple[ParsedLairAction, ...] = ()
    legendary_actions: tuple[ParsedLegendaryAction, ...] = ()
    turn_start: tuple[ParsedTurnAbility, ...] = ()
    turn_end: tuple[ParsedTurnAbility, ...] = ()
    combat_abilities: tuple[ParsedCombatAbility, ...] = ()
    death_triggers: tuple[ParsedDeathTrigger, ...] = ()
    recharge_abilities: tuple[ParsedRechargeAbility, ...] = ()
    regeneration: tuple[ParsedRegeneration, ...] = ()
    unstructured: tuple[str, ...] = ()

    @property
    def has_turn_start_effects(self) -> bool:
        """Check if anything resolves at the start of the creature's turn."""
        return bool(self.turn_start) or any(r.on_turn_start for r in self.regeneration)


# =============================================================================
# Extraction Helpers
# =============================================================================


def extract_damage(text: str) -> str | None:
    """Extract a damage expression such as ``"2d6 + 3"``."""
    match = DAMAGE_PATTERN.search(text)
    return match.group(1) if match else None


def extract_damage_type(text: str) -> str | None:
    """Return the first damage type named in the text."""
    lowered = text.lower()
    return next((t for t in DAMAGE_TYPES if t in lowered), None)


def extract_save(text: str) -> str | None:
    """Return the saving throw ability ("Dexterity") named in the text."""
    match = SAVE_PATTERN.search(text)
    if match:
        return match.group(1).capitalize()
    lowered = text.lower()
    for ability in SAVING_THROWS:
        if f"{ability} save" in lowered:
            return ability.capitalize()
    return None


def extract_save_dc(text: str) -> int | None:
    """Return the save DC stated in the text."""
    match = SAVE_DC_PATTERN.search(text)
    return int(match.group(1)) if match else None


def extract_range(text: str) -> str | None:
    """Return the range or reach of an attack."""
    match = RANGE_PATTERN.search(text)
    return match.group(1) if match else None


def extract_area(text: str) -> str | None:
    """Return the area-of-effect phrase ("60-foot cone")."""
    for pattern in AREA_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def extract_recharge(text: str) -> str | None:
    """Return recharge notation, "6" when the text says recharge without a range.

    Args:
        text: Ability name and/or description.

    Returns:
        The recharge notation, or None if the text does not mention recharge.
    """
    if "recharge" not in text.lower():
        return None
    match = RECHARGE_PATTERN.search(text)
    if not match:
        return DEFAULT_RECHARGE
    return re.sub(r"\s*[-–]\s*", "-", match.group(1))


def extract_healing(text: str) -> int | None:
    """Return the hit points regained, if stated."""
    match = HEALING_PATTERN.search(text)
    return int(match.group(1)) if match else None


def extract_usage_condition(text: str) -> str | None:
    """Return an 'only if ...' or 'requires ...' clause."""
    for pattern in USAGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def describe_environmental_effect(text: str) -> str:
    """Summarize what a lair action does to the battlefield.

    Args:
        text: Lair action description.

    Returns:
        A short summary; the first sentence when no known effect matches.
    """
    lowered = text.lower()
    if "difficult terrain" in lowered:
        return "Creates difficult terrain"
    if "darkness" in lowered:
        return "Creates magical darkness"
    if "fog" in lowered or "mist" in lowered:
        return "Creates obscuring fog"
    if "fire" in lowered and "spread" in lowered:
        return "Spreads fire across area"
    if "ice" in lowered or "frozen" in lowered:
        return "Creates icy terrain"
    if "earthquake" in lowered or "tremor" in lowered:
        return "Causes ground tremors"
    if "wall" in lowered:
        return "Creates environmental barrier"
    first_sentence = text.split(".", 1)[0].strip()
    return first_sentence or "Lair effect"


def _effect_summary(text: str) -> str:
    """First sentence of the description, used for turn abilities."""
    return text.split(".", 1)[0].strip()


def _legendary_kind(text: str) -> LegendaryActionKind:
    lowered = text.lower()
    if any(word in lowered for word in ("attack", "bite", "claw", "tail")):
        return LegendaryActionKind.ATTACK
    if any(word in lowered for word in ("move", "fly", "swim")):
        return LegendaryActionKind.MOVE
    if "spell" in lowered or "cast" in lowered:
        return LegendaryActionKind.SPELL
    return LegendaryActionKind.ABILITY


def _cost_from_name(name: str) -> int | None:
    match = re.search(r"costs?\s+(\d+)\s+actions?", name, re.IGNORECASE)
    return int(match.group(1)) if match else None


# =============================================================================
# Parser
# =============================================================================


class AbilityParser:
    """Extract structured ability metadata from creature stat blocks.

    Results are memoised per creature and stat block, so repeated ticks
    with only HP changes do not re-run the regular expressions.
    """

    def __init__(self, *, max_entries: int = 256) -> None:
        """Initialize the parser.

        Args:
            max_entries: Memoised creatures kept before the memo is reset.
        """
        self._memo: dict[tuple[str, int], ParsedAbilities] = {}
        self._max_entries = max_entries

    def parse(self, creature: Creature) -> ParsedAbilities:
        """Parse every ability of a creature.

        Args:
            creature: Creature to parse.

        Returns:
            The extracted metadata; unclassifiable text lands in
            ``unstructured``.
        """
        key = (
            creature.id,
            hash(
                (
                    creature.actions,
                    creature.special_abilities,
                    creature.legendary_actions,
                    creature.lair_actions,
                )
            ),
        )
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        parsed = self._parse_uncached(creature)
        if len(self._memo) >= self._max_entries:
            self._memo.clear()
        self._memo[key] = parsed
        return parsed

    def _parse_uncached(self, creature: Creature) -> ParsedAbilities:
        lair: list[ParsedLairAction] = []
        legendary: list[ParsedLegendaryAction] = []
        turn_start: list[ParsedTurnAbility] = []
        turn_end: list[ParsedTurnAbility] = []
        combat: list[ParsedCombatAbility] = []
        death: list[ParsedDeathTrigger] = []
        recharge: list[ParsedRechargeAbility] = []
        regeneration: list[ParsedRegeneration] = []
        unstructured: list[str] = []

        for action in creature.lair_actions:
            try:
                lair.append(self.parse_lair_action(action))
            except Exception as exc:
                self._degrade(creature, action.name, exc, unstructured)

        for action in creature.legendary_actions:
            try:
                legendary.append(self.parse_legendary_action(action))
            except Exception as exc:
                self._degrade(creature, action.name, exc, unstructured)

        for ability in creature.special_abilities:
            try:
                matched = False
                text = ability.description
                if TURN_START_PATTERN.search(text):
                    turn_start.append(
                        ParsedTurnAbility(ability.name, text, True, _effect_summary(text))
                    )
                    matched = True
                if TURN_END_PATTERN.search(text):
                    turn_end.append(
                        ParsedTurnAbility(ability.name, text, False, _effect_summary(text))
                    )
                    matched = True
                trigger = self.parse_death_trigger(ability.name, text)
                if trigger is not None:
                    death.append(trigger)
                    matched = True
                regen = self.parse_regeneration(ability)
                if regen is not None:
                    regeneration.append(regen)
                    matched = True
                notation = ability.recharge or extract_recharge(f"{ability.name} {text}")
                if notation:
                    recharge.append(ParsedRechargeAbility(ability.name, text, notation))
                    matched = True
                if not matched:
                    unstructured.append(ability.name)
            except Exception as exc:
                self._degrade(creature, ability.name, exc, unstructured)

        for action in creature.actions:
            try:
                matched = False
                notation = extract_recharge(f"{action.name} {action.description}")
                if notation:
                    recharge.append(
                        ParsedRechargeAbility(action.name, action.description, notation)
                    )
                    matched = True
                ability = self.parse_combat_ability(action)
                if ability is not None:
                    combat.append(ability)
                    matched = True
                if not matched:
                    unstructured.append(action.name)
            except Exception as exc:
                self._degrade(creature, action.name, exc, unstructured)

        return ParsedAbilities(
            creature_id=creature.id,
            lair_actions=tuple(lair),
            legendary_actions=tuple(legendary),
            turn_start=tuple(turn_start),
            turn_end=tuple(turn_end),
            combat_abilities=tuple(combat),
            death_triggers=tuple(death),
            recharge_abilities=tuple(recharge),
            regeneration=tuple(regeneration),
            unstructured=tuple(unstructured),
        )

    @staticmethod
    def _degrade(
        creature: Creature,
        ability_name: str,
        exc: Exception,
        unstructured: list[str],
    ) -> None:
        logger.warning(
            "Ability text could not be parsed",
            creature=creature.name,
            ability=ability_name,
            error=str(exc),
        )
        unstructured.append(ability_name)

    @staticmethod
    def parse_lair_action(action: CreatureAction) -> ParsedLairAction:
        """Parse one lair action.

        Args:
            action: Lair action from the stat block.

        Returns:
            Parsed lair action.
        """
        text = action.description
        lowered = text.lower()
        return ParsedLairAction(
            name=action.name,
            description=text,
            area_effect=any(word in lowered for word in AREA_WORDS),
            damage_type=extract_damage_type(text),
            save=extract_save(text),
            environmental_effect=describe_environmental_effect(text),
        )

    @staticmethod
    def parse_legendary_action(action: CreatureAction) -> ParsedLegendaryAction:
        """Parse one legendary action, defaulting its cost to 1."""
        cost = action.cost or _cost_from_name(action.name) or 1
        return ParsedLegendaryAction(
            name=action.name,
            description=action.description,
            cost=cost,
            kind=_legendary_kind(f"{action.name} {action.description}"),
            usage_condition=extract_usage_condition(action.description),
        )

    @staticmethod
    def parse_combat_ability(action: CreatureAction) -> ParsedCombatAbility | None:
        """Parse an action if it carries damage or a saving throw.

        Returns:
            Parsed ability, or None if the text has no mechanical numbers.
        """
        text = action.description
        damage = extract_damage(text)
        save = extract_save(text)
        if damage is None and save is None:
            return None
        return ParsedCombatAbility(
            name=action.name,
            description=text,
            damage=damage,
            damage_type=extract_damage_type(text) if damage else None,
            save=save,
            save_dc=extract_save_dc(text),
            range=extract_range(text),
            area=extract_area(text),
        )

    @staticmethod
    def parse_death_trigger(name: str, text: str) -> ParsedDeathTrigger | None:
        """Detect abilities that fire on death or at 0 HP."""
        if not DEATH_PATTERN.search(text):
            return None
        return ParsedDeathTrigger(
            name=name,
            description=text,
            on_zero_hp=bool(ZERO_HP_PATTERN.search(text)),
        )

    @staticmethod
    def parse_regeneration(ability: SpecialAbility) -> ParsedRegeneration | None:
        """Detect a regeneration trait and its negating condition."""
        lowered = ability.description.lower()
        if "regenerat" not in lowered and "regains" not in lowered:
            return None
        unless = UNLESS_PATTERN.search(ability.description)
        return ParsedRegeneration(
            name=ability.name,
            description=ability.description,
            amount=extract_healing(ability.description),
            negated_by=unless.group(1).strip() if unless else None,
            on_turn_start="start of" in lowered or "beginning of" in lowered,
        )


__all__ = [
    "LegendaryActionKind",
    "ParsedLairAction",
    "ParsedLegendaryAction",
    "ParsedTurnAbility",
    "ParsedCombatAbility",
    "ParsedDeathTrigger",
    "ParsedRechargeAbility",
    "ParsedRegeneration",
    "ParsedAbilities",
    "AbilityParser",
    "extract_damage",
    "extract_damage_type",
    "extract_save",
    "extract_save_dc",
    "extract_range",
    "extract_area",
    "extract_recharge",
    "extract_healing",
    "extract_usage_condition",
    "describe_environmental_effect",
]
