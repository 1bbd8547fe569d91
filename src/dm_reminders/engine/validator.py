"""Rules-consistency checks on raw combat snapshots.

Invariant violations in the upstream data are never fatal: the context
builder works on best-effort data and the issues found here are surfaced
as diagnostics next to the reminders.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass

from dm_reminders.core.constants import (
    INDEFINITE_DURATION,
    LAIR_ACTION_INITIATIVE,
    MAX_LEGENDARY_ACTION_COST,
)
from dm_reminders.core.logging import get_logger
from dm_reminders.engine.abilities import AbilityParser
from dm_reminders.models.creature import CombatSnapshot
from dm_reminders.models.enums import IssueSeverity


logger = get_logger(__name__)

RECHARGE_FORMAT = re.compile(r"^\d(?:\s*[-–]\s*\d)?$")


@dataclass(frozen=True)
class ValidationIssue:
    """A rules problem found in a snapshot.

    Attributes:
        rule: Rule that produced the issue.
        severity: How serious it is.
        message: Human-readable description.
        creature_id: Creature concerned, if any.
    """

    rule: str
    severity: IssueSeverity
    message: str
    creature_id: str | None = None


RuleFn = Callable[[CombatSnapshot], list[ValidationIssue]]


class EncounterValidator:
    """Run every rules check against a snapshot.

    Example:
        >>> issues = EncounterValidator().validate(snapshot)
        >>> [i.rule for i in issues if i.severity == "error"]
        ['initiative_order']
    """

    def __init__(self) -> None:
        self._rules: dict[str, RuleFn] = {
            "legendary_actions": self._legendary_actions,
            "lair_actions": self._lair_actions,
            "concentration": self._concentration,
            "death_saves": self._death_saves,
            "condition_durations": self._condition_durations,
            "recharge_format": self._recharge_format,
            "initiative_order": self._initiative_order,
        }

    @property
    def rules(self) -> list[str]:
        """Names of the checks, in the order they run."""
        return list(self._rules)

    def validate(self, snapshot: CombatSnapshot) -> list[ValidationIssue]:
        """Check a snapshot.

        Args:
            snapshot: Raw combat state.

        Returns:
            Every issue found; an empty list when the snapshot is consistent.
        """
        issues: list[ValidationIssue] = []
        for name, rule in self._rules.items():
            found = rule(snapshot)
            for issue in found:
                log = logger.warning if issue.severity == IssueSeverity.ERROR else logger.debug
                log(
                    "Validation issue",
                    rule=name,
                    severity=issue.severity,
                    message=issue.message,
                    creature_id=issue.creature_id,
                )
            issues.extend(found)
        return issues

    @staticmethod
    def _legendary_actions(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for creature in snapshot.creatures:
            if not creature.has_legendary_actions:
                continue
            remaining = creature.legendary_actions_remaining
            if remaining is not None and remaining > creature.legendary_actions_total:
                issues.append(
                    ValidationIssue(
                        "legendary_actions",
                        IssueSeverity.ERROR,
                        f"{creature.name} has more legendary actions remaining than possible "
                        f"({remaining}/{creature.legendary_actions_total})",
                        creature.id,
                    )
                )
            elif remaining is not None and remaining < 0:
                issues.append(
                    ValidationIssue(
                        "legendary_actions",
                        IssueSeverity.ERROR,
                        f"{creature.name} has a negative legendary action count ({remaining})",
                        creature.id,
                    )
                )
            for action in creature.legendary_actions:
                cost = AbilityParser.parse_legendary_action(action).cost
                if cost > MAX_LEGENDARY_ACTION_COST:
                    issues.append(
                        ValidationIssue(
                            "legendary_actions",
                            IssueSeverity.WARNING,
                            f"{creature.name}'s legendary action \"{action.name}\" has "
                            f"unusually high cost ({cost})",
                            creature.id,
                        )
                    )
        return issues

    @staticmethod
    def _lair_actions(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        owners = [c for c in snapshot.creatures if c.has_lair_actions]
        if not owners:
            return []
        issues = [
            ValidationIssue(
                "lair_actions",
                IssueSeverity.WARNING,
                f"{owner.name} owns lair actions but is dead; they are suppressed",
                owner.id,
            )
            for owner in owners
            if not owner.is_alive
        ]
        if len(owners) > 1:
            issues.append(
                ValidationIssue(
                    "lair_actions",
                    IssueSeverity.WARNING,
                    "Multiple creatures own lair actions; only one lair action is taken per round",
                )
            )
        if not any(c.initiative == LAIR_ACTION_INITIATIVE for c in snapshot.creatures):
            issues.append(
                ValidationIssue(
                    "lair_actions",
                    IssueSeverity.INFO,
                    f"No creature acts on initiative {LAIR_ACTION_INITIATIVE}; "
                    "lair actions resolve in their own slot",
                )
            )
        return issues

    @staticmethod
    def _concentration(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for creature in snapshot.creatures:
            sources = sum(1 for c in creature.conditions if "concentrat" in c.name.lower())
            if creature.concentration_spell:
                sources += 1
            if sources > 1:
                issues.append(
                    ValidationIssue(
                        "concentration",
                        IssueSeverity.WARNING,
                        f"{creature.name} is concentrating on multiple spells",
                        creature.id,
                    )
                )
            if sources and not creature.is_alive:
                issues.append(
                    ValidationIssue(
                        "concentration",
                        IssueSeverity.WARNING,
                        f"{creature.name} is at 0 HP but still concentrating",
                        creature.id,
                    )
                )
        return issues

    @staticmethod
    def _death_saves(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                "death_saves",
                IssueSeverity.WARNING,
                f"{creature.name} is at 0 HP but not marked unconscious",
                creature.id,
            )
            for creature in snapshot.creatures
            if creature.is_pc
            and not creature.is_alive
            and not any(c.name.lower() == "unconscious" for c in creature.conditions)
        ]

    @staticmethod
    def _condition_durations(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                "condition_durations",
                IssueSeverity.ERROR,
                f"Condition \"{condition.name}\" on {creature.name} has negative "
                f"duration ({condition.duration})",
                creature.id,
            )
            for creature in snapshot.creatures
            for condition in creature.conditions
            if condition.duration < INDEFINITE_DURATION
        ]

    @staticmethod
    def _recharge_format(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                "recharge_format",
                IssueSeverity.WARNING,
                f"{creature.name}'s {ability.name} has invalid recharge format: "
                f"\"{ability.recharge}\"",
                creature.id,
            )
            for creature in snapshot.creatures
            for ability in creature.special_abilities
            if ability.recharge is not None and not RECHARGE_FORMAT.match(ability.recharge.strip())
        ]

    @staticmethod
    def _initiative_order(snapshot: CombatSnapshot) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        count = len(snapshot.creatures)
        if count and not 0 <= snapshot.current_turn < count:
            issues.append(
                ValidationIssue(
                    "initiative_order",
                    IssueSeverity.ERROR,
                    f"Current turn {snapshot.current_turn} is out of range for {count} creatures",
                )
            )
        duplicates = [
            initiative
            for initiative, seen in Counter(c.initiative for c in snapshot.creatures).items()
            if seen > 1
        ]
        for initiative in sorted(duplicates, reverse=True):
            issues.append(
                ValidationIssue(
                    "initiative_order",
                    IssueSeverity.INFO,
                    f"Several creatures share initiative {initiative}; "
                    "player characters act first, then by name",
                )
            )
        return issues


__all__ = [
    "EncounterValidator",
    "ValidationIssue",
]
