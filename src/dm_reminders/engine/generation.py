"""Reminder content generation.

Content comes from a capability table: for each reminder type an ordered
list of generator functions is tried and the first non-null result wins.
By default the table holds the deterministic ``StructuredReminderWriter``;
when an external (for example language-model backed) generator is
configured it is wrapped in ``RetryingGenerator`` and takes the writer's
place. Custom generators can be registered in front of either.

When every entry fails the table raises ``GenerationError`` and the caller
substitutes :func:`fallback_reminder`, so the facilitator is never left
without a reminder because of a generator outage.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dm_reminders.core.config import GenerationSettings
from dm_reminders.core.constants import INDEFINITE_DURATION, LAIR_ACTION_INITIATIVE
from dm_reminders.core.exceptions import GenerationError, GenerationTimeoutError
from dm_reminders.core.logging import get_logger
from dm_reminders.engine.forecaster import condition_effect_text
from dm_reminders.models.enums import ReminderType, Urgency
from dm_reminders.models.reminders import GenerationRequest, ReminderContent


if TYPE_CHECKING:
    from dm_reminders.engine.abilities import ParsedAbilities
    from dm_reminders.models.context import (
        ActiveCondition,
        EncounterContext,
        LairAction,
        LegendaryCreature,
    )
    from dm_reminders.models.creature import Creature

logger = get_logger(__name__)


@runtime_checkable
class ContentGenerator(Protocol):
    """External collaborator producing reminder text.

    Implementations must tolerate concurrent calls up to the configured
    generation cap. Returning None means "nothing worth saying".
    """

    async def generate(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency_hint: Urgency,
    ) -> ReminderContent | None:
        """Produce content for one reminder."""
        ...


GeneratorFn = Callable[[GenerationRequest], Awaitable[ReminderContent | None]]


# =============================================================================
# Fingerprints and Normalization
# =============================================================================


def request_fingerprint(request: GenerationRequest) -> str:
    """Stable digest of what a request asks for.

    Two requests with the same type and payload produce the same text, so
    the digest doubles as cache key and reminder ID seed.

    Args:
        request: Generation request.

    Returns:
        Hex sha256 digest.
    """
    document = json.dumps(
        {"type": str(request.reminder_type), "payload": request.payload},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(document.encode("utf-8")).hexdigest()


def cache_key(request: GenerationRequest) -> str:
    """Cache key of a request."""
    return f"{request.reminder_type}:{request_fingerprint(request)}"


def content_id(request: GenerationRequest) -> str:
    """Deterministic reminder ID of a request."""
    return f"{request.reminder_type}:{request_fingerprint(request)[:12]}"


def normalize_content(content: ReminderContent, request: GenerationRequest) -> ReminderContent:
    """Align generated content with the request's display metadata.

    Generators only own the text and may raise the urgency; ID, type,
    position, timing and duration always come from the request.

    Args:
        content: Content as returned by a generator.
        request: Request it answers.

    Returns:
        A normalized copy.
    """
    return content.model_copy(
        update={
            "id": content_id(request),
            "type": request.reminder_type,
            "urgency": Urgency.highest(content.urgency, request.urgency),
            "position": request.position,
            "timing": request.timing,
            "display_duration": request.display_duration,
            "persistent": request.display_duration == 0,
        }
    )


def fallback_reminder(request: GenerationRequest) -> ReminderContent:
    """Minimal reminder used when content generation fails.

    Args:
        request: Request whose generation failed.

    Returns:
        The creature's name and HP, with the request's type, urgency and
        display duration.
    """
    creature = request.payload.get("creature") or {}
    name = request.creature_name or creature.get("name")
    label = str(request.reminder_type).replace("_", " ").title()
    if name and "hp" in creature:
        text = f"**{label}**: {name} ({creature['hp']}/{creature.get('max_hp', '?')} HP)"
    elif name:
        text = f"**{label}**: {name}"
    else:
        text = f"**{label}**"
    return ReminderContent(
        id=content_id(request),
        content=text,
        type=request.reminder_type,
        urgency=request.urgency,
        display_duration=request.display_duration,
        position=request.position,
        timing=request.timing,
        persistent=request.display_duration == 0,
        context={"fallback": True},
    )


# =============================================================================
# Payload Builders
# =============================================================================


def creature_summary(creature: Creature) -> dict[str, Any]:
    """JSON-safe summary of a creature for generator payloads."""
    return {
        "id": creature.id,
        "name": creature.name,
        "is_pc": creature.is_pc,
        "hp": creature.hp,
        "max_hp": creature.max_hp,
        "temp_hp": creature.temp_hp,
        "ac": creature.ac,
        "creature_type": creature.creature_type,
        "conditions": [
            {"name": c.name, "duration": c.duration} for c in creature.conditions
        ],
        "concentration_spell": creature.concentration_spell,
    }


def turn_start_payload(
    context: EncounterContext,
    creature: Creature,
    parsed: ParsedAbilities,
) -> dict[str, Any]:
    """Payload of a turn-start summary."""
    return {
        "round": context.round,
        "creature": creature_summary(creature),
        "turn_start_effects": [
            {"name": a.name, "effect": a.effect} for a in parsed.turn_start
        ],
        "recharge": [
            {"name": r.name, "recharge_on": r.recharge_on} for r in parsed.recharge_abilities
        ],
        "regeneration": [
            {"name": r.name, "amount": r.amount, "negated_by": r.negated_by}
            for r in parsed.regeneration
            if r.on_turn_start
        ],
    }


def turn_end_payload(
    context: EncounterContext,
    creature: Creature,
    parsed: ParsedAbilities,
) -> dict[str, Any]:
    """Payload of a turn-end reminder."""
    return {
        "round": context.round,
        "creature": creature_summary(creature),
        "turn_end_effects": [{"name": a.name, "effect": a.effect} for a in parsed.turn_end],
    }


def round_start_payload(context: EncounterContext) -> dict[str, Any]:
    """Payload of a new-round header."""
    return {
        "round": context.round,
        "alive": sum(1 for c in context.creatures if c.is_alive),
        "legendary_refresh": [lc.name for lc in context.legendary_creatures if lc.is_active],
        "has_lair": bool(context.lair_actions),
    }


def death_payload(
    context: EncounterContext,
    creature: Creature,
    parsed: ParsedAbilities,
    *,
    reason: str,
) -> dict[str, Any]:
    """Payload of a death-related reminder.

    Args:
        context: Encounter context.
        creature: Creature at risk or fallen.
        parsed: Its parsed abilities.
        reason: ``"critical_hp"``, ``"death"`` or ``"death_saves"``.
    """
    return {
        "round": context.round,
        "reason": reason,
        "creature": creature_summary(creature),
        "effects": [
            {"name": t.name, "description": t.description, "on_zero_hp": t.on_zero_hp}
            for t in parsed.death_triggers
        ],
    }


def lair_payload(context: EncounterContext, lair_actions: Iterable[LairAction]) -> dict[str, Any]:
    """Payload of a lair-action reminder."""
    actions = list(lair_actions)
    owners = {a.owner_id for a in actions}
    return {
        "round": context.round,
        "initiative": LAIR_ACTION_INITIATIVE,
        "owners": sorted(
            c.name for c in context.creatures if c.id in owners
        ),
        "actions": [
            {
                "name": a.name,
                "description": a.description,
                "environment_effect": a.environment_effect,
            }
            for a in actions
        ],
    }


def legendary_payload(
    context: EncounterContext,
    legendary: LegendaryCreature,
    parsed: ParsedAbilities,
    *,
    after: str | None,
) -> dict[str, Any]:
    """Payload of a legendary-action reminder.

    Args:
        context: Encounter context.
        legendary: Legendary actor.
        parsed: Its parsed abilities.
        after: Name of the creature whose turn just ended.
    """
    creature = context.creature_by_id(legendary.id)
    return {
        "round": context.round,
        "after": after,
        "creature": creature_summary(creature) if creature else {"name": legendary.name},
        "remaining": legendary.legendary_actions_remaining,
        "total": legendary.legendary_actions_total,
        "actions": [
            {
                "name": a.name,
                "cost": a.cost,
                "kind": str(a.kind),
                "usage_condition": a.usage_condition,
            }
            for a in parsed.legendary_actions
            if a.cost <= legendary.legendary_actions_remaining
        ],
    }


def condition_payload(
    context: EncounterContext,
    conditions: Iterable[ActiveCondition],
) -> dict[str, Any]:
    """Payload of a condition reminder."""
    return {
        "round": context.round,
        "conditions": [
            {
                "id": c.id,
                "name": c.name,
                "creature_id": c.creature_id,
                "creature_name": c.creature_name,
                "duration": c.duration,
                "effect": condition_effect_text(c.name) or c.description,
            }
            for c in conditions
        ],
    }


def concentration_payload(creature: Creature, *, damage: int, dc: int) -> dict[str, Any]:
    """Payload of a concentration check."""
    return {
        "creature": creature_summary(creature),
        "spell": creature.concentration_spell,
        "damage": damage,
        "dc": dc,
    }


def environmental_payload(context: EncounterContext) -> dict[str, Any]:
    """Payload of an environmental reminder."""
    return {
        "round": context.round,
        "factors": list(context.environmental_factors),
        "lair_effects": [a.environment_effect for a in context.lair_actions if a.environment_effect],
    }


def tactical_payload(
    context: EncounterContext,
    creature: Creature,
    parsed: ParsedAbilities,
) -> dict[str, Any]:
    """Payload of a tactical suggestion for a facilitator-run creature."""
    opponents = [c for c in context.creatures if c.is_alive and c.is_pc != creature.is_pc]
    weakest = min(opponents, key=lambda c: (c.hp_fraction, c.name), default=None)
    return {
        "round": context.round,
        "creature": creature_summary(creature),
        "abilities": [
            {
                "name": a.name,
                "damage": a.damage,
                "damage_type": a.damage_type,
                "save": a.save,
                "save_dc": a.save_dc,
                "area": a.area,
            }
            for a in parsed.combat_abilities
        ],
        "weakest_opponent": weakest.name if weakest else None,
        "opponents": len(opponents),
    }


# =============================================================================
# Structured Writer
# =============================================================================


def _bullets(lines: Iterable[str]) -> list[str]:
    return [f"- {line}" for line in lines]


class StructuredReminderWriter:
    """Deterministic reminder text built from request payloads.

    The writer satisfies :class:`ContentGenerator` and is also callable
    with a :class:`GenerationRequest`, so it can sit directly in a
    :class:`GeneratorTable`.
    """

    name = "structured"

    def __init__(self) -> None:
        self._writers: dict[ReminderType, Callable[[dict[str, Any]], list[str]]] = {
            ReminderType.TURN_START: self._turn_start,
            ReminderType.TURN_END: self._turn_end,
            ReminderType.ROUND_START: self._round_start,
            ReminderType.DEATH_TRIGGER: self._death,
            ReminderType.LAIR_ACTIONS: self._lair,
            ReminderType.LEGENDARY_ACTIONS: self._legendary,
            ReminderType.CONDITION_REMINDER: self._conditions,
            ReminderType.CONCENTRATION_CHECK: self._concentration,
            ReminderType.ENVIRONMENTAL: self._environmental,
            ReminderType.TACTICAL_SUGGESTION: self._tactical,
        }

    async def __call__(self, request: GenerationRequest) -> ReminderContent | None:
        return self.write(request)

    async def generate(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency_hint: Urgency,
    ) -> ReminderContent | None:
        """Produce content without a full request."""
        return self.render(reminder_type, payload, urgency_hint)

    def write(self, request: GenerationRequest) -> ReminderContent | None:
        """Render a request; None when the payload has nothing to say."""
        content = self.render(request.reminder_type, request.payload, request.urgency)
        if content is None:
            return None
        return normalize_content(content, request)

    def render(
        self,
        reminder_type: ReminderType,
        payload: dict[str, Any],
        urgency: Urgency,
    ) -> ReminderContent | None:
        """Render text for a reminder type.

        Args:
            reminder_type: Kind of reminder.
            payload: Payload produced by one of the builders.
            urgency: Urgency to attach.

        Returns:
            Content with a provisional ID, or None if there is nothing to say.
        """
        lines = self._writers[reminder_type](payload)
        if not lines:
            return None
        return ReminderContent(
            id=f"{reminder_type}:draft",
            content="\n".join(lines),
            type=reminder_type,
            urgency=urgency,
        )

    @staticmethod
    def _hp(creature: dict[str, Any]) -> str:
        hp = f"{creature.get('hp')}/{creature.get('max_hp')} HP"
        if creature.get("temp_hp"):
            hp += f" (+{creature['temp_hp']} temp)"
        return hp

    def _turn_start(self, payload: dict[str, Any]) -> list[str]:
        creature = payload["creature"]
        lines = [
            f"**{creature['name']}'s turn** | {self._hp(creature)} | AC {creature.get('ac')}"
        ]
        if creature.get("conditions"):
            names = ", ".join(
                c["name"]
                if c["duration"] == INDEFINITE_DURATION
                else f"{c['name']} ({c['duration']})"
                for c in creature["conditions"]
            )
            lines.append(f"Conditions: {names}")
        if creature.get("concentration_spell"):
            lines.append(f"Concentrating on {creature['concentration_spell']}")
        lines.extend(
            _bullets(f"**{e['name']}**: {e['effect']}" for e in payload.get("turn_start_effects", []))
        )
        for regen in payload.get("regeneration", []):
            amount = f"{regen['amount']} HP" if regen.get("amount") else "HP"
            text = f"**{regen['name']}**: regains {amount}"
            if regen.get("negated_by"):
                text += f" unless {regen['negated_by']}"
            lines.append(f"- {text}")
        recharge = payload.get("recharge", [])
        if recharge:
            lines.append(
                "Roll recharge: "
                + ", ".join(f"{r['name']} ({r['recharge_on']})" for r in recharge)
            )
        return lines

    def _turn_end(self, payload: dict[str, Any]) -> list[str]:
        effects = payload.get("turn_end_effects", [])
        if not effects:
            return []
        name = payload["creature"]["name"]
        return [f"**End of {name}'s turn**", *_bullets(
            f"**{e['name']}**: {e['effect']}" for e in effects
        )]

    def _round_start(self, payload: dict[str, Any]) -> list[str]:
        lines = [f"**Round {payload['round']}**", f"{payload.get('alive', 0)} creatures still in the fight"]
        refresh = payload.get("legendary_refresh", [])
        if refresh:
            lines.append("Legendary actions refresh: " + ", ".join(refresh))
        if payload.get("has_lair"):
            lines.append(f"Lair actions on initiative {LAIR_ACTION_INITIATIVE}")
        return lines

    def _death(self, payload: dict[str, Any]) -> list[str]:
        creature = payload["creature"]
        reason = payload.get("reason", "critical_hp")
        if reason == "death_saves":
            lines = [
                f"**{creature['name']} is dying**",
                "Roll a death saving throw at the start of each turn (DC 10)",
                "Damage while at 0 HP counts as a failed save; a critical counts as two",
            ]
        elif reason == "death":
            lines = [f"**{creature['name']} has fallen**"]
        else:
            lines = [f"**{creature['name']} is near death** ({self._hp(creature)})"]
        lines.extend(
            _bullets(f"**{e['name']}**: {e['description']}" for e in payload.get("effects", []))
        )
        return lines

    def _lair(self, payload: dict[str, Any]) -> list[str]:
        actions = payload.get("actions", [])
        if not actions:
            return []
        owners = ", ".join(payload.get("owners", []))
        header = f"**Lair Actions** (initiative {payload.get('initiative', LAIR_ACTION_INITIATIVE)}, lose initiative ties)"
        lines = [header]
        if owners:
            lines.append(f"Lair of {owners}: choose one")
        for action in actions:
            text = f"**{action['name']}**: {action['description']}"
            if action.get("environment_effect"):
                text += f" ({action['environment_effect']})"
            lines.append(f"- {text}")
        return lines

    def _legendary(self, payload: dict[str, Any]) -> list[str]:
        creature = payload["creature"]
        remaining = payload.get("remaining", 0)
        if remaining <= 0:
            return []
        header = f"**{creature['name']}: Legendary Actions** ({remaining}/{payload.get('total')} remaining)"
        lines = [header]
        if payload.get("after"):
            lines.append(f"After {payload['after']}'s turn")
        for action in payload.get("actions", []):
            cost = action["cost"]
            text = f"{action['name']}" + (f" (costs {cost})" if cost > 1 else "")
            if action.get("usage_condition"):
                text += f", {action['usage_condition']}"
            lines.append(f"- {text}")
        return lines

    def _conditions(self, payload: dict[str, Any]) -> list[str]:
        conditions = payload.get("conditions", [])
        if not conditions:
            return []
        lines = ["**Conditions**"]
        for condition in conditions:
            duration = condition["duration"]
            if duration == INDEFINITE_DURATION:
                remaining = ""
            else:
                remaining = f", {duration} round{'s' if duration != 1 else ''} left"
            text = f"{condition['creature_name']}: **{condition['name']}**{remaining}"
            if condition.get("effect"):
                text += f". {condition['effect']}"
            lines.append(f"- {text}")
        return lines

    def _concentration(self, payload: dict[str, Any]) -> list[str]:
        creature = payload["creature"]
        spell = payload.get("spell")
        target = f" to keep {spell}" if spell else ""
        return [
            f"**Concentration check: {creature['name']}**",
            f"Constitution save DC {payload['dc']}{target} (took {payload['damage']} damage)",
        ]

    def _environmental(self, payload: dict[str, Any]) -> list[str]:
        factors = [*payload.get("factors", []), *payload.get("lair_effects", [])]
        if not factors:
            return []
        return ["**Environment**", *_bullets(factors)]

    def _tactical(self, payload: dict[str, Any]) -> list[str]:
        creature = payload["creature"]
        lines = [f"**Tactics: {creature['name']}**"]
        if creature["hp"] <= creature["max_hp"] // 2:
            lines.append("- Bloodied: consider retreat, defensive options or a desperate strike")
        for ability in payload.get("abilities", []):
            parts = [ability["name"]]
            if ability.get("damage"):
                parts.append(f"{ability['damage']} {ability.get('damage_type') or ''}".strip())
            if ability.get("save"):
                dc = f"DC {ability['save_dc']} " if ability.get("save_dc") else ""
                parts.append(f"{dc}{ability['save']} save")
            if ability.get("area"):
                parts.append(ability["area"])
            lines.append("- " + ", ".join(parts))
        if payload.get("weakest_opponent"):
            lines.append(f"- Weakest opponent: {payload['weakest_opponent']}")
        return lines if len(lines) > 1 else []


# =============================================================================
# External Generators
# =============================================================================


class RetryingGenerator:
    """Adapt an external :class:`ContentGenerator` for the generator table.

    Every call is bounded by ``timeout_seconds``. Timeouts and failures are
    retried with exponential backoff; once retries are exhausted the last
    ``GenerationError`` propagates.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        settings: GenerationSettings | None = None,
        *,
        name: str = "external",
    ) -> None:
        """Initialize the adapter.

        Args:
            generator: External generator.
            settings: Timeout and retry policy.
            name: Name used in logs and errors.
        """
        self.generator = generator
        self.settings = settings or GenerationSettings()
        self.name = name

    async def __call__(self, request: GenerationRequest) -> ReminderContent | None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.settings.retry_backoff_seconds,
                max=self.settings.retry_backoff_max_seconds,
            ),
            retry=retry_if_exception_type(GenerationError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        content = await retrying(self._attempt, request)
        return normalize_content(content, request) if content is not None else None

    async def _attempt(self, request: GenerationRequest) -> ReminderContent | None:
        try:
            return await asyncio.wait_for(
                self.generator.generate(request.reminder_type, request.payload, request.urgency),
                timeout=self.settings.timeout_seconds,
            )
        except TimeoutError as exc:
            raise GenerationTimeoutError(
                "Generator timed out",
                timeout_seconds=self.settings.timeout_seconds,
                reminder_type=request.reminder_type,
                generator=self.name,
            ) from exc
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(
                f"Generator failed: {exc}",
                reminder_type=request.reminder_type,
                generator=self.name,
            ) from exc

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Generator call failed, retrying",
            generator=self.name,
            attempt=retry_state.attempt_number,
            error=str(error) if error else None,
        )


# =============================================================================
# Capability Table
# =============================================================================


@dataclass(frozen=True)
class GeneratorEntry:
    """A named generator function in the capability table."""

    name: str
    fn: GeneratorFn


class GeneratorTable:
    """Map each reminder type to an ordered list of generator functions.

    Example:
        >>> table = GeneratorTable.default()
        >>> table.register(my_generator, types=[ReminderType.TACTICAL_SUGGESTION], first=True)
        >>> content = await table.generate(request)
    """

    def __init__(self) -> None:
        self._entries: dict[ReminderType, list[GeneratorEntry]] = {t: [] for t in ReminderType}

    @classmethod
    def default(
        cls,
        external: ContentGenerator | None = None,
        settings: GenerationSettings | None = None,
    ) -> GeneratorTable:
        """Build the standard table.

        Args:
            external: External generator; the structured writer is used
                when None.
            settings: Timeout and retry policy for the external generator.

        Returns:
            A table with one entry per reminder type.
        """
        table = cls()
        if external is not None:
            table.register(RetryingGenerator(external, settings), name="external")
        else:
            writer = StructuredReminderWriter()
            table.register(writer, name=writer.name)
        return table

    def register(
        self,
        fn: GeneratorFn,
        *,
        types: Iterable[ReminderType] | None = None,
        name: str | None = None,
        first: bool = False,
    ) -> None:
        """Add a generator function.

        Args:
            fn: Async function from request to content (or None).
            types: Reminder types it handles; all types if None.
            name: Name used in logs.
            first: Try it before the existing entries.
        """
        entry = GeneratorEntry(name=name or getattr(fn, "__name__", type(fn).__name__), fn=fn)
        for reminder_type in types if types is not None else ReminderType:
            if first:
                self._entries[reminder_type].insert(0, entry)
            else:
                self._entries[reminder_type].append(entry)

    def entries_for(self, reminder_type: ReminderType) -> list[GeneratorEntry]:
        """Generators tried for a type, in order."""
        return list(self._entries[reminder_type])

    async def generate(self, request: GenerationRequest) -> ReminderContent | None:
        """Run the generators for a request until one produces content.

        Args:
            request: Generation request.

        Returns:
            Normalized content of the first non-null result, or None when
            every generator declined.

        Raises:
            GenerationError: If no generator produced content and at least
                one of them failed.
        """
        failures: list[Exception] = []
        for entry in self._entries[request.reminder_type]:
            try:
                content = await entry.fn(request)
            except Exception as exc:
                logger.warning(
                    "Generator failed, trying next",
                    generator=entry.name,
                    reminder_type=request.reminder_type,
                    error=str(exc),
                )
                failures.append(exc)
                continue
            if content is not None:
                return normalize_content(content, request)

        if failures:
            raise GenerationError(
                "No generator produced content",
                reminder_type=request.reminder_type,
                details={"failures": len(failures)},
            ) from failures[-1]
        return None


__all__ = [
    "ContentGenerator",
    "GeneratorFn",
    "GeneratorEntry",
    "GeneratorTable",
    "RetryingGenerator",
    "StructuredReminderWriter",
    "cache_key",
    "concentration_payload",
    "condition_payload",
    "content_id",
    "creature_summary",
    "death_payload",
    "environmental_payload",
    "fallback_reminder",
    "lair_payload",
    "legendary_payload",
    "normalize_content",
    "request_fingerprint",
    "round_start_payload",
    "tactical_payload",
    "turn_end_payload",
    "turn_start_payload",
]
