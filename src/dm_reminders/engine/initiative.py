"""Initiative timing for lair and legendary actions.

This module lays out one round of combat as an ordered list of initiative
windows: creature turns, the lair-action slot on initiative 20, and the
legendary-action windows that open when a creature other than a legendary
actor finishes its turn.

Tie policy: creatures on the same initiative count act player characters
first, then by case-insensitive name, then by ID. Lair actions lose ties,
so a lair slot on 20 is appended to the last creature window on 20.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from dm_reminders.core.constants import LAIR_ACTION_INITIATIVE, LEGENDARY_WINDOW_OFFSET
from dm_reminders.core.logging import get_logger
from dm_reminders.models.enums import WindowType


if TYPE_CHECKING:
    from collections.abc import Iterable

    from dm_reminders.models.context import EncounterContext, LairAction, LegendaryCreature
    from dm_reminders.models.creature import Creature

logger = get_logger(__name__)

OrderKey = tuple[int, int, str, str, int]


def turn_order_key(creature: Creature) -> OrderKey:
    """Sort key of a creature's turn within a round.

    Args:
        creature: Creature to key.

    Returns:
        Tuple sorting by initiative descending, player characters first,
        then name, then ID.
    """
    return (
        -creature.initiative,
        0 if creature.is_pc else 1,
        creature.name.casefold(),
        creature.id,
        0,
    )


def initiative_order(creatures: Iterable[Creature]) -> list[Creature]:
    """Living creatures in the order they act."""
    return sorted((c for c in creatures if c.is_alive), key=turn_order_key)


@dataclass
class InitiativeWindow:
    """A slot in the round's initiative timeline.

    Attributes:
        initiative: Initiative count of the slot (legendary windows sit
            just below the turn they follow).
        window_type: Kind of slot.
        order: Sort key within the round.
        creature_id: Owner of the turn, or the turn a legendary window follows.
        creature_name: Display name for ``creature_id``.
        lair_actions: Lair actions resolved in this slot.
        legendary_creatures: Legendary actors that may act in this slot.
    """

    initiative: float
    window_type: WindowType
    order: OrderKey
    creature_id: str | None = None
    creature_name: str | None = None
    lair_actions: tuple[LairAction, ...] = ()
    legendary_creatures: tuple[LegendaryCreature, ...] = ()

    @property
    def includes_lair(self) -> bool:
        """Check if lair actions resolve in this slot."""
        return bool(self.lair_actions)

    @property
    def is_creature_turn(self) -> bool:
        """Check if this slot is a creature's turn."""
        return self.window_type == WindowType.CREATURE_TURN

    @property
    def is_legendary_window(self) -> bool:
        """Check if this slot is a legendary-action window."""
        return self.window_type == WindowType.LEGENDARY_ACTION_WINDOW


class InitiativeTimingResolver:
    """Answer timing questions about lair and legendary actions.

    The resolver is stateless; every query works from the context it is
    given.

    Example:
        >>> resolver = InitiativeTimingResolver()
        >>> [w.initiative for w in resolver.build_windows(context)]
        [20, 18, 17.9, 12, 11.9]
    """

    def build_windows(self, context: EncounterContext) -> list[InitiativeWindow]:
        """Lay out one round of initiative windows.

        Args:
            context: Encounter context.

        Returns:
            Windows in the order they occur within the round.
        """
        order = initiative_order(context.creatures)
        windows: list[InitiativeWindow] = []

        for creature in order:
            key = turn_order_key(creature)
            windows.append(
                InitiativeWindow(
                    initiative=creature.initiative,
                    window_type=WindowType.CREATURE_TURN,
                    order=key,
                    creature_id=creature.id,
                    creature_name=creature.name,
                )
            )
            if self._opens_legendary_window(context, creature):
                eligible = self.eligible_legendary_creatures(context, creature.id)
                windows.append(
                    InitiativeWindow(
                        initiative=round(creature.initiative - LEGENDARY_WINDOW_OFFSET, 1),
                        window_type=WindowType.LEGENDARY_ACTION_WINDOW,
                        order=(*key[:-1], 1),
                        creature_id=creature.id,
                        creature_name=creature.name,
                        legendary_creatures=eligible,
                    )
                )

        if context.lair_actions:
            self._place_lair_slot(windows, context.lair_actions)

        windows.sort(key=lambda w: w.order)
        return windows

    @staticmethod
    def _place_lair_slot(
        windows: list[InitiativeWindow],
        lair_actions: tuple[LairAction, ...],
    ) -> None:
        on_twenty = [
            w for w in windows if w.is_creature_turn and w.initiative == LAIR_ACTION_INITIATIVE
        ]
        if on_twenty:
            # Lair actions lose ties: they resolve after the last creature on 20
            on_twenty[-1].lair_actions = lair_actions
            return
        windows.append(
            InitiativeWindow(
                initiative=LAIR_ACTION_INITIATIVE,
                window_type=WindowType.LAIR_ACTION,
                order=(-LAIR_ACTION_INITIATIVE, 2, "", "", 0),
                lair_actions=lair_actions,
            )
        )

    def _opens_legendary_window(self, context: EncounterContext, creature: Creature) -> bool:
        return self.is_legendary_action_time(context, creature.id)

    @staticmethod
    def eligible_legendary_creatures(
        context: EncounterContext,
        finished_creature_id: str | None,
    ) -> tuple[LegendaryCreature, ...]:
        """Legendary actors that may act after a creature's turn.

        Args:
            context: Encounter context.
            finished_creature_id: Creature whose turn just ended.

        Returns:
            Active legendary creatures with budget, excluding the finisher.
        """
        return tuple(
            legendary
            for legendary in context.legendary_creatures
            if legendary.can_act and legendary.id != finished_creature_id
        )

    @staticmethod
    def is_lair_action_time(context: EncounterContext, initiative: float) -> bool:
        """Check if lair actions resolve on the given initiative count.

        Args:
            context: Encounter context.
            initiative: Initiative count being resolved.

        Returns:
            True iff the count is 20 and any lair action exists.
        """
        return initiative == LAIR_ACTION_INITIATIVE and bool(context.lair_actions)

    def is_legendary_action_time(
        self,
        context: EncounterContext,
        finished_creature_id: str,
    ) -> bool:
        """Check if legendary actions may be taken after a creature's turn.

        Args:
            context: Encounter context.
            finished_creature_id: Creature whose turn just ended.

        Returns:
            True iff the finisher is not itself an active legendary actor
            (player characters always qualify) and some other active
            legendary actor has budget left.
        """
        finisher = context.creature_by_id(finished_creature_id)
        own_entry = context.legendary_for(finished_creature_id)
        finisher_is_pc = finisher is not None and finisher.is_pc
        if own_entry is not None and own_entry.is_active and not finisher_is_pc:
            return False
        return bool(self.eligible_legendary_creatures(context, finished_creature_id))

    def windows_at(self, context: EncounterContext, initiative: float) -> list[InitiativeWindow]:
        """Windows resolving on exactly the given initiative count."""
        return [
            w for w in self.build_windows(context) if abs(w.initiative - initiative) < 1e-9
        ]

    def next_window(
        self,
        context: EncounterContext,
        initiative: float,
    ) -> InitiativeWindow | None:
        """First window after the given initiative count, wrapping to the next round.

        Args:
            context: Encounter context.
            initiative: Current initiative count.

        Returns:
            The next window, or None if the round is empty.
        """
        windows = self.build_windows(context)
        for window in windows:
            if window.initiative < initiative:
                return window
        return windows[0] if windows else None

    def windows_between(
        self,
        context: EncounterContext,
        previous: Creature | None,
        current: Creature | None,
    ) -> list[InitiativeWindow]:
        """Windows passed when the turn moves from ``previous`` to ``current``.

        The result excludes the previous creature's own turn and includes
        the current creature's turn window (with any merged lair slot).
        When the move wraps into a new round, the tail of the old round is
        followed by the head of the new one.

        Args:
            context: Context after the move.
            previous: Creature whose turn ended, or None at combat start.
            current: Creature whose turn begins.

        Returns:
            Windows in the order they were passed.
        """
        if current is None:
            return []
        windows = self.build_windows(context)
        current_key = turn_order_key(current)
        if previous is None:
            return [w for w in windows if w.order <= current_key]

        previous_key = turn_order_key(previous)
        if previous_key < current_key:
            return [w for w in windows if previous_key < w.order <= current_key]

        passed = [w for w in windows if w.order > previous_key]
        passed.extend(w for w in windows if w.order <= current_key)
        logger.debug(
            "Initiative wrapped into a new round",
            previous=previous.name,
            current=current.name,
            windows=len(passed),
        )
        return passed

    @staticmethod
    def next_creature_turn(context: EncounterContext) -> Creature | None:
        """The creature acting after the current one in initiative order."""
        order = initiative_order(context.creatures)
        current = context.current_creature
        if not order:
            return None
        if current is None:
            return order[0]
        current_key = turn_order_key(current)
        for creature in order:
            if turn_order_key(creature) > current_key:
                return creature
        return order[0]


__all__ = [
    "InitiativeWindow",
    "InitiativeTimingResolver",
    "initiative_order",
    "turn_order_key",
]
