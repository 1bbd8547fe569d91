"""Detection of discrete changes between successive encounter contexts.

The differ is side-effect free: it reads two contexts and returns the
list of changes, in a fixed order (round, turn, HP, deaths, conditions).
Creatures present in only one of the two contexts produce no events;
entering and leaving combat is tracked by the combat tracker itself.
"""

from __future__ import annotations

import time

from dm_reminders.models.context import EncounterContext, StateChangeEvent
from dm_reminders.models.enums import StateChangeType


def diff_contexts(
    previous: EncounterContext | None,
    current: EncounterContext | None,
    *,
    timestamp: float | None = None,
) -> list[StateChangeEvent]:
    """Compare two contexts and list what changed.

    Args:
        previous: Context seen on the previous tick, or None at combat start.
        current: Context of this tick, or None at combat end.
        timestamp: Detection time; defaults to now.

    Returns:
        Ordered state-change events. ``previous=None`` yields a single
        combat_start event, ``current=None`` a single combat_end event.
    """
    now = time.time() if timestamp is None else timestamp

    if current is None:
        if previous is None:
            return []
        return [
            StateChangeEvent(
                type=StateChangeType.COMBAT_END,
                before={"current_turn": previous.current_turn, "round": previous.round},
                affected_creatures=tuple(c.id for c in previous.creatures),
                timestamp=now,
            )
        ]
    if previous is None:
        return [
            StateChangeEvent(
                type=StateChangeType.COMBAT_START,
                after={"current_turn": current.current_turn, "round": current.round},
                affected_creatures=tuple(c.id for c in current.creatures),
                timestamp=now,
            )
        ]

    events: list[StateChangeEvent] = []

    if previous.round != current.round:
        events.append(
            StateChangeEvent(
                type=StateChangeType.ROUND_CHANGE,
                before={"round": previous.round},
                after={"round": current.round},
                timestamp=now,
            )
        )

    if previous.current_turn != current.current_turn or previous.round != current.round:
        before_creature = previous.current_creature
        after_creature = current.current_creature
        events.append(
            StateChangeEvent(
                type=StateChangeType.TURN_CHANGE,
                before={
                    "current_turn": previous.current_turn,
                    "creature_id": before_creature.id if before_creature else None,
                },
                after={
                    "current_turn": current.current_turn,
                    "creature_id": after_creature.id if after_creature else None,
                },
                affected_creatures=(after_creature.id,) if after_creature else (),
                timestamp=now,
            )
        )

    previous_by_id = {c.id: c for c in previous.creatures}
    deaths: list[StateChangeEvent] = []
    for creature in current.creatures:
        before = previous_by_id.get(creature.id)
        if before is None or before.hp == creature.hp:
            continue
        events.append(
            StateChangeEvent(
                type=StateChangeType.HP_CHANGE,
                before={"hp": before.hp, "max_hp": before.max_hp},
                after={"hp": creature.hp, "max_hp": creature.max_hp},
                affected_creatures=(creature.id,),
                timestamp=now,
            )
        )
        if before.hp > 0 >= creature.hp:
            deaths.append(
                StateChangeEvent(
                    type=StateChangeType.CREATURE_DEATH,
                    before={"hp": before.hp},
                    after={"hp": creature.hp},
                    affected_creatures=(creature.id,),
                    timestamp=now,
                )
            )
    events.extend(deaths)

    shared_ids = previous_by_id.keys() & {c.id for c in current.creatures}
    before_conditions = {
        c.id: c for c in previous.active_conditions if c.creature_id in shared_ids
    }
    after_conditions = {
        c.id: c for c in current.active_conditions if c.creature_id in shared_ids
    }
    added = [after_conditions[k] for k in after_conditions if k not in before_conditions]
    removed = [before_conditions[k] for k in before_conditions if k not in after_conditions]
    if added or removed:
        affected = dict.fromkeys(c.creature_id for c in (*added, *removed))
        events.append(
            StateChangeEvent(
                type=StateChangeType.CONDITION_CHANGE,
                before={"removed": [c.id for c in removed]},
                after={"added": [c.id for c in added]},
                affected_creatures=tuple(affected),
                timestamp=now,
            )
        )

    return events


__all__ = ["diff_contexts"]
