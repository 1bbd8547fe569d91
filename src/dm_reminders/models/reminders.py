"""Pydantic V2 schemas for trigger rules and reminder content.

Triggers are registered once at startup and are read-only afterwards.
Reminder content is produced by generation, optionally cached, and wrapped
into a ``DisplayedReminder`` at the moment it is shown.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from dm_reminders.models.enums import (
    ComparisonOperator,
    ConditionType,
    DisplayPosition,
    ReminderType,
    TriggerTiming,
    Urgency,
)


class TriggerCondition(BaseModel):
    """A typed predicate over the current creature's context.

    Attributes:
        type: Context-derived scalar to read.
        operator: Comparison to apply.
        value: Configured value to compare against.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ConditionType = Field(description="Scalar to read")
    operator: ComparisonOperator = Field(description="Comparison")
    value: float | int | str = Field(description="Configured value")


class Trigger(BaseModel):
    """A declarative reminder rule.

    Attributes:
        key: Unique rule identifier.
        urgency: Urgency reported when the rule fires.
        position: Preferred display target.
        timing: Display delay class.
        conditions: Predicates that must all hold; empty always fires.
        reminder_type: Reminder kind produced; inferred from the key if None.
        description: What the rule is for.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str = Field(min_length=1, description="Unique rule ID")
    urgency: Urgency = Field(description="Urgency when fired")
    position: DisplayPosition = Field(description="Display target")
    timing: TriggerTiming = Field(default=TriggerTiming.IMMEDIATE, description="Delay class")
    conditions: tuple[TriggerCondition, ...] = Field(default=(), description="Predicates")
    reminder_type: ReminderType | None = Field(default=None, description="Reminder kind")
    description: str = Field(default="", description="Rule purpose")


class GenerationRequest(BaseModel):
    """A request to produce content for one reminder.

    Attributes:
        reminder_type: Kind of reminder to produce.
        payload: Context handed to the generator; also the cache fingerprint.
        urgency: Urgency the reminder will be shown with (at least).
        position: Display target.
        timing: Display delay class.
        display_duration: Auto-dismiss delay in ms (0 = until dismissed).
        creature_id: Creature the reminder is about, if any.
        creature_name: Name of that creature, used by the fallback.
        trigger_key: Rule that produced the request, if any.
        prefetch: Produce and cache content without displaying it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    reminder_type: ReminderType = Field(description="Reminder kind")
    payload: dict[str, Any] = Field(default_factory=dict, description="Generator context")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="Minimum urgency")
    position: DisplayPosition = Field(description="Display target")
    timing: TriggerTiming = Field(default=TriggerTiming.IMMEDIATE, description="Delay class")
    display_duration: Annotated[int, Field(ge=0)] = 0
    creature_id: str | None = Field(default=None, description="Creature concerned")
    creature_name: str | None = Field(default=None, description="Creature name")
    trigger_key: str | None = Field(default=None, description="Originating rule")
    prefetch: bool = Field(default=False, description="Cache only, do not display")


class ReminderContent(BaseModel):
    """Generated reminder text plus display metadata.

    Attributes:
        id: Reminder identifier.
        content: Markdown text shown to the facilitator.
        type: Reminder kind.
        urgency: Severity.
        display_duration: Auto-dismiss delay in ms (0 = until dismissed).
        position: Display target.
        timing: Display delay class.
        dismissible: Whether the facilitator can close it.
        persistent: Whether it should survive until dismissed by hand.
        context: Optional debugging payload.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Reminder ID")
    content: str = Field(description="Reminder text")
    type: ReminderType = Field(description="Reminder kind")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="Severity")
    display_duration: Annotated[int, Field(ge=0)] = 0
    position: DisplayPosition = Field(default=DisplayPosition.SIDEBAR, description="Target")
    timing: TriggerTiming = Field(default=TriggerTiming.IMMEDIATE, description="Delay class")
    dismissible: bool = Field(default=True, description="Can be closed")
    persistent: bool = Field(default=False, description="Stays until dismissed")
    context: dict[str, Any] | None = Field(default=None, description="Debug payload")


class DisplayedReminder(ReminderContent):
    """A reminder currently shown on the display surface.

    Attributes:
        is_visible: Whether the reminder is on screen.
        start_time: When it was shown (seconds since epoch).
    """

    is_visible: bool = Field(default=True, description="On screen")
    start_time: float = Field(description="Display start time")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def expires_at(self) -> float | None:
        """When the reminder auto-dismisses, or None if it persists."""
        if self.display_duration == 0:
            return None
        return self.start_time + self.display_duration / 1000


__all__ = [
    "TriggerCondition",
    "Trigger",
    "GenerationRequest",
    "ReminderContent",
    "DisplayedReminder",
]
