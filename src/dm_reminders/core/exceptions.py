"""Custom exception hierarchy for the DM reminder engine.

All exceptions inherit from ReminderEngineError so the host application can
handle every failure of the subsystem at a single boundary while keeping
domain-specific context in ``details``.

Most runtime failures inside the engine are recovered locally (generation
falls back, parsing degrades, invariant violations become validation
issues). The exceptions below are raised at API seams: configuration,
trigger registration and state-machine misuse.

Example:
    >>> from dm_reminders.core.exceptions import TriggerError
    >>> raise TriggerError("Unknown operator", trigger_key="death_trigger")
"""

from __future__ import annotations

from typing import Any


class ReminderEngineError(Exception):
    """Base exception for all reminder engine errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception.

        Returns:
            String representation suitable for debugging.
        """
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Engine State Exceptions
# =============================================================================


class InvalidEngineStateError(ReminderEngineError):
    """Raised when an orchestrator transition is not allowed.

    For example pausing an engine that was never started.
    """

    def __init__(
        self,
        message: str,
        *,
        current_state: str | None = None,
        expected_states: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize invalid engine state error with state context.

        Args:
            message: Human-readable error description.
            current_state: The state the engine was in.
            expected_states: States from which the transition is valid.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if current_state:
            combined_details["current_state"] = current_state
        if expected_states:
            combined_details["expected_states"] = expected_states
        super().__init__(message, details=combined_details)


# =============================================================================
# Trigger Domain Exceptions
# =============================================================================


class TriggerError(ReminderEngineError):
    """Base exception for trigger rule errors."""

    def __init__(
        self,
        message: str,
        *,
        trigger_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize trigger error with rule context.

        Args:
            message: Human-readable error description.
            trigger_key: Key of the rule involved.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if trigger_key:
            combined_details["trigger_key"] = trigger_key
        super().__init__(message, details=combined_details)


class TriggerRegistrationError(TriggerError):
    """Raised when a trigger rule is registered twice or is malformed."""


# =============================================================================
# Generation Domain Exceptions
# =============================================================================


class GenerationError(ReminderEngineError):
    """Raised when reminder content generation fails.

    The orchestrator never lets this escape: it is retried and then
    replaced by the fallback reminder.
    """

    def __init__(
        self,
        message: str,
        *,
        reminder_type: str | None = None,
        generator: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize generation error with generator context.

        Args:
            message: Human-readable error description.
            reminder_type: Reminder type being generated.
            generator: Name of the generator that failed.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if reminder_type:
            combined_details["reminder_type"] = reminder_type
        if generator:
            combined_details["generator"] = generator
        super().__init__(message, details=combined_details)


class GenerationTimeoutError(GenerationError):
    """Raised when a generator does not answer within its time budget."""

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float | None = None,
        reminder_type: str | None = None,
        generator: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize timeout error with the exceeded budget.

        Args:
            message: Human-readable error description.
            timeout_seconds: The budget that was exceeded.
            reminder_type: Reminder type being generated.
            generator: Name of the generator that timed out.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if timeout_seconds is not None:
            combined_details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            reminder_type=reminder_type,
            generator=generator,
            details=combined_details,
        )


class SchedulingError(ReminderEngineError):
    """Raised when a timer cannot be scheduled."""

    def __init__(
        self,
        message: str,
        *,
        task_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize scheduling error with the task key.

        Args:
            message: Human-readable error description.
            task_key: Key of the task that could not be scheduled.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if task_key:
            combined_details["task_key"] = task_key
        super().__init__(message, details=combined_details)


# =============================================================================
# Configuration & Validation Exceptions
# =============================================================================


class ConfigurationError(ReminderEngineError):
    """Raised when engine configuration is invalid.

    This includes per-type maps that do not cover every reminder type and
    out-of-range numeric settings.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


__all__ = [
    # Base exception
    "ReminderEngineError",
    # Engine state exceptions
    "InvalidEngineStateError",
    # Trigger exceptions
    "TriggerError",
    "TriggerRegistrationError",
    # Generation exceptions
    "GenerationError",
    "GenerationTimeoutError",
    "SchedulingError",
    # Configuration exceptions
    "ConfigurationError",
]
