"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        ReminderEngineError: Base exception for all engine errors.
        ConfigurationError: Configuration-related errors.

    Configuration:
        Settings: Top-level settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up engine logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from dm_reminders.core.config import (
    GenerationSettings,
    ReminderSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from dm_reminders.core.exceptions import (
    ConfigurationError,
    GenerationError,
    GenerationTimeoutError,
    InvalidEngineStateError,
    ReminderEngineError,
    SchedulingError,
    TriggerError,
    TriggerRegistrationError,
)
from dm_reminders.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


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
    # Configuration
    "Settings",
    "ReminderSettings",
    "GenerationSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
