"""Configuration management for the DM reminder engine.

This module provides centralized configuration using pydantic-settings,
supporting environment variables, .env files and runtime overrides.

Example:
    >>> from dm_reminders.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.reminders.max_concurrent_generations
    3

Environment Variables:
    DM_REMINDERS_ENABLE_CACHE: Use the reminder cache (true/false)
    DM_REMINDERS_ENABLE_PREDICTIVE: Prefetch content for predicted events
    DM_REMINDERS_MAX_CONCURRENT_GENERATIONS: Cap on in-flight generations
    DM_REMINDERS_TRIGGER_DELAY_MS: Debounce applied to context changes
    DM_REMINDERS_GENERATION_TIMEOUT_SECONDS: Budget for one generator call
    DM_REMINDERS_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dm_reminders.core.constants import (
    DEFAULT_AUTO_HIDE_DURATIONS,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DISPLAY_POSITIONS,
    DEFAULT_PREDICTION_THRESHOLD,
    DEFAULT_TYPE_PRIORITY,
    DEFAULT_URGENCY_THRESHOLDS,
)
from dm_reminders.core.exceptions import ConfigurationError
from dm_reminders.models.enums import DisplayPosition, ReminderType, Urgency


class ReminderSettings(BaseSettings):
    """Configuration for reminder selection, caching and display.

    Attributes:
        enable_cache: Look up and store generated content in the cache.
        enable_predictive: Forecast events and prefetch their content.
        max_concurrent_generations: Generations allowed in flight at once.
        trigger_delay_ms: Debounce applied to context-change notifications.
        max_cached_reminders: Capacity of the reminder cache.
        cache_ttl_seconds: Lifetime of a cache entry.
        poll_interval_ms: Interval of the context-polling loop.
        prediction_threshold: Minimum probability that prefetches content.
        display_positions: Display target per reminder type.
        urgency_thresholds: Minimum urgency per reminder type.
        auto_hide_durations: Auto-dismiss delay per type in ms (0 = persistent).
        type_priority: Tie-break order among reminders of equal urgency.
    """

    model_config = SettingsConfigDict(
        env_prefix="DM_REMINDERS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enable_cache: bool = Field(
        default=True,
        description="Use the reminder cache",
    )
    enable_predictive: bool = Field(
        default=True,
        description="Prefetch content for predicted events",
    )
    max_concurrent_generations: int = Field(
        default=3,
        ge=1,
        le=32,
        description="Maximum generations in flight",
    )
    trigger_delay_ms: int = Field(
        default=100,
        ge=0,
        le=10_000,
        description="Debounce for context-change notifications",
    )
    max_cached_reminders: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Reminder cache capacity",
    )
    cache_ttl_seconds: float = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        gt=0,
        description="Reminder cache entry lifetime",
    )
    poll_interval_ms: int = Field(
        default=1000,
        ge=50,
        description="Context polling interval",
    )
    prediction_threshold: float = Field(
        default=DEFAULT_PREDICTION_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Minimum probability for prefetching",
    )
    display_positions: dict[ReminderType, DisplayPosition] = Field(
        default_factory=lambda: dict(DEFAULT_DISPLAY_POSITIONS),
        description="Display target per reminder type",
    )
    urgency_thresholds: dict[ReminderType, Urgency] = Field(
        default_factory=lambda: dict(DEFAULT_URGENCY_THRESHOLDS),
        description="Minimum urgency per reminder type",
    )
    auto_hide_durations: dict[ReminderType, int] = Field(
        default_factory=lambda: dict(DEFAULT_AUTO_HIDE_DURATIONS),
        description="Auto-dismiss delay per reminder type (ms)",
    )
    type_priority: list[ReminderType] = Field(
        default_factory=lambda: list(DEFAULT_TYPE_PRIORITY),
        description="Tie-break order among equal urgencies",
    )

    @field_validator("display_positions", mode="after")
    @classmethod
    def merge_display_positions(
        cls, value: dict[ReminderType, DisplayPosition]
    ) -> dict[ReminderType, DisplayPosition]:
        """Overlay partial overrides on the default positions.

        Args:
            value: User-supplied positions, possibly partial.

        Returns:
            A map covering every reminder type.
        """
        return {**DEFAULT_DISPLAY_POSITIONS, **value}

    @field_validator("urgency_thresholds", mode="after")
    @classmethod
    def merge_urgency_thresholds(
        cls, value: dict[ReminderType, Urgency]
    ) -> dict[ReminderType, Urgency]:
        """Overlay partial overrides on the default urgency floors."""
        return {**DEFAULT_URGENCY_THRESHOLDS, **value}

    @field_validator("auto_hide_durations", mode="after")
    @classmethod
    def merge_auto_hide_durations(
        cls, value: dict[ReminderType, int]
    ) -> dict[ReminderType, int]:
        """Overlay partial overrides on the default durations.

        Raises:
            ConfigurationError: If any duration is negative.
        """
        merged = {**DEFAULT_AUTO_HIDE_DURATIONS, **value}
        negative = sorted(str(k) for k, v in merged.items() if v < 0)
        if negative:
            raise ConfigurationError(
                "auto_hide_durations must be >= 0 (0 keeps the reminder until dismissed)",
                config_key="auto_hide_durations",
                details={"types": negative},
            )
        return merged

    @model_validator(mode="after")
    def validate_type_priority(self) -> "ReminderSettings":
        """Ensure the priority order lists every reminder type exactly once.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If the order is not a permutation of all types.
        """
        if sorted(self.type_priority) != sorted(ReminderType):
            raise ConfigurationError(
                "type_priority must list every reminder type exactly once",
                config_key="type_priority",
                details={"type_priority": [str(t) for t in self.type_priority]},
            )
        return self

    def priority_index(self, reminder_type: ReminderType) -> int:
        """Position of a type in the tie-break order (lower sorts first)."""
        return self.type_priority.index(reminder_type)


class GenerationSettings(BaseSettings):
    """Configuration for calls to the external content generator.

    Attributes:
        timeout_seconds: Budget for a single generator call.
        max_retries: Retries after the first failed attempt.
        retry_backoff_seconds: Multiplier of the exponential backoff.
        retry_backoff_max_seconds: Upper bound of a single backoff wait.
    """

    model_config = SettingsConfigDict(
        env_prefix="DM_REMINDERS_GENERATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Generator call timeout",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after a failed generator call",
    )
    retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Exponential backoff multiplier",
    )
    retry_backoff_max_seconds: float = Field(
        default=4.0,
        ge=0,
        description="Maximum single backoff wait",
    )

    @model_validator(mode="after")
    def validate_backoff(self) -> "GenerationSettings":
        """Ensure the backoff cap is not below the multiplier.

        Raises:
            ConfigurationError: If retry_backoff_max_seconds < retry_backoff_seconds.
        """
        if self.retry_backoff_max_seconds < self.retry_backoff_seconds:
            raise ConfigurationError(
                f"retry_backoff_max_seconds ({self.retry_backoff_max_seconds}) must be "
                f">= retry_backoff_seconds ({self.retry_backoff_seconds})",
                config_key="retry_backoff_max_seconds",
            )
        return self


class Settings(BaseSettings):
    """Top-level settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Engine logging level.
        json_logs: Render logs as JSON.
        reminders: Reminder selection and display settings.
        generation: External generator settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="DM_REMINDERS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(
        default="DM Reminder Engine",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON",
    )

    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the settings singleton.

    Returns:
        The cached Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load engine settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access.

    Example:
        >>> clear_settings_cache()
        >>> settings = get_settings()  # Reloads from environment
    """
    get_settings.cache_clear()


__all__ = [
    "ReminderSettings",
    "GenerationSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
