"""Tests for configuration management."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from dm_reminders.core.config import (
    GenerationSettings,
    ReminderSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from dm_reminders.core.constants import DEFAULT_TYPE_PRIORITY
from dm_reminders.core.exceptions import ConfigurationError
from dm_reminders.models import DisplayPosition, ReminderType, Urgency


class TestReminderSettings:
    """Tests for ReminderSettings configuration."""

    def test_default_values(self) -> None:
        """Test default reminder settings."""
        settings = ReminderSettings()

        assert settings.enable_cache is True
        assert settings.enable_predictive is True
        assert settings.max_concurrent_generations == 3
        assert settings.trigger_delay_ms == 100
        assert settings.max_cached_reminders == 50
        assert settings.cache_ttl_seconds == 300.0
        assert settings.prediction_threshold == 0.7

    def test_per_type_maps_cover_every_type(self) -> None:
        """Test that every reminder type has a position, floor and duration."""
        settings = ReminderSettings()

        for reminder_type in ReminderType:
            assert reminder_type in settings.display_positions
            assert reminder_type in settings.urgency_thresholds
            assert reminder_type in settings.auto_hide_durations

    def test_death_and_lair_reminders_persist(self) -> None:
        """Test that critical reminder types stay until dismissed."""
        settings = ReminderSettings()

        assert settings.auto_hide_durations[ReminderType.DEATH_TRIGGER] == 0
        assert settings.auto_hide_durations[ReminderType.LAIR_ACTIONS] == 0
        assert settings.urgency_thresholds[ReminderType.DEATH_TRIGGER] == Urgency.CRITICAL

    def test_partial_override_is_merged(self) -> None:
        """Test that partial maps are overlaid on the defaults."""
        settings = ReminderSettings(
            display_positions={ReminderType.TURN_START: DisplayPosition.FLOATING},
        )

        assert settings.display_positions[ReminderType.TURN_START] == DisplayPosition.FLOATING
        assert (
            settings.display_positions[ReminderType.DEATH_TRIGGER]
            == DisplayPosition.CENTER_ALERT
        )

    def test_negative_duration_rejected(self) -> None:
        """Test that negative auto-hide durations are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            ReminderSettings(auto_hide_durations={ReminderType.TURN_END: -1})

        assert "auto_hide_durations" in str(exc_info.value)

    def test_type_priority_must_be_permutation(self) -> None:
        """Test that the tie-break order must list every type once."""
        with pytest.raises(ConfigurationError) as exc_info:
            ReminderSettings(type_priority=[ReminderType.DEATH_TRIGGER])

        assert exc_info.value.details["config_key"] == "type_priority"

    def test_priority_index(self) -> None:
        """Test tie-break positions follow the configured order."""
        settings = ReminderSettings()

        assert settings.priority_index(ReminderType.DEATH_TRIGGER) == 0
        assert settings.priority_index(ReminderType.ROUND_START) == len(DEFAULT_TYPE_PRIORITY) - 1

    def test_concurrency_bounds(self) -> None:
        """Test the concurrency cap bounds."""
        with pytest.raises(PydanticValidationError):
            ReminderSettings(max_concurrent_generations=0)

        with pytest.raises(PydanticValidationError):
            ReminderSettings(max_concurrent_generations=33)

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables override defaults."""
        monkeypatch.setenv("DM_REMINDERS_ENABLE_CACHE", "false")
        monkeypatch.setenv("DM_REMINDERS_TRIGGER_DELAY_MS", "250")

        settings = ReminderSettings()

        assert settings.enable_cache is False
        assert settings.trigger_delay_ms == 250


class TestGenerationSettings:
    """Tests for GenerationSettings configuration."""

    def test_default_values(self) -> None:
        """Test default generation settings."""
        settings = GenerationSettings()

        assert settings.timeout_seconds == 10.0
        assert settings.max_retries == 2
        assert settings.retry_backoff_seconds == 0.5
        assert settings.retry_backoff_max_seconds == 4.0

    def test_backoff_cap_validation(self) -> None:
        """Test that the backoff cap must not be below the multiplier."""
        with pytest.raises(ConfigurationError) as exc_info:
            GenerationSettings(retry_backoff_seconds=2.0, retry_backoff_max_seconds=1.0)

        assert "retry_backoff_max_seconds" in str(exc_info.value)

    def test_timeout_must_be_positive(self) -> None:
        """Test that a zero timeout is rejected."""
        with pytest.raises(PydanticValidationError):
            GenerationSettings(timeout_seconds=0)


class TestSettings:
    """Tests for main Settings configuration."""

    def test_default_settings(self) -> None:
        """Test default settings initialization."""
        settings = Settings()

        assert settings.app_name == "DM Reminder Engine"
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert isinstance(settings.reminders, ReminderSettings)
        assert isinstance(settings.generation, GenerationSettings)

    def test_env_vars(self, mock_env_vars: dict[str, str]) -> None:
        """Test settings loaded from environment variables."""
        settings = Settings()

        assert settings.debug is True
        assert settings.log_level == "DEBUG"
        assert settings.reminders.max_concurrent_generations == 5
        assert settings.generation.timeout_seconds == 3.0

    def test_invalid_log_level(self) -> None:
        """Test that invalid log levels are rejected."""
        with pytest.raises(PydanticValidationError):
            Settings(log_level="VERBOSE")  # type: ignore[arg-type]


class TestGetSettings:
    """Tests for the settings singleton."""

    def test_get_settings_cached(self) -> None:
        """Test that get_settings returns the cached instance."""
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that clearing the cache reloads from the environment."""
        first = get_settings()
        monkeypatch.setenv("DM_REMINDERS_DEBUG", "true")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.debug is True

    def test_invalid_env_wrapped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that invalid environment values surface as ConfigurationError."""
        monkeypatch.setenv("DM_REMINDERS_LOG_LEVEL", "VERBOSE")

        with pytest.raises(ConfigurationError):
            get_settings()
