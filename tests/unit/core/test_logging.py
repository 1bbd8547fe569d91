"""Tests for structured logging configuration."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest
import structlog

from dm_reminders.core.config import Settings
from dm_reminders.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults and drop bound context after each test."""
    yield
    clear_context()
    structlog.reset_defaults()


def _records(capsys: pytest.CaptureFixture[str]) -> list[dict[str, Any]]:
    return [json.loads(line) for line in capsys.readouterr().err.splitlines() if line]


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_events_on_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test JSON output carries the event, level and app tag."""
        configure_logging(Settings(json_logs=True))

        get_logger("tests.json").info("Reminder displayed", reminder_id="turn_start:ab12")

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip())
        assert record["event"] == "Reminder displayed"
        assert record["reminder_id"] == "turn_start:ab12"
        assert record["level"] == "info"
        assert record["app"] == "dm_reminders"
        assert "timestamp" in record

    def test_level_filters_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test events below the configured level are dropped."""
        configure_logging(Settings(json_logs=True, log_level="WARNING"))
        logger = get_logger("tests.level")

        logger.info("Cycle skipped")
        logger.warning("Generation fell back")

        assert [r["event"] for r in _records(capsys)] == ["Generation fell back"]

    def test_debug_overrides_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test debug mode emits debug events regardless of log_level."""
        configure_logging(Settings(json_logs=True, log_level="ERROR", debug=True))

        get_logger("tests.debug").debug("Trigger evaluated", trigger_key="turn_start")

        assert [r["event"] for r in _records(capsys)] == ["Trigger evaluated"]


class TestLoggingContext:
    """Tests for bind_context and clear_context."""

    def test_bound_context_merged_until_cleared(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test bound variables appear on events until the context is cleared."""
        configure_logging(Settings(json_logs=True))
        logger = get_logger("tests.context")

        bind_context(session_epoch=3)
        logger.info("Engine started")
        clear_context()
        logger.info("Engine stopped")

        started, stopped = _records(capsys)
        assert started["session_epoch"] == 3
        assert "session_epoch" not in stopped
