"""Structured logging for the DM reminder engine.

Every engine decision (trigger fired, generation fell back, reminder
displayed or dismissed) is a structlog key/value event. The engine is
embedded in a host application, so events go to stderr and the host's
stdout stays untouched.

Example:
    >>> from dm_reminders.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Reminder displayed", reminder_id="turn_start:ab12", urgency="high")
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from dm_reminders.core.config import get_settings


if TYPE_CHECKING:
    from structlog.types import EventDict, Processor, WrappedLogger

    from dm_reminders.core.config import Settings


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag each event with the engine name so hosts can filter it out."""
    event_dict["app"] = "dm_reminders"
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """Install the engine's structlog processor chain.

    Args:
        settings: Source of ``log_level``, ``json_logs`` and ``debug``.
            Defaults to the settings singleton. ``debug`` forces DEBUG
            level whatever ``log_level`` says.

    Example:
        >>> configure_logging(Settings(json_logs=True))
    """
    settings = settings or get_settings()
    level = "DEBUG" if settings.debug else settings.log_level

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, usually named after the calling module."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    The orchestrator binds its session epoch here so every event of one
    combat session can be correlated.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.

    Example:
        >>> bind_context(session_epoch=3)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
