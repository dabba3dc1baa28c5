"""
Observability — structlog configuration and a log-stream sink.

The engine itself only publishes LogEntry values to the run's LogStream;
where they end up is the caller's choice. structlog_subscriber() is the
stock sink: it forwards each entry to a structlog logger at the matching
level, keeping depth and scope as structured fields.

    configure_structlog(Settings.create(log_level="DEBUG"))
    settings = Settings.create()
    settings.log_stream.subscribe(structlog_subscriber())
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import structlog

from waypoint.config import Settings
from waypoint.logstream import LogEntry, LogLevel

_METHODS = {
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
    LogLevel.CONTEXT: "info",
}


def configure_structlog(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog from Settings.log_level and Settings.log_renderer.

    "console" renders coloured, human-readable lines for local runs;
    "json" renders one JSON object per line for CI logs. Without settings,
    Settings() is loaded from the environment.
    """
    settings = settings if settings is not None else Settings()
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if settings.log_renderer == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def structlog_subscriber(logger: Optional[Any] = None) -> Callable[[LogEntry], None]:
    """Build a LogStream subscriber that writes entries through structlog."""
    target = logger if logger is not None else structlog.get_logger("waypoint.steps")

    def forward(entry: LogEntry) -> None:
        emit = getattr(target, _METHODS[entry.level])
        event = "context.entered" if entry.level is LogLevel.CONTEXT else entry.message
        emit(
            event,
            scope=" → ".join(entry.scope),
            depth=entry.depth,
            line=str(entry),
        )

    return forward
