"""
Log stream — leveled, depth-indented log entries and their live fan-out.

Log entries are produced by the info/warn/error primitives and by context()
when a scope is entered. Each entry is appended to the state's log (so the
terminal state carries the full history, success or not) and published to
the LogStream owned by the run's Settings, which hands it to every
subscriber in subscription order as it is emitted.

    settings = Settings.create()
    lines: list[str] = []
    settings.log_stream.subscribe(lambda entry: lines.append(str(entry)))

There is no process-wide stream: each Settings instance owns its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Callable

Subscriber = Callable[["LogEntry"], object]


@unique
class LogLevel(Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CONTEXT = "CONTEXT"
    """Scope-entry line written by context(); rendered without a prefix."""


@dataclass(frozen=True, slots=True)
class LogEntry:
    """
    One structured log line.

    `depth` is the number of enclosing context scopes at emission time and
    `scope` the full path of those scopes (for a CONTEXT entry, the path
    including the scope being entered).
    """

    level: LogLevel
    message: str
    depth: int = 0
    scope: tuple[str, ...] = ()
    indent: int = field(default=2, compare=False)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC), compare=False
    )

    def __str__(self) -> str:
        pad = " " * (self.indent * self.depth)
        if self.level is LogLevel.CONTEXT:
            return f"{pad}{self.message}"
        return f"{pad}{self.level.value}: {self.message}"

    def verbose(self) -> str:
        """Rendered line prefixed with timestamp and scope path."""
        path = " → ".join(self.scope) if self.scope else "-"
        return f"{self.timestamp.isoformat()} [{path}] {self}"


class LogStream:
    """
    Observable sequence of LogEntry values for one Settings instance.

    Subscribers receive entries synchronously, in the order they subscribed.
    A subscriber that raises propagates into the emitting step, where the
    invocation boundary turns it into a step error like any other fault.
    """

    __slots__ = ("_subscribers",)

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Attach a subscriber; returns a callable that detaches it again."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, entry: LogEntry) -> None:
        for subscriber in tuple(self._subscribers):
            subscriber(entry)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def __repr__(self) -> str:
        return f"LogStream(subscribers={len(self._subscribers)})"
