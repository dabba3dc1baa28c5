"""
State and Outcome — the envelope threaded through every computation step.

State is a frozen dataclass: every operation returns a new State built from
the previous one, so two branches of an alternative that start from the same
State can never observe each other's effects.

    State ──step──▶ Outcome(state', value)
                          │
                          ├─ errors empty  → value may be read
                          └─ errors present → faulted, value must not be read

An Outcome is faulted exactly when its state carries at least one error.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Generic, Optional, Sequence, TypeVar

from waypoint.config import Settings
from waypoint.failure import RunFailedError, StepError
from waypoint.logstream import LogEntry, LogLevel

A = TypeVar("A")
B = TypeVar("B")


class _NoEnv:
    """Marker passed as the environment of an environment-free run."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NO_ENV"

    def __bool__(self) -> bool:
        return False


NO_ENV: Any = _NoEnv()


@dataclass(frozen=True, slots=True)
class State:
    """
    Immutable run state.

    session:  opaque handle to the driven resource; owned by the caller
    context:  enclosing scope names, innermost last
    errors:   accumulated failure records; empty means not faulted
    log:      append-only log entries
    settings: read-only settings bag, carried by reference
    """

    session: Any = None
    context: tuple[str, ...] = ()
    errors: tuple[StepError, ...] = ()
    log: tuple[LogEntry, ...] = ()
    settings: Optional[Settings] = field(default=None, repr=False)

    @staticmethod
    def empty(settings: Optional[Settings] = None) -> State:
        return State(settings=settings)

    @property
    def is_faulted(self) -> bool:
        return bool(self.errors)

    @property
    def depth(self) -> int:
        return len(self.context)

    # ──────────────────────── Errors ────────────────────────

    def add_error(self, error: StepError | BaseException | str) -> State:
        return replace(self, errors=self.errors + (StepError.of(error),))

    def with_errors(self, errors: Sequence[StepError]) -> State:
        """Replace the error sequence outright."""
        return replace(self, errors=tuple(errors))

    def raise_if_faulted(self) -> None:
        if self.errors:
            raise RunFailedError(self)

    # ──────────────────────── Context ────────────────────────

    def push_context(self, name: str) -> State:
        return replace(self, context=self.context + (name,))

    def pop_context(self) -> State:
        return replace(self, context=self.context[:-1])

    def with_context(self, context: Sequence[str]) -> State:
        return replace(self, context=tuple(context))

    # ──────────────────────── Session / settings ────────────────────────

    def with_session(self, session: Any) -> State:
        return replace(self, session=session)

    def with_settings(self, settings: Optional[Settings]) -> State:
        return replace(self, settings=settings)

    # ──────────────────────── Log ────────────────────────

    def entry(
        self,
        level: LogLevel,
        message: str,
        scope: Optional[tuple[str, ...]] = None,
    ) -> LogEntry:
        """Build a log entry at the current nesting depth."""
        indent = self.settings.log_indent if self.settings is not None else 2
        return LogEntry(
            level=level,
            message=message,
            depth=self.depth,
            scope=self.context if scope is None else scope,
            indent=indent,
        )

    def append_log(self, entry: LogEntry) -> State:
        return replace(self, log=self.log + (entry,))

    def emit(self, entry: LogEntry) -> State:
        """Publish the entry to the settings' stream, then append it."""
        if self.settings is not None:
            self.settings.log_stream.publish(entry)
        return self.append_log(entry)

    def log_lines(self) -> list[str]:
        return [str(entry) for entry in self.log]


class Outcome(Generic[A]):
    """
    Result of invoking a computation: terminal State plus optional value.

    Read the value with .value(); it raises on a faulted outcome, mirroring
    the rule that a faulted result's value is meaningless.
    """

    __slots__ = ("state", "_value")

    def __init__(self, state: State, value: Optional[A] = None) -> None:
        self.state = state
        self._value = value

    @staticmethod
    def ok(value: A, state: State) -> Outcome[A]:
        return Outcome(state, value)

    @staticmethod
    def faulted(state: State, error: StepError | BaseException | str) -> Outcome[Any]:
        return Outcome(state.add_error(error))

    @property
    def is_faulted(self) -> bool:
        return self.state.is_faulted

    @property
    def errors(self) -> tuple[StepError, ...]:
        return self.state.errors

    def value(self) -> A:
        if self.state.is_faulted:
            raise ValueError(
                f"Cannot get value from a faulted outcome: {self.state.errors[0].message}"
            )
        return self._value  # type: ignore[return-value]

    def cast_error(self) -> Outcome[B]:
        """Reinterpret a faulted outcome at another value type."""
        if not self.state.is_faulted:
            raise ValueError("cast_error() is only legal on a faulted outcome")
        return Outcome(self.state)

    def raw_value(self) -> Optional[A]:
        """Value slot without the faulted check (None when faulted)."""
        return None if self.state.is_faulted else self._value

    def __iter__(self):
        """Unpack as (state, value) the way run() returns it."""
        yield self.state
        yield self.raw_value()

    def __repr__(self) -> str:
        if self.state.is_faulted:
            return f"Outcome(faulted, errors={[e.message for e in self.state.errors]!r})"
        return f"Outcome({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Outcome):
            return NotImplemented
        return self.state == other.state and self.raw_value() == other.raw_value()

    __hash__ = None  # type: ignore[assignment]
