"""Step builders shared by the unit tests."""

from __future__ import annotations

from typing import Any, Callable

from waypoint import Computation, Outcome, State, step


def counting_step(calls: list[str], name: str, value: Any = None) -> Computation[Any]:
    """A step that records its name in `calls` and succeeds with `value`."""

    def run(state: State) -> Outcome[Any]:
        calls.append(name)
        return Outcome.ok(value, state)

    return step(run)  # type: ignore[return-value]


def failing_each_time(message: Callable[[int], str]) -> Computation[Any]:
    """A step that fails on every invocation with message(n) for attempt n."""
    attempts = 0

    def run(state: State) -> Outcome[Any]:
        nonlocal attempts
        attempts += 1
        return Outcome.faulted(state, message(attempts))

    return step(run)  # type: ignore[return-value]


def succeeding_on(attempt: int, value: Callable[[int], Any] = lambda n: n) -> Computation[Any]:
    """Fails with "Attempt n" until the given attempt, then succeeds."""
    attempts = 0

    def run(state: State) -> Outcome[Any]:
        nonlocal attempts
        attempts += 1
        if attempts < attempt:
            return Outcome.faulted(state, f"Attempt {attempts}")
        return Outcome.ok(value(attempts), state)

    return step(run)  # type: ignore[return-value]
