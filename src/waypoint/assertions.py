"""
Test assertions for run results.

Expressive helpers that fail with the terminal errors in the message, so a
broken flow reports *why* it failed rather than just that it did.

    from waypoint import RunAssertions

    def test_login():
        state, user = login_flow.run(settings)
        RunAssertions.assert_succeeded(state)
        assert user.name == "Alice"

    def test_missing_tile():
        state, _ = open_patient("nobody").run(settings)
        RunAssertions.assert_error_messages(
            state, ["element not found (Start Page → Patient tile)"]
        )
"""

from __future__ import annotations

from typing import Any, Sequence

from waypoint.failure import ErrorCode, StepError
from waypoint.state import State

_UNSET: Any = object()


class RunAssertions:
    """Assertions over a terminal State (and optionally its value)."""

    @staticmethod
    def assert_succeeded(state: State, value: Any = None, expected: Any = _UNSET) -> None:
        """
        Assert the run ended without errors, optionally with `expected` value.

            RunAssertions.assert_succeeded(state, value, expected=42)
        """
        assert not state.is_faulted, (
            "Expected success but the run faulted with: "
            f"{[e.message for e in state.errors]!r}"
        )
        if expected is not _UNSET:
            assert value == expected, f"Expected value {expected!r} but got {value!r}"

    @staticmethod
    def assert_faulted(state: State, expected_code: ErrorCode | None = None) -> tuple[StepError, ...]:
        """Assert the run faulted; optionally check every error's code."""
        assert state.is_faulted, "Expected a faulted run but it succeeded"
        if expected_code is not None:
            codes = [e.code for e in state.errors]
            assert all(code is expected_code for code in codes), (
                f"Expected every error to be {expected_code.value} but got "
                f"{[c.value for c in codes]!r}"
            )
        return state.errors

    @staticmethod
    def assert_error_messages(state: State, expected: Sequence[str]) -> None:
        """Assert the exact, ordered error messages of the terminal state."""
        actual = [e.message for e in state.errors]
        assert actual == list(expected), (
            f"Expected error messages {list(expected)!r} but got {actual!r}"
        )

    @staticmethod
    def assert_log_lines(state: State, expected: Sequence[str]) -> None:
        """Assert the rendered log of the terminal state, line by line."""
        actual = state.log_lines()
        assert actual == list(expected), (
            f"Expected log lines {list(expected)!r} but got {actual!r}"
        )
