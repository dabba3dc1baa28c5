"""
Tests for State and Outcome.
"""

from __future__ import annotations

import dataclasses

import pytest

from waypoint import LogLevel, Outcome, RunFailedError, Settings, State
from waypoint.state import NO_ENV


class TestState:
    def test_empty(self, settings: Settings):
        state = State.empty(settings)
        assert state.session is None
        assert state.context == ()
        assert state.errors == ()
        assert state.log == ()
        assert state.settings is settings
        assert not state.is_faulted

    def test_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            State.empty().session = "x"  # type: ignore[misc]

    def test_add_error_returns_new_state(self):
        original = State.empty()
        faulted = original.add_error("boom")
        assert original.errors == ()
        assert faulted.is_faulted
        assert faulted.errors[0].message == "boom"

    def test_context_push_and_pop(self):
        state = State.empty().push_context("Chrome").push_context("Start Page")
        assert state.context == ("Chrome", "Start Page")
        assert state.depth == 2
        assert state.pop_context().context == ("Chrome",)

    def test_with_context_replaces_stack(self):
        state = State.empty().push_context("A").with_context(["B", "C"])
        assert state.context == ("B", "C")

    def test_raise_if_faulted(self):
        State.empty().raise_if_faulted()
        with pytest.raises(RunFailedError, match="boom"):
            State.empty().add_error("boom").raise_if_faulted()


class TestStateLog:
    def test_entry_uses_depth_and_scope(self, settings: Settings):
        state = State.empty(settings).push_context("Login")
        entry = state.entry(LogLevel.INFO, "typing")
        assert entry.depth == 1
        assert entry.scope == ("Login",)
        assert str(entry) == "  INFO: typing"

    def test_entry_without_settings_uses_two_spaces(self):
        entry = State.empty().push_context("a").entry(LogLevel.WARN, "w")
        assert str(entry) == "  WARN: w"

    def test_emit_publishes_then_appends(self, settings: Settings, streamed: list[str]):
        state = State.empty(settings)
        emitted = state.emit(state.entry(LogLevel.ERROR, "red banner"))
        assert streamed == ["ERROR: red banner"]
        assert emitted.log_lines() == ["ERROR: red banner"]
        assert state.log == ()

    def test_append_log_does_not_publish(self, settings: Settings, streamed: list[str]):
        state = State.empty(settings)
        state.append_log(state.entry(LogLevel.INFO, "quiet"))
        assert streamed == []


class TestOutcome:
    def test_ok(self):
        outcome = Outcome.ok(5, State.empty())
        assert not outcome.is_faulted
        assert outcome.value() == 5
        assert tuple(outcome) == (outcome.state, 5)

    def test_faulted_value_raises(self):
        outcome = Outcome.faulted(State.empty(), "broken")
        assert outcome.is_faulted
        assert outcome.raw_value() is None
        with pytest.raises(ValueError, match="broken"):
            outcome.value()

    def test_cast_error_requires_fault(self):
        with pytest.raises(ValueError):
            Outcome.ok(1, State.empty()).cast_error()
        faulted = Outcome.faulted(State.empty(), "x")
        assert faulted.cast_error().errors == faulted.errors

    def test_equality(self):
        state = State.empty()
        assert Outcome.ok(1, state) == Outcome.ok(1, state)
        assert Outcome.ok(1, state) != Outcome.ok(2, state)

    def test_repr(self):
        assert repr(Outcome.ok("v", State.empty())) == "Outcome('v')"
        assert "faulted" in repr(Outcome.faulted(State.empty(), "x"))


class TestNoEnv:
    def test_is_falsy_marker(self):
        assert not NO_ENV
        assert repr(NO_ENV) == "NO_ENV"
