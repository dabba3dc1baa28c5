"""
Tests for RunAssertions.
"""

from __future__ import annotations

import pytest

from waypoint import ErrorCode, RunAssertions, Settings, fail, info, pure


class TestRunAssertions:
    def test_succeeded_passes(self, settings: Settings):
        state, value = pure(3).run(settings)
        RunAssertions.assert_succeeded(state, value, expected=3)

    def test_succeeded_reports_errors(self, settings: Settings):
        state, _ = fail("element not found").run(settings)
        with pytest.raises(AssertionError, match="element not found"):
            RunAssertions.assert_succeeded(state)

    def test_succeeded_checks_value(self, settings: Settings):
        state, value = pure(3).run(settings)
        with pytest.raises(AssertionError, match="Expected value 4"):
            RunAssertions.assert_succeeded(state, value, expected=4)

    def test_faulted_returns_errors(self, settings: Settings):
        state, _ = fail("x").run(settings)
        errors = RunAssertions.assert_faulted(state, ErrorCode.EXPLICIT_FAILURE)
        assert [e.message for e in errors] == ["x"]

    def test_faulted_checks_code(self, settings: Settings):
        state, _ = fail("x").run(settings)
        with pytest.raises(AssertionError, match="TIMEOUT"):
            RunAssertions.assert_faulted(state, ErrorCode.TIMEOUT)

    def test_faulted_fails_on_success(self, settings: Settings):
        state, _ = pure(1).run(settings)
        with pytest.raises(AssertionError, match="succeeded"):
            RunAssertions.assert_faulted(state)

    def test_log_lines(self, settings: Settings):
        state, _ = info("a").run(settings)
        RunAssertions.assert_log_lines(state, ["INFO: a"])
        with pytest.raises(AssertionError):
            RunAssertions.assert_log_lines(state, ["INFO: b"])
