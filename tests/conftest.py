"""
Shared fixtures for the waypoint test suite.

Provides fresh Settings per test (each with its own LogStream) and a
fixture that captures every streamed log line in delivery order.
"""

from __future__ import annotations

import pytest

from waypoint import Settings


@pytest.fixture()
def settings() -> Settings:
    """Fresh settings; the log stream has no subscribers."""
    return Settings.create()


@pytest.fixture()
def streamed(settings: Settings) -> list[str]:
    """Rendered log lines, in the order the stream delivered them."""
    lines: list[str] = []
    settings.log_stream.subscribe(lambda entry: lines.append(str(entry)))
    return lines
