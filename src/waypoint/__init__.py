"""
waypoint — composable, fallible steps for scripting a driven process.

Each step runs against an immutable State (session handle, context stack,
accumulated errors, log, settings). Steps compose with bind/map, fall back
with `|`, name their scope with context() so failures carry a breadcrumb,
and poll with wait_until():

    from waypoint import Settings, context, fail, info, pure

    flow = info("Opening start page").then(
        context("Start Page", context("Patient tile", fail("element not found")))
    )
    state, _ = flow.run(Settings.create())
    state.errors[0].message
    # 'element not found (Start Page → Patient tile)'

Failures never raise out of run(); run_and_raise() raises RunFailedError.
"""

from waypoint.assertions import RunAssertions
from waypoint.combinators import (
    ask,
    context,
    env_step,
    error,
    fail,
    from_callable,
    get_session,
    get_settings,
    get_state,
    info,
    or_else,
    pure,
    sequence,
    set_session,
    step,
    use_session,
    wait_until,
    warn,
)
from waypoint.computation import (
    AsyncComputation,
    AsyncEnvComputation,
    BaseComputation,
    Computation,
    EnvComputation,
    alternative,
    lift,
    to_async,
)
from waypoint.config import Settings
from waypoint.do import do
from waypoint.failure import ErrorCode, RunFailedError, StepError
from waypoint.logstream import LogEntry, LogLevel, LogStream
from waypoint.state import NO_ENV, Outcome, State

__all__ = [
    "AsyncComputation",
    "AsyncEnvComputation",
    "BaseComputation",
    "Computation",
    "EnvComputation",
    "ErrorCode",
    "LogEntry",
    "LogLevel",
    "LogStream",
    "NO_ENV",
    "Outcome",
    "RunAssertions",
    "RunFailedError",
    "Settings",
    "State",
    "StepError",
    "alternative",
    "ask",
    "context",
    "do",
    "env_step",
    "error",
    "fail",
    "from_callable",
    "get_session",
    "get_settings",
    "get_state",
    "info",
    "lift",
    "or_else",
    "pure",
    "sequence",
    "set_session",
    "step",
    "to_async",
    "use_session",
    "wait_until",
    "warn",
]

__version__ = "0.1.0"
