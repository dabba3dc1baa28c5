"""
Primitives and combinators built on the four computation variants.

Primitives lift a single step:

    pure(v) / fail(e)            constant success / failure
    step(fn) / env_step(fn)      fn(state) -> Outcome, sync or async def
    from_callable(fn, ...)       plain function; exceptions become errors
    ask()                        the injected environment
    get_session() / set_session(s) / use_session(f)
    info(msg) / warn(msg) / error(msg)

Combinators compose steps:

    alternative(lhs, rhs)        lhs | rhs
    or_else(lhs, handler)        fallback chosen from lhs's errors
    context(name, inner)         breadcrumbs + indented log scope
    wait_until(c, predicate)     poll until success and predicate holds
    sequence(*cs)                run in order, collect values
"""

from __future__ import annotations

import inspect
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generator, Optional, TypeVar

import structlog

from waypoint.computation import (
    AsyncComputation,
    AsyncEnvComputation,
    BaseComputation,
    Computation,
    EnvComputation,
    Invoke,
    Request,
    Sleep,
    alternative,
    join,
    new_errors,
    seconds,
)
from waypoint.config import Settings
from waypoint.failure import StepError
from waypoint.logstream import LogLevel
from waypoint.state import Outcome, State

A = TypeVar("A")

log = structlog.get_logger()

_DEFAULT_INTERVAL = Settings.model_fields["wait_interval"].default
_DEFAULT_TIMEOUT = Settings.model_fields["wait_timeout"].default


# ──────────────────────── Primitives ────────────────────────


def pure(value: A) -> Computation[A]:
    return Computation.pure(value)  # type: ignore[return-value]


def fail(error: StepError | BaseException | str) -> Computation[Any]:
    return Computation.fail(error)  # type: ignore[return-value]


def step(fn: Callable[[State], Outcome[A] | Awaitable[Outcome[A]]]) -> BaseComputation[A]:
    """
    Lift a step function into a computation.

    `async def` functions give an AsyncComputation, plain ones a Computation.
    Usable as a decorator:

        @step
        def read_title(state: State) -> Outcome[str]:
            return Outcome.ok(state.session.title, state)
    """
    cls = AsyncComputation if inspect.iscoroutinefunction(fn) else Computation
    return cls(lambda env, state: fn(state))


def env_step(
    fn: Callable[[Any, State], Outcome[A] | Awaitable[Outcome[A]]],
) -> BaseComputation[A]:
    """Lift fn(env, state) into an environment-parameterised computation."""
    cls = AsyncEnvComputation if inspect.iscoroutinefunction(fn) else EnvComputation
    return cls(fn)


def from_callable(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> BaseComputation[Any]:
    """
    Lift a plain (or async) function; its return value becomes the result.

        from_callable(driver.find_element, "css selector", "#login")
    """
    if inspect.iscoroutinefunction(fn):

        async def run_async(env: Any, state: State) -> Outcome[Any]:
            return Outcome.ok(await fn(*args, **kwargs), state)

        return AsyncComputation(run_async)
    return Computation(lambda env, state: Outcome.ok(fn(*args, **kwargs), state))


def ask() -> EnvComputation[Any]:
    """The environment the run was given."""
    return EnvComputation(lambda env, state: Outcome.ok(env, state))


def get_state() -> Computation[State]:
    return Computation(lambda env, state: Outcome.ok(state, state))


def get_settings() -> Computation[Optional[Settings]]:
    return Computation(lambda env, state: Outcome.ok(state.settings, state))


def get_session() -> Computation[Any]:
    return Computation(lambda env, state: Outcome.ok(state.session, state))


def set_session(session: Any) -> Computation[None]:
    """Install the driven-session handle; the caller keeps ownership."""
    return Computation(lambda env, state: Outcome.ok(None, state.with_session(session)))


def use_session(f: Callable[[Any], A]) -> Computation[A]:
    """Apply `f` to the current session and return its value."""
    return Computation(lambda env, state: Outcome.ok(f(state.session), state))


def _emit(level: LogLevel, message: str) -> Computation[None]:
    return Computation(
        lambda env, state: Outcome.ok(None, state.emit(state.entry(level, message)))
    )


def info(message: str) -> Computation[None]:
    return _emit(LogLevel.INFO, message)


def warn(message: str) -> Computation[None]:
    return _emit(LogLevel.WARN, message)


def error(message: str) -> Computation[None]:
    """Log at ERROR level; this does not fault the computation."""
    return _emit(LogLevel.ERROR, message)


# ──────────────────────── Combinators ────────────────────────


def or_else(
    lhs: BaseComputation[A],
    handler: Callable[[tuple[StepError, ...]], BaseComputation[A]],
) -> BaseComputation[A]:
    return alternative(lhs, handler)


def context(name: str, inner: BaseComputation[A]) -> BaseComputation[A]:
    """
    Run `inner` inside a named scope.

    Entering writes a scope line at the current depth; entries emitted
    inside are one level deeper. If `inner` faults, the errors it added are
    tagged with the scope path, outermost first:

        context("Chrome", context("Start Page", fail("element not found")))
        # -> "element not found (Chrome → Start Page)"
    """

    def program(env: Any, state: State) -> Generator[Request, Any, Outcome[A]]:
        path = state.context + (name,)
        entered = state.emit(state.entry(LogLevel.CONTEXT, name, scope=path)).push_context(name)
        outcome = yield Invoke(inner, env, entered)
        restored = outcome.state.with_context(state.context)
        if not outcome.is_faulted:
            return Outcome.ok(outcome.value(), restored)
        added = new_errors(entered, outcome.state)
        kept = outcome.state.errors[: len(outcome.state.errors) - len(added)]
        tagged = kept + tuple(e.with_breadcrumb(path) for e in added)
        return Outcome(restored.with_errors(tagged))

    return type(inner)(program)


def wait_until(
    computation: BaseComputation[A],
    predicate: Callable[[A], bool] = lambda _: True,
    interval: Optional[float | timedelta] = None,
    timeout: Optional[float | timedelta] = None,
) -> BaseComputation[A]:
    """
    Poll `computation` until it succeeds and `predicate` holds on its value.

    Every attempt starts from the original input state. Between attempts the
    poll sleeps `interval` (without blocking the event loop in the async
    variants); once more than `timeout` has elapsed, the result is the input
    state carrying the first attempt's errors, the last attempt's errors and
    a final "Timed out". Defaults come from Settings.wait_interval and
    Settings.wait_timeout.
    """

    def program(env: Any, state: State) -> Generator[Request, Any, Outcome[A]]:
        settings = state.settings
        every = seconds(interval) if interval is not None else (
            settings.wait_interval if settings is not None else _DEFAULT_INTERVAL
        )
        budget = seconds(timeout) if timeout is not None else (
            settings.wait_timeout if settings is not None else _DEFAULT_TIMEOUT
        )
        started = time.monotonic()
        attempts = 0
        first: tuple[StepError, ...] = ()
        last: tuple[StepError, ...] = ()
        while True:
            outcome = yield Invoke(computation, env, state)
            attempts += 1
            if outcome.is_faulted:
                errors = new_errors(state, outcome.state)
            else:
                try:
                    if predicate(outcome.value()):
                        return outcome
                    errors = ()
                except Exception as e:
                    errors = (StepError.of(e),)
            if attempts == 1:
                first = errors
            else:
                last = errors

            yield Sleep(every)
            elapsed = time.monotonic() - started
            if elapsed > budget:
                log.debug("wait_until.timed_out", attempts=attempts, elapsed=round(elapsed, 3))
                retained = state.errors + first + last + (StepError.timed_out(),)
                return Outcome(state.with_errors(retained))

    return type(computation)(program)


def sequence(*computations: BaseComputation[Any]) -> BaseComputation[list[Any]]:
    """Run computations in order, collecting their values; stop at a fault."""
    if not computations:
        return Computation.pure([])

    def program(env: Any, state: State) -> Generator[Request, Any, Outcome[list[Any]]]:
        values: list[Any] = []
        current = state
        for computation in computations:
            outcome = yield Invoke(computation, env, current)
            if outcome.is_faulted:
                return outcome.cast_error()
            values.append(outcome.value())
            current = outcome.state
        return Outcome.ok(values, current)

    return join(*computations)(program)
