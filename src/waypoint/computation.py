"""
Computations — lazy, composable descriptions of fallible steps over State.

Four variants, distinguished by two capabilities:

                        environment-free        environment-parameterised
    synchronous         Computation             EnvComputation
    may suspend         AsyncComputation        AsyncEnvComputation

All four wrap the same internal contract, a *program*:

    program(env, state) -> Outcome                 (plain step)
                         | Awaitable[Outcome]      (suspending step)
                         | Generator[Request, Outcome, Outcome]

Generator programs describe composition: they yield Invoke(...) to run a
sub-computation and receive its Outcome, or Sleep(...) to pause. Two drivers
interpret them — one synchronously, one with await — so bind, map, the
alternative and every other combinator is written once and works for every
variant. Inside an async run every sub-computation goes through the async
driver: plain sync steps return without ever suspending, and the sleeps of
sync combinators such as wait_until become non-blocking.

Every invocation is exception-opaque: whatever a step raises becomes a
StepError on the invocation's input state and never crosses the boundary.

    >>> from waypoint import pure
    >>> state, value = pure(21).map(lambda x: x * 2).run()
    >>> value
    42

Nothing runs until invoke()/run() is called.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Generator,
    Generic,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

import structlog

from waypoint.config import Settings
from waypoint.failure import (
    InvalidCompositionError,
    MissingEnvironmentError,
    StepError,
)
from waypoint.state import NO_ENV, Outcome, State

A = TypeVar("A")
B = TypeVar("B")

log = structlog.get_logger()


# ──────────────────────── Program requests ────────────────────────


@dataclass(frozen=True, slots=True)
class Invoke:
    """Ask the driver to invoke a sub-computation and send back its Outcome."""

    computation: BaseComputation[Any]
    env: Any
    state: State


@dataclass(frozen=True, slots=True)
class Sleep:
    """Ask the driver to pause; blocking when sync, non-blocking when async."""

    seconds: float


Request = Union[Invoke, Sleep]
ProgramResult = Union[Outcome[Any], Awaitable[Outcome[Any]], Generator[Request, Any, Outcome[Any]]]
Program = Callable[[Any, State], ProgramResult]

ErrorsLike = Union[StepError, BaseException, str, Sequence[StepError]]


# ──────────────────────── Drivers ────────────────────────


def _checked(value: Any) -> Outcome[Any]:
    if not isinstance(value, Outcome):
        raise TypeError(f"A step must produce an Outcome, got {type(value).__name__}")
    return value


def _require_env(computation: BaseComputation[Any], env: Any) -> None:
    if computation.needs_env and env is NO_ENV:
        raise MissingEnvironmentError(
            f"{type(computation).__name__} requires an environment; "
            "run it with one, bind it with bind(f, env=True), or provide(env) / "
            "with_env() the enclosing computation"
        )


def invoke_sync(computation: BaseComputation[A], env: Any, state: State) -> Outcome[A]:
    """Invoke without suspending; any exception becomes a fault on `state`."""
    try:
        _require_env(computation, env)
        return _run_sync(computation, env, state)
    except Exception as e:
        return Outcome.faulted(state, e)


def _run_sync(computation: BaseComputation[A], env: Any, state: State) -> Outcome[A]:
    produced = computation._program(env, state)
    if isinstance(produced, Outcome):
        return produced
    if inspect.isawaitable(produced):
        if inspect.iscoroutine(produced):
            produced.close()
        raise InvalidCompositionError(
            "Suspending step reached while running synchronously; "
            "lift the enclosing computation with to_async()"
        )
    if not inspect.isgenerator(produced):
        return _checked(produced)

    gen = produced
    reply: Any = None
    try:
        while True:
            try:
                request = gen.send(reply)
            except StopIteration as stop:
                return _checked(stop.value)
            match request:
                case Invoke(sub, sub_env, sub_state):
                    reply = invoke_sync(sub, sub_env, sub_state)
                case Sleep(seconds):
                    time.sleep(seconds)
                    reply = None
                case _:
                    raise TypeError(f"Unknown program request: {request!r}")
    finally:
        gen.close()


async def invoke_async(computation: BaseComputation[A], env: Any, state: State) -> Outcome[A]:
    """Invoke, awaiting suspending steps; any exception becomes a fault on `state`."""
    try:
        _require_env(computation, env)
        return await _run_async(computation, env, state)
    except Exception as e:
        return Outcome.faulted(state, e)


async def _run_async(computation: BaseComputation[A], env: Any, state: State) -> Outcome[A]:
    produced = computation._program(env, state)
    if isinstance(produced, Outcome):
        return produced
    if inspect.isawaitable(produced):
        return _checked(await produced)
    if not inspect.isgenerator(produced):
        return _checked(produced)

    gen = produced
    reply: Any = None
    try:
        while True:
            try:
                request = gen.send(reply)
            except StopIteration as stop:
                return _checked(stop.value)
            match request:
                case Invoke(sub, sub_env, sub_state):
                    reply = await invoke_async(sub, sub_env, sub_state)
                case Sleep(seconds):
                    await asyncio.sleep(seconds)
                    reply = None
                case _:
                    raise TypeError(f"Unknown program request: {request!r}")
    finally:
        gen.close()


# ──────────────────────── Helpers ────────────────────────


def as_computation(value: Any) -> BaseComputation[Any]:
    if not isinstance(value, BaseComputation):
        raise TypeError(f"Expected a computation, got {type(value).__name__}")
    return value


def as_errors(errors: ErrorsLike) -> tuple[StepError, ...]:
    """Normalise the result of an error-mapping function to a tuple."""
    match errors:
        case StepError() | BaseException() | str():
            return (StepError.of(errors),)
        case _:
            return tuple(StepError.of(e) for e in errors)


def new_errors(before: State, after: State) -> tuple[StepError, ...]:
    """Errors `after` gained relative to `before`."""
    n = len(before.errors)
    if after.errors[:n] == before.errors:
        return after.errors[n:]
    return after.errors


def seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def variant(suspends: bool, needs_env: bool) -> type[BaseComputation[Any]]:
    return _VARIANTS[(suspends, needs_env)]


def join(*computations: BaseComputation[Any]) -> type[BaseComputation[Any]]:
    """Smallest variant able to run all the given computations."""
    return variant(
        any(c.suspends for c in computations),
        any(c.needs_env for c in computations),
    )


# ──────────────────────── Base ────────────────────────


class BaseComputation(Generic[A]):
    """
    Shared combinators for the four variants.

    Subclasses only fix the two capability flags and the invoke/run
    signatures; every method here builds a new program and wraps it in the
    appropriate variant.
    """

    suspends: ClassVar[bool] = False
    needs_env: ClassVar[bool] = False

    __slots__ = ("_program",)

    def __init__(self, program: Program) -> None:
        self._program = program

    # ──────────────────────── Construction ────────────────────────

    @classmethod
    def pure(cls, value: A) -> BaseComputation[A]:
        """Always succeeds with `value`; the state passes through untouched."""
        return cls(lambda env, state: Outcome.ok(value, state))

    @classmethod
    def fail(cls, error: StepError | BaseException | str) -> BaseComputation[Any]:
        """Always faults, keeping the given state and appending `error`."""
        err = StepError.of(error)
        return cls(lambda env, state: Outcome.faulted(state, err))

    # ──────────────────────── Monad ────────────────────────

    def bind(
        self,
        f: Callable[[A], BaseComputation[B]],
        *,
        suspend: bool = False,
        env: bool = False,
    ) -> BaseComputation[B]:
        """
        Sequence with a continuation chosen from this step's value.

        On a fault, `f` is never called and the fault flows on unchanged.
        Otherwise the continuation runs against the updated state.

        The continuation is only known once this step has a value, so the
        result keeps this variant unless told otherwise. Pass env=True when
        `f` returns an environment-parameterised computation and
        suspend=True when it returns a suspending one:

            step(open_browser).bind(lambda driver: ask(), env=True)
            pure(url).bind(navigate_async, suspend=True)

        Async variants accept sync continuations as they are.
        """
        source = self

        def program(env_value: Any, state: State) -> Generator[Request, Any, Outcome[B]]:
            outcome = yield Invoke(source, env_value, state)
            if outcome.is_faulted:
                return outcome.cast_error()
            try:
                following = as_computation(f(outcome.value()))
            except Exception as e:
                return Outcome.faulted(outcome.state, e)
            return (yield Invoke(following, env_value, outcome.state))

        return variant(self.suspends or suspend, self.needs_env or env)(program)

    def map(self, f: Callable[[A], B]) -> BaseComputation[B]:
        """Transform the success value; the state is preserved."""
        source = self

        def program(env: Any, state: State) -> Generator[Request, Any, Outcome[B]]:
            outcome = yield Invoke(source, env, state)
            if outcome.is_faulted:
                return outcome.cast_error()
            try:
                return Outcome.ok(f(outcome.value()), outcome.state)
            except Exception as e:
                return Outcome.faulted(outcome.state, e)

        return type(self)(program)

    def then(self, following: BaseComputation[B]) -> BaseComputation[B]:
        """Sequence, discarding this step's value."""
        cls = join(self, following)
        return cls(self.bind(lambda _: following)._program)

    def map_fail(
        self, f: Callable[[tuple[StepError, ...]], ErrorsLike]
    ) -> BaseComputation[A]:
        """Replace the accumulated errors of a faulted outcome."""
        return self.bimap(lambda value: value, f)

    def bimap(
        self,
        succ: Callable[[A], B],
        fail: Callable[[tuple[StepError, ...]], ErrorsLike],
    ) -> BaseComputation[B]:
        """Map the value on success, or the error sequence on failure."""
        source = self

        def program(env: Any, state: State) -> Generator[Request, Any, Outcome[B]]:
            outcome = yield Invoke(source, env, state)
            try:
                if outcome.is_faulted:
                    return Outcome(outcome.state.with_errors(as_errors(fail(outcome.errors))))
                return Outcome.ok(succ(outcome.value()), outcome.state)
            except Exception as e:
                return Outcome.faulted(outcome.state, e)

        return type(self)(program)

    # ──────────────────────── Alternative ────────────────────────

    def __or__(self, other: Any) -> BaseComputation[A]:
        return alternative(self, other)

    def or_else(
        self, handler: Callable[[tuple[StepError, ...]], BaseComputation[A]]
    ) -> BaseComputation[A]:
        return alternative(self, handler)

    # ──────────────────────── Conversions ────────────────────────

    def to_async(self) -> BaseComputation[A]:
        """Same program, driven asynchronously; never adds a suspension."""
        if self.suspends:
            return self
        return variant(True, self.needs_env)(self._program)

    def with_env(self) -> BaseComputation[A]:
        """Accept (and thread) an environment; env-free steps ignore it."""
        if self.needs_env:
            return self
        return variant(self.suspends, True)(self._program)

    def provide(self, env: Any) -> BaseComputation[A]:
        """Fix the environment, giving the environment-free variant."""
        if not self.needs_env:
            return self
        source = self

        def program(_env: Any, state: State) -> Generator[Request, Any, Outcome[A]]:
            return (yield Invoke(source, env, state))

        return variant(self.suspends, False)(program)

    def __repr__(self) -> str:
        name = getattr(self._program, "__qualname__", type(self._program).__name__)
        return f"{type(self).__name__}({name})"


def _begin(settings: Optional[Settings]) -> tuple[State, float]:
    log.debug(
        "run.started",
        log_subscribers=settings.log_stream.subscriber_count if settings is not None else 0,
    )
    return State.empty(settings), time.monotonic()


def _finish(computation: BaseComputation[A], outcome: Outcome[A], started: float) -> tuple[State, Optional[A]]:
    log.debug(
        "run.completed",
        variant=type(computation).__name__,
        faulted=outcome.is_faulted,
        errors=len(outcome.errors),
        log_entries=len(outcome.state.log),
        elapsed=round(time.monotonic() - started, 3),
    )
    return outcome.state, outcome.raw_value()


def _raise_on_error(result: tuple[State, Optional[A]]) -> tuple[State, Optional[A]]:
    state, _ = result
    if state.is_faulted:
        log.debug("run.raising", errors=[e.message for e in state.errors])
    state.raise_if_faulted()
    return result


# ──────────────────────── Variants ────────────────────────


class Computation(BaseComputation[A]):
    """Synchronous, environment-free computation."""

    __slots__ = ()

    def invoke(self, state: State) -> Outcome[A]:
        return invoke_sync(self, NO_ENV, state)

    def run(self, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        """
        Run from an empty state; never raises for a reported failure.

        Without settings nothing is streamed and waits use the field defaults
        of Settings; the environment is not read.
        """
        state, started = _begin(settings)
        return _finish(self, self.invoke(state), started)

    def run_and_raise(self, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        """Run, raising RunFailedError if the terminal state is faulted."""
        return _raise_on_error(self.run(settings))


class EnvComputation(BaseComputation[A]):
    """Synchronous computation that reads an injected environment."""

    needs_env = True

    __slots__ = ()

    def invoke(self, env: Any, state: State) -> Outcome[A]:
        return invoke_sync(self, env, state)

    def run(self, env: Any, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        state, started = _begin(settings)
        return _finish(self, self.invoke(env, state), started)

    def run_and_raise(self, env: Any, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        return _raise_on_error(self.run(env, settings))


class AsyncComputation(BaseComputation[A]):
    """Environment-free computation whose steps may suspend."""

    suspends = True

    __slots__ = ()

    async def invoke(self, state: State) -> Outcome[A]:
        return await invoke_async(self, NO_ENV, state)

    async def run(self, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        state, started = _begin(settings)
        return _finish(self, await self.invoke(state), started)

    async def run_and_raise(self, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        return _raise_on_error(await self.run(settings))


class AsyncEnvComputation(BaseComputation[A]):
    """Environment-parameterised computation whose steps may suspend."""

    suspends = True
    needs_env = True

    __slots__ = ()

    async def invoke(self, env: Any, state: State) -> Outcome[A]:
        return await invoke_async(self, env, state)

    async def run(self, env: Any, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        state, started = _begin(settings)
        return _finish(self, await self.invoke(env, state), started)

    async def run_and_raise(self, env: Any, settings: Optional[Settings] = None) -> tuple[State, Optional[A]]:
        return _raise_on_error(await self.run(env, settings))


_VARIANTS: dict[tuple[bool, bool], type[BaseComputation[Any]]] = {
    (False, False): Computation,
    (False, True): EnvComputation,
    (True, False): AsyncComputation,
    (True, True): AsyncEnvComputation,
}


# ──────────────────────── Alternative & lift ────────────────────────


def alternative(
    lhs: BaseComputation[A],
    rhs: BaseComputation[A] | Callable[[tuple[StepError, ...]], BaseComputation[A]],
) -> BaseComputation[A]:
    """
    Try `lhs`; if it faults, try `rhs` from the same starting state.

    The failed branch's effects (log, session, context) are discarded.
    If `rhs` succeeds it stands alone; if it also faults, the result is the
    starting state carrying the errors of both branches, left first.
    `rhs` may also be a handler receiving the left branch's errors and
    returning the fallback computation.
    """
    if isinstance(rhs, BaseComputation):
        fallback: Callable[[tuple[StepError, ...]], BaseComputation[A]] = lambda _: rhs
        cls = join(lhs, rhs)
    elif callable(rhs):
        fallback = rhs
        cls = type(lhs)
    else:
        raise TypeError(f"Cannot use {type(rhs).__name__} as an alternative")

    def program(env: Any, state: State) -> Generator[Request, Any, Outcome[A]]:
        left = yield Invoke(lhs, env, state)
        if not left.is_faulted:
            return left
        left_errors = new_errors(state, left.state)
        try:
            recovery = as_computation(fallback(left_errors))
        except Exception as e:
            right = Outcome.faulted(state, e)
        else:
            right = yield Invoke(recovery, env, state)
        if not right.is_faulted:
            return right
        merged = state.errors + left_errors + new_errors(state, right.state)
        return Outcome(state.with_errors(merged))

    return cls(program)


def lift(
    value: Any,
    *,
    suspend: Optional[bool] = None,
    env: Optional[bool] = None,
) -> BaseComputation[Any]:
    """
    Convert to the requested variant.

    Computations are converted (sync → async, env-free → env); failure
    records and exceptions become failing computations; any other value
    becomes a pure one. Conversions that cannot be total (async → sync,
    env → env-free without a value) raise TypeError.
    """
    match value:
        case BaseComputation():
            computation = value
        case StepError() | BaseException():
            computation = Computation.fail(value)
        case _:
            computation = Computation.pure(value)

    if suspend is True:
        computation = computation.to_async()
    elif suspend is False and computation.suspends:
        raise TypeError("Cannot lift a suspending computation to a synchronous one")

    if env is True:
        computation = computation.with_env()
    elif env is False and computation.needs_env:
        raise TypeError("Use provide(env) to remove an environment requirement")

    return computation


def to_async(computation: BaseComputation[A]) -> BaseComputation[A]:
    return computation.to_async()
