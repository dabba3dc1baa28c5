"""
Generator notation for composing computations.

A generator function decorated with @do yields computations and receives
their values; the decorated function returns a computation that threads the
state through every yielded step and short-circuits on the first fault:

    @do
    def open_patient(name: str):
        yield info(f"Opening {name}")
        tile = yield find_tile(name)
        yield click(tile)
        return tile

    state, tile = open_patient("Jane Doe").run(settings)

@do builds a synchronous, environment-free Computation; pass suspend=True
and/or env=True to build one of the other variants, e.g. @do(suspend=True)
when any yielded step is async.

Do not wrap a yield in try/except to handle a failed step: faults arrive as
a short-circuit, not as an exception. Use alternative(), or_else() or
wait_until() instead.
"""

from __future__ import annotations

import inspect
from functools import wraps
from typing import Any, Callable, Generator, Optional, ParamSpec, TypeVar, overload

from waypoint.computation import BaseComputation, Invoke, Request, as_computation, variant
from waypoint.state import Outcome, State

P = ParamSpec("P")
T = TypeVar("T")

StepGenerator = Generator[BaseComputation[Any], Any, T]


def _build(
    func: Callable[P, StepGenerator[T]],
    suspend: bool,
    env: bool,
) -> Callable[P, BaseComputation[T]]:
    cls = variant(suspend, env)

    @wraps(func)
    def factory(*args: P.args, **kwargs: P.kwargs) -> BaseComputation[T]:
        def program(env_value: Any, state: State) -> Generator[Request, Any, Outcome[T]]:
            gen_or_value = func(*args, **kwargs)
            if not inspect.isgenerator(gen_or_value):
                return Outcome.ok(gen_or_value, state)

            gen = gen_or_value
            current = state
            sent: Any = None
            try:
                while True:
                    try:
                        yielded = gen.send(sent)
                    except StopIteration as stop:
                        return Outcome.ok(stop.value, current)
                    except Exception as e:
                        return Outcome.faulted(current, e)
                    outcome = yield Invoke(as_computation(yielded), env_value, current)
                    if outcome.is_faulted:
                        return outcome.cast_error()
                    sent, current = outcome.value(), outcome.state
            finally:
                gen.close()

        program.__qualname__ = func.__qualname__
        return cls(program)

    factory.original_generator = func  # type: ignore[attr-defined]
    return factory


@overload
def do(func: Callable[P, StepGenerator[T]], /) -> Callable[P, BaseComputation[T]]: ...


@overload
def do(
    *, suspend: bool = False, env: bool = False
) -> Callable[[Callable[P, StepGenerator[T]]], Callable[P, BaseComputation[T]]]: ...


def do(
    func: Optional[Callable[P, StepGenerator[T]]] = None,
    /,
    *,
    suspend: bool = False,
    env: bool = False,
) -> Any:
    """Turn a generator function into a computation factory."""
    if func is not None:
        return _build(func, suspend=False, env=False)

    def decorator(inner: Callable[P, StepGenerator[T]]) -> Callable[P, BaseComputation[T]]:
        return _build(inner, suspend=suspend, env=env)

    return decorator
