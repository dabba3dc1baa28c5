"""
Failure records — structured error information for faulted computations.

Every failure reported by a computation is a StepError. Errors accumulate:
a terminal state may carry several of them (both branches of an alternative,
or the attempts of a poll that timed out), so the engine works with tuples
of StepError rather than a single error value.

    StepError.of("element not found")           # explicit failure
    StepError.of(TimeoutError("driver hung"))   # step exception
    StepError.timed_out()                       # poll deadline exhausted

RunFailedError is the only exception the engine raises voluntarily — from
run_and_raise() and State.raise_if_faulted() — once a run has finished.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, unique
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from waypoint.state import State

BREADCRUMB_SEPARATOR = " → "


@unique
class ErrorCode(Enum):
    """
    Classification of a failure record.

    Aggregate failures (both branches of an alternative failed) have no code
    of their own: they are the union of the branches' records.
    """

    STEP_EXCEPTION = "STEP_EXCEPTION"
    """A step function raised; the record carries the exception."""

    EXPLICIT_FAILURE = "EXPLICIT_FAILURE"
    """A step or combinator deliberately produced a faulted result."""

    TIMEOUT = "TIMEOUT"
    """wait_until exhausted its wait budget."""

    MISSING_ENVIRONMENT = "MISSING_ENVIRONMENT"
    """An environment-parameterised computation was invoked without one."""

    INVALID_COMPOSITION = "INVALID_COMPOSITION"
    """A suspending step was reached while driving synchronously."""


class MissingEnvironmentError(RuntimeError):
    """Raised inside an invocation when a computation needs an environment."""


class InvalidCompositionError(TypeError):
    """Raised inside an invocation when an async step is driven synchronously."""


@dataclass(frozen=True, slots=True)
class StepError:
    """
    Immutable failure record: code, message, optional exception, breadcrumb.

    `breadcrumb` stays None until the innermost enclosing context tags the
    record; once tagged, the message already ends with the scope path and
    outer contexts leave it alone.

    >>> err = StepError.of("element not found")
    >>> err.code
    <ErrorCode.EXPLICIT_FAILURE: 'EXPLICIT_FAILURE'>
    >>> err.with_breadcrumb(("Chrome", "Start Page")).message
    'element not found (Chrome → Start Page)'
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    breadcrumb: Optional[tuple[str, ...]] = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC), compare=False, repr=False
    )

    @staticmethod
    def of(error: StepError | BaseException | str) -> StepError:
        """Normalise a message, exception or existing record into a StepError."""
        match error:
            case StepError():
                return error
            case BaseException():
                return StepError.from_exception(error)
            case str():
                return StepError(ErrorCode.EXPLICIT_FAILURE, error)
        raise TypeError(f"Cannot build a StepError from {type(error).__name__}")

    @staticmethod
    def from_exception(exception: BaseException) -> StepError:
        """Record an exception raised by a step, classified by its type."""
        return StepError(
            code=_map_exception_to_code(exception),
            message=_describe(exception),
            exception=exception,
        )

    @staticmethod
    def timed_out() -> StepError:
        return StepError(ErrorCode.TIMEOUT, "Timed out")

    @property
    def is_tagged(self) -> bool:
        return self.breadcrumb is not None

    def with_breadcrumb(self, scopes: Sequence[str]) -> StepError:
        """
        Append the scope path (outermost first) to the message.

        Records that are already tagged are returned unchanged, so only the
        innermost context around a failure names it.
        """
        if self.is_tagged:
            return self
        scopes = tuple(scopes)
        if not scopes:
            return self
        return replace(
            self,
            message=f"{self.message} ({BREADCRUMB_SEPARATOR.join(scopes)})",
            breadcrumb=scopes,
        )

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"

    def __str__(self) -> str:
        return self.message


class RunFailedError(Exception):
    """
    Raised by run_and_raise() when the terminal state is faulted.

    Carries the terminal state so callers can still inspect the log.
    """

    def __init__(self, state: State) -> None:
        self.state = state
        self.errors: tuple[StepError, ...] = tuple(state.errors)
        super().__init__(summarize(self.errors))
        if self.errors and self.errors[0].exception is not None:
            self.__cause__ = self.errors[0].exception


def summarize(errors: Sequence[StepError]) -> str:
    """One error renders as its message; several are joined with '; '."""
    match len(errors):
        case 0:
            return "No errors"
        case 1:
            return errors[0].message
        case n:
            return f"{n} errors: " + "; ".join(e.message for e in errors)


def _describe(exception: BaseException) -> str:
    text = str(exception)
    return text if text else type(exception).__name__


def _map_exception_to_code(exception: BaseException) -> ErrorCode:
    """Map a raised exception to the most appropriate ErrorCode."""
    match exception:
        case MissingEnvironmentError():
            return ErrorCode.MISSING_ENVIRONMENT
        case InvalidCompositionError():
            return ErrorCode.INVALID_COMPOSITION
        case _:
            return ErrorCode.STEP_EXCEPTION
