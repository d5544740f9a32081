"""
Result railway — explicit success/failure values at adapter boundaries.

A Result[T] is either Success(value) or Failure(FailureDescription).
Store adapters return Result from their write operations so database
failures travel as values; the core operations then either chain them
(see pipeline.py) or turn them back into the original typed exception
with get_or_raise().

    ┌──────────┐  flat_map   ┌──────────┐  flat_map   ┌──────────┐
    │  parse   │──Success────│  insert  │──Success────│  attach  │──→ Result[T]
    └────┬─────┘             └────┬─────┘             └────┬─────┘
         │ Failure                │ Failure                │ Failure
         └────────────────────────┴────────────────────────┴──→ Result[T]
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Generic, NoReturn, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@unique
class ErrorCode(Enum):
    """
    Failure categories, grouped by the HTTP status a caller would map them to.

    Every SmimeError subclass declares one of these as its `code`.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input cannot be decoded (malformed certificate or PEM block) (→ 400)."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """Private key secret rejected (→ 401)."""

    NOT_FOUND = "NOT_FOUND"
    """No usable certificate for a key, sender, or recipient (→ 404)."""

    BUSINESS_RULE_ERROR = "BUSINESS_RULE_ERROR"
    """Certificate invariant violated: duplicate fingerprint, expired (→ 409)."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Cryptographic backend failure (→ 500)."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """Storage connectivity or query failure (→ 500)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Settings missing or invalid (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional exception, timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "No signing certificate")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def reraise(self) -> NoReturn:
        """
        Raise the captured exception unchanged.

        Failures built without an exception raise RuntimeError carrying the message.
        """
        if self.exception is not None:
            raise self.exception
        raise RuntimeError(f"{self.code.value}: {self.message}")


class Result(Generic[T]):
    """
    Success(value) or Failure(FailureDescription).

    All transformations short-circuit on failure:

        >>> Result.success(2).map(lambda x: x * 2).value()
        4
        >>> Result.failure(ErrorCode.NOT_FOUND, "gone").map(lambda x: x * 2).is_failure()
        True
    """

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Extract the success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Extract the failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v!r}")
        raise TypeError("unreachable")  # pragma: no cover

    def get_or_raise(self) -> T:
        """
        Extract the success value, or re-raise the failure's original exception.

        This is the boundary back into exception-raising code.
        """
        match self:
            case Success(v):
                return v
            case Failure(err):
                err.reraise()
        raise TypeError("unreachable")  # pragma: no cover

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Chain a Result-returning function. Short-circuits on failure."""
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run a computation that may raise and capture the outcome as a Result.

        Exceptions that carry their own ErrorCode (SmimeError subclasses) keep
        it, along with their own message; anything else is filed under
        `error_code` with `error_message`.
        """
        try:
            return Result.success(computation())
        except Exception as e:
            own_code = getattr(e, "code", None)
            if isinstance(own_code, ErrorCode):
                return Result.failure(own_code, str(e), e)
            return Result.failure(error_code, error_message, e)

    def __bool__(self) -> bool:
        return self.is_success()


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    """The success track."""

    _value: T

    def __repr__(self) -> str:
        return f"Success({self._value!r})"


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    """The failure track."""

    _error: FailureDescription

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"


Success.__match_args__ = ("_value",)
Failure.__match_args__ = ("_error",)
