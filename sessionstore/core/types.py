"""
Core Types for the Session Store

Result values for fallible calls, and the expiration arithmetic
shared by every backend.

Every storage call returns ``Ok(value)`` or ``Err(error)``; nothing
on the request path raises. Expiration is a timedelta in memory and
a whole number of seconds in the table: storing truncates toward
zero, loading multiplies exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


# =============================================================================
# RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A successful outcome carrying ``value``."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Transform the carried value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain another fallible step onto this one."""
        return fn(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """A failed outcome carrying ``error``; map and flat_map pass it through."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        """Unwrapping a failure is a bug in the caller."""
        raise RuntimeError(f"unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], Any]) -> Err[E]:
        return self

    def flat_map(self, fn: Callable[[Any], Any]) -> Err[E]:
        return self


Result = Union[Ok[T], Err[E]]


# =============================================================================
# EXPIRATION DURATIONS
# =============================================================================
ZERO_DURATION: timedelta = timedelta(0)

_MICROS_PER_SECOND: int = 1_000_000


def duration_to_seconds(duration: timedelta) -> int:
    """
    Convert a duration to whole seconds for storage.

    Truncates toward zero, matching integer division:
    1.9s -> 1, 0.5s -> 0. Computed on integer microseconds
    so large durations never lose precision to float rounding.
    """
    micros = (
        (duration.days * 86_400 + duration.seconds) * _MICROS_PER_SECOND
        + duration.microseconds
    )
    if micros < 0:
        return -((-micros) // _MICROS_PER_SECOND)
    return micros // _MICROS_PER_SECOND


def seconds_to_duration(seconds: int) -> timedelta:
    """Reconstitute a stored seconds count as an exact timedelta."""
    return timedelta(seconds=int(seconds))
