"""
Read results for fail-open queries.

Dashboard reads never raise on store failure. Instead they return either
``Ok(value)`` or ``Degraded(value, cause)`` where ``value`` is the documented
default, so callers can decide whether to surface a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Read succeeded."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    @property
    def cause(self) -> None:
        return None


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Read failed; ``value`` is the fallback default."""

    value: T
    cause: Exception

    @property
    def ok(self) -> bool:
        return False


ReadResult = Union[Ok[T], Degraded[T]]
