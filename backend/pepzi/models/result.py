"""
Explicit success/failure values for engine mutations.

Mutations return ``Ok(value)`` or ``Err(error)`` so that a rejected edit is a
value the caller inspects, not an exception used for control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pepzi.core.exceptions import ConflictError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ConflictError

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
