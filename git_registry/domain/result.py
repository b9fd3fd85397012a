"""
Explicit success/failure values returned by the registry core.

Expected outcomes (a missing package, a tag that cannot be resolved, a git
command exiting non-zero) are data, not exceptions. Every core operation
returns either ``Ok(value)`` or ``Err(error)`` and callers branch on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))

    def map_err(self, fn: Callable) -> "Ok[T]":
        return self

    def and_then(self, fn: Callable[[T], "Result[U, E]"]) -> "Result[U, E]":
        return fn(self.value)

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def map(self, fn: Callable) -> "Err[E]":
        return self

    def map_err(self, fn: Callable[[E], F]) -> "Err[F]":
        return Err(fn(self.error))

    def and_then(self, fn: Callable) -> "Err[E]":
        return self

    def unwrap(self):
        raise RuntimeError(f"unwrap() called on Err: {self.error}")


Result = Union[Ok[T], Err[E]]
