"""
Explicit success/failure results for engine operations.

Scheduling, selection and history operations never let exceptions escape
their boundary; they return a Result carrying either a value or a
human-readable message, an error kind and the underlying cause.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERSISTENCE_FAILURE = "persistence_failure"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    ALREADY_DELIVERED = "already_delivered"


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    message: Optional[str] = None
    kind: Optional[ErrorKind] = None
    cause: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls,
        message: str,
        kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE,
        cause: Optional[BaseException] = None,
    ) -> "Result[T]":
        return cls(ok=False, message=message, kind=kind, cause=cause)

    @property
    def is_failure(self) -> bool:
        return not self.ok

    def map(self, transform: Callable[[T], U]) -> "Result[U]":
        if not self.ok:
            return Result(ok=False, message=self.message, kind=self.kind, cause=self.cause)
        return Result.success(transform(self.value))
