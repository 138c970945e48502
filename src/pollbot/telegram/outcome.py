from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")

__all__ = [
    "CallError",
    "CallOutcome",
    "ErrorKind",
    "Failure",
    "HandlerError",
    "HandlerFault",
    "Success",
]


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    RATE_LIMITED = "rate_limited"
    REMOTE_FAULT = "remote_fault"
    APPLICATION = "application"
    DECODE = "decode"
    IO = "io"


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    ok: ClassVar[bool] = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure:
    kind: ErrorKind
    message: str
    status: int | None = None

    ok: ClassVar[bool] = False

    def unwrap(self) -> NoReturn:
        raise CallError(self)


CallOutcome = Union[Success[T], Failure]


class HandlerError(Exception):
    """A handler failed in an expected way; reported, never escalated."""


class CallError(HandlerError):
    def __init__(self, failure: Failure) -> None:
        super().__init__(f"{failure.kind.value}: {failure.message}")
        self.failure = failure

    @property
    def kind(self) -> ErrorKind:
        return self.failure.kind


class HandlerFault(Exception):
    """Wraps an unexpected exception raised inside a handler task."""

    def __init__(self, label: str, cause: BaseException) -> None:
        super().__init__(
            f"handler fault in {label}: {cause.__class__.__name__}: {cause}"
        )
        self.label = label
        self.cause = cause
