from __future__ import annotations

from .backoff import BackoffPolicy, parse_retry_after
from .client import BotClient, TelegramClient
from .outcome import (
    CallError,
    CallOutcome,
    ErrorKind,
    Failure,
    HandlerError,
    HandlerFault,
    Success,
)
from .types import CommandEvent

__all__ = [
    "BackoffPolicy",
    "BotClient",
    "CallError",
    "CallOutcome",
    "CommandEvent",
    "ErrorKind",
    "Failure",
    "HandlerError",
    "HandlerFault",
    "Success",
    "TelegramClient",
    "parse_retry_after",
]
