from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable

from .telegram.api_schemas import CallbackQuery
from .telegram.client import BotClient
from .telegram.parse import normalize_command
from .telegram.types import CommandEvent

__all__ = ["CallbackHandler", "CommandHandler", "CommandRegistry"]

CommandHandler = Callable[[BotClient, CommandEvent], Awaitable[None]]
CallbackHandler = Callable[[BotClient, CallbackQuery], Awaitable[None]]


class CommandRegistry:
    """Command name -> handlers, plus handlers for every callback query.

    Handlers are kept in registration order. Once frozen the registry is
    read-only, so concurrent lookups need no locking.
    """

    def __init__(self) -> None:
        self._commands: defaultdict[str, list[CommandHandler]] = defaultdict(list)
        self._catch_all: list[CallbackHandler] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("command registry is frozen; register before dispatching")

    def register(self, name: str, handler: CommandHandler) -> None:
        self._ensure_mutable()
        key = normalize_command(name)
        if not key:
            raise ValueError(f"invalid command name {name!r}")
        self._commands[key].append(handler)

    def register_catch_all(self, handler: CallbackHandler) -> None:
        self._ensure_mutable()
        self._catch_all.append(handler)

    def lookup(self, name: str) -> tuple[CommandHandler, ...]:
        return tuple(self._commands.get(normalize_command(name), ()))

    def catch_all(self) -> tuple[CallbackHandler, ...]:
        return tuple(self._catch_all)

    def command_ids(self) -> list[str]:
        return sorted(self._commands)
