from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import partial

import anyio
from anyio.abc import TaskGroup

from .logging import get_logger
from .registry import CallbackHandler, CommandHandler, CommandRegistry
from .telegram.api_schemas import CallbackQuery, Message, Update
from .telegram.client import BotClient
from .telegram.outcome import Failure, HandlerError, HandlerFault
from .telegram.parse import is_command, parse_slash_command
from .telegram.types import CommandEvent

logger = get_logger(__name__)

__all__ = ["Dispatcher"]

FAULT_MARKER = "[fault]"


class Dispatcher:
    """Fans incoming updates out to registered handlers.

    Each matched handler runs as its own task in a task group owned by the
    dispatcher. ``dispatch*`` only schedules work and never raises because of a
    handler: errors and faults are caught per task, logged, and reported to the
    operator chat when one is set. With a concurrency limit, each task holds one
    limiter token for the duration of its handler body.

    Use as an async context manager; leaving the block waits for in-flight
    handlers unless :meth:`cancel` was called first.
    """

    def __init__(
        self,
        client: BotClient,
        registry: CommandRegistry | None = None,
        *,
        concurrency_limit: int | None = None,
        operator_id: int | None = None,
        handler_timeout_s: float | None = None,
    ) -> None:
        self._client = client
        self._registry = registry if registry is not None else CommandRegistry()
        self._operator_id = operator_id
        self._handler_timeout_s = handler_timeout_s
        self._limit: int | None = None
        self._limiter: anyio.CapacityLimiter | None = None
        self._tg: TaskGroup | None = None
        self.set_concurrency_limit(concurrency_limit)

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        return self._tg is not None

    def register(self, name: str, handler: CommandHandler) -> None:
        self._registry.register(name, handler)

    def register_catch_all(self, handler: CallbackHandler) -> None:
        self._registry.register_catch_all(handler)

    def set_concurrency_limit(self, limit: int | None) -> None:
        if limit is not None and limit < 1:
            raise ValueError("concurrency limit must be at least 1")
        self._limit = limit
        if limit is None:
            self._limiter = None
        elif self._limiter is not None:
            self._limiter.total_tokens = limit
        elif self._tg is not None:
            self._limiter = anyio.CapacityLimiter(limit)

    def set_operator(self, chat_id: int | None) -> None:
        self._operator_id = chat_id

    async def __aenter__(self) -> Dispatcher:
        if self._tg is not None:
            raise RuntimeError("dispatcher is already running")
        self._registry.freeze()
        if self._limit is not None and self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self._limit)
        tg = anyio.create_task_group()
        await tg.__aenter__()
        self._tg = tg
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool | None:
        tg, self._tg = self._tg, None
        if tg is None:
            raise RuntimeError("dispatcher is not running")
        return await tg.__aexit__(exc_type, exc, tb)

    def cancel(self) -> None:
        if self._tg is not None:
            self._tg.cancel_scope.cancel()

    def dispatch_update(self, update: Update) -> None:
        if update.message is not None:
            self.dispatch(update.message)
        if update.callback_query is not None:
            self.dispatch_callback(update.callback_query)

    def dispatch(self, message: Message) -> None:
        if not is_command(message.text):
            return
        command, args_text = parse_slash_command(message.text or "")
        if command is None:
            return
        handlers = self._registry.lookup(command)
        if not handlers:
            logger.debug("dispatch.no_handlers", command=command)
            return
        event = CommandEvent(command=command, args_text=args_text, message=message)
        for handler in handlers:
            self._spawn(
                f"/{command}",
                message.chat.id,
                partial(handler, self._client, event),
            )

    def dispatch_callback(self, query: CallbackQuery) -> None:
        chat_id = query.message.chat.id if query.message is not None else None
        for handler in self._registry.catch_all():
            self._spawn("callback", chat_id, partial(handler, self._client, query))

    def _spawn(
        self, label: str, chat_id: int | None, run: Callable[[], Awaitable[None]]
    ) -> None:
        if self._tg is None:
            raise RuntimeError("dispatcher is not running; use `async with dispatcher`")
        self._tg.start_soon(self._supervise, label, chat_id, run, name=label)

    async def _supervise(
        self, label: str, chat_id: int | None, run: Callable[[], Awaitable[None]]
    ) -> None:
        limiter = self._limiter
        if limiter is None:
            report = await self._invoke(label, chat_id, run)
        else:
            async with limiter:
                report = await self._invoke(label, chat_id, run)
        if report is not None:
            await self._report(report)

    async def _invoke(
        self, label: str, chat_id: int | None, run: Callable[[], Awaitable[None]]
    ) -> str | None:
        where = label if chat_id is None else f"{label} (chat {chat_id})"
        try:
            with anyio.move_on_after(self._handler_timeout_s) as scope:
                await run()
        except HandlerError as exc:
            logger.warning(
                "dispatch.handler_error",
                handler=label,
                chat_id=chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return f"handler error in {where}: {exc}"
        except Exception as exc:
            fault = HandlerFault(where, exc)
            logger.exception(
                "dispatch.handler_fault",
                handler=label,
                chat_id=chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return f"{FAULT_MARKER} {fault}"
        if scope.cancelled_caught:
            logger.error(
                "dispatch.handler_timeout",
                handler=label,
                chat_id=chat_id,
                timeout_s=self._handler_timeout_s,
            )
            return (
                f"{FAULT_MARKER} handler fault in {where}: "
                f"timed out after {self._handler_timeout_s}s"
            )
        return None

    async def _report(self, text: str) -> None:
        operator_id = self._operator_id
        if operator_id is None:
            return
        try:
            outcome = await self._client.send_message(operator_id, text)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "dispatch.report_failed",
                operator_id=operator_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return
        if isinstance(outcome, Failure):
            logger.warning(
                "dispatch.report_failed",
                operator_id=operator_id,
                kind=outcome.kind.value,
                error=outcome.message,
            )
