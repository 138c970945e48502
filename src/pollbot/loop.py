from __future__ import annotations

import signal
import time
from contextlib import aclosing
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

import anyio
from anyio.abc import TaskGroup

from .commands import CommandDeps, register_commands
from .dispatcher import Dispatcher
from .logging import get_logger
from .settings import PollbotSettings
from .store import BotStore, autosave
from .telegram.api_schemas import Message, Update
from .telegram.backoff import BackoffPolicy
from .telegram.client import BotClient, TelegramClient
from .telegram.outcome import Failure
from .telegram.parse import is_command, parse_slash_command

logger = get_logger(__name__)

__all__ = ["CommandCooldown", "LoopContext", "handle_update", "poll_updates", "run_main_loop"]

SHUTDOWN_NOTICE = "Bot is shutting down"
COOLDOWN_NOTICE = "Please wait a moment before sending another command."
ALLOWED_UPDATES = ["message", "callback_query"]


@dataclass(slots=True)
class CommandCooldown:
    """Per-chat minimum spacing between commands; zero disables it."""

    seconds: float
    clock: Callable[[], float] = time.monotonic
    _last: dict[int, float] = field(default_factory=dict)

    def allow(self, chat_id: int) -> bool:
        if self.seconds <= 0:
            return True
        now = self.clock()
        last = self._last.get(chat_id)
        if last is not None and now - last < self.seconds:
            return False
        self._last[chat_id] = now
        return True


@dataclass(slots=True)
class LoopContext:
    client: BotClient
    dispatcher: Dispatcher
    store: BotStore
    cooldown: CommandCooldown
    task_group: TaskGroup
    admin_id: int | None = None


async def poll_updates(
    client: BotClient,
    *,
    offset: int | None = None,
    timeout_s: int = 30,
    cooldown_s: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[Update]:
    """Yield updates forever, advancing the offset past each one.

    A failed fetch is logged and retried after ``cooldown_s``.
    """
    while True:
        outcome = await client.get_updates(
            offset=offset, timeout_s=timeout_s, allowed_updates=ALLOWED_UPDATES
        )
        if isinstance(outcome, Failure):
            logger.error(
                "loop.poll_failed",
                kind=outcome.kind.value,
                error=outcome.message,
                cooldown_s=cooldown_s,
            )
            await sleep(cooldown_s)
            continue
        for update in outcome.value:
            offset = update.update_id + 1
            yield update


async def _best_effort_send(client: BotClient, chat_id: int, text: str) -> None:
    outcome = await client.send_message(chat_id, text)
    if isinstance(outcome, Failure):
        logger.info("loop.notice_failed", chat_id=chat_id, error=outcome.message)


def _forward_shared_items(ctx: LoopContext, message: Message) -> None:
    if ctx.admin_id is None:
        return
    if message.contact is not None:
        contact = message.contact
        lines = [
            f"Contact from chat {message.chat.id}:",
            f"phone: {contact.phone_number}",
            f"first_name: {contact.first_name}",
        ]
        if contact.last_name:
            lines.append(f"last_name: {contact.last_name}")
        if contact.user_id is not None:
            lines.append(f"user_id: {contact.user_id}")
        ctx.task_group.start_soon(
            _best_effort_send, ctx.client, ctx.admin_id, "\n".join(lines)
        )
    if message.location is not None:
        loc = message.location
        body = (
            f"Location from chat {message.chat.id}:\n"
            f"lat: {loc.latitude}\nlon: {loc.longitude}"
        )
        ctx.task_group.start_soon(_best_effort_send, ctx.client, ctx.admin_id, body)


async def handle_update(ctx: LoopContext, update: Update) -> None:
    message = update.message
    if message is not None:
        chat_id = message.chat.id
        await ctx.store.add_user(chat_id)
        if is_command(message.text):
            command, _ = parse_slash_command(message.text or "")
            if command is not None:
                await ctx.store.bump(command)
            if not ctx.cooldown.allow(chat_id):
                logger.info("loop.command_cooldown", chat_id=chat_id)
                ctx.task_group.start_soon(
                    _best_effort_send, ctx.client, chat_id, COOLDOWN_NOTICE
                )
                return
        logger.info("loop.message", chat_id=chat_id, text=message.text or "")
        _forward_shared_items(ctx, message)
        ctx.dispatcher.dispatch(message)
    if update.callback_query is not None:
        ctx.dispatcher.dispatch_callback(update.callback_query)


async def _wait_for_shutdown(scope: anyio.CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("loop.shutdown_signal", signal=signal.Signals(signum).name)
            scope.cancel()
            return


def build_dispatcher(
    client: BotClient, settings: PollbotSettings, store: BotStore
) -> Dispatcher:
    dispatcher = Dispatcher(
        client,
        concurrency_limit=settings.concurrency_limit,
        operator_id=settings.admin_id,
        handler_timeout_s=settings.handler_timeout_s,
    )
    register_commands(
        dispatcher,
        CommandDeps(
            store=store,
            admin_id=settings.admin_id,
            upload_path=settings.upload_path,
        ),
    )
    return dispatcher


async def _serve(
    settings: PollbotSettings, client: BotClient, store: BotStore
) -> None:
    dispatcher = build_dispatcher(client, settings, store)
    cooldown = CommandCooldown(settings.command_cooldown_s)
    async with dispatcher, anyio.create_task_group() as tg:
        tg.start_soon(autosave, store, settings.autosave_interval_s)
        ctx = LoopContext(
            client=client,
            dispatcher=dispatcher,
            store=store,
            cooldown=cooldown,
            task_group=tg,
            admin_id=settings.admin_id,
        )
        logger.info(
            "loop.started",
            commands=dispatcher.registry.command_ids(),
            concurrency_limit=settings.concurrency_limit,
        )
        with anyio.CancelScope() as poll_scope:
            tg.start_soon(_wait_for_shutdown, poll_scope)
            updates = poll_updates(
                client,
                timeout_s=settings.poll_timeout_s,
                cooldown_s=settings.poll_cooldown_s,
            )
            async with aclosing(updates):
                async for update in updates:
                    await handle_update(ctx, update)
        if settings.admin_id is not None:
            await _best_effort_send(client, settings.admin_id, SHUTDOWN_NOTICE)
        dispatcher.cancel()
        tg.cancel_scope.cancel()


async def run_main_loop(
    settings: PollbotSettings, *, client: BotClient | None = None
) -> None:
    """Poll and dispatch until SIGINT/SIGTERM, then snapshot the store.

    Without ``client`` a :class:`TelegramClient` is built from ``settings`` and
    closed on exit; a supplied client is left open.
    """
    store = BotStore.load(settings.data_dir)
    if client is not None:
        await _serve(settings, client, store)
    else:
        policy = BackoffPolicy(
            base_delay=settings.retry.base_delay_s,
            max_attempts=settings.retry.max_attempts,
        )
        async with TelegramClient(settings.token, policy=policy) as owned:
            await _serve(settings, owned, store)
    await store.snapshot()
    logger.info("loop.stopped")
