from __future__ import annotations

from typing import TYPE_CHECKING, Any

import anyio
import msgspec

from ..logging import get_logger
from ..telegram.api_schemas import CallbackQuery
from ..telegram.client import BotClient
from ..telegram.outcome import Failure
from ..telegram.types import CommandEvent

if TYPE_CHECKING:
    from . import CommandDeps

logger = get_logger(__name__)

# Longer operator notes go out as a document instead of a message.
MAX_INLINE_NOTE = 3500

MAIN_KEYBOARD: dict[str, Any] = {
    "keyboard": [
        [{"text": "/help"}, {"text": "/ping"}],
        [{"text": "/whoami"}],
    ],
    "one_time_keyboard": True,
}

START_KEYBOARD: dict[str, Any] = {
    "keyboard": [
        [
            {"text": "Share contact", "request_contact": True},
            {"text": "Share location", "request_location": True},
        ]
    ],
    "one_time_keyboard": True,
}

INLINE_KEYBOARD: dict[str, Any] = {
    "inline_keyboard": [
        [{"text": "Say hi", "callback_data": "echo Hello from button"}],
    ]
}

HELP_LINES = (
    "/start - start and register",
    "/help - this message",
    "/ping - pong",
    "/echo <text> - echo back text",
    "/whoami - show your id and username",
    "/keyboard - show custom keyboard",
    "/inline - show inline buttons example",
    "/set <k> <v> - save key/value",
    "/get <k> - get saved value",
    "/broadcast <text> - send to all users (admin only)",
    "/inspect [user_id] - inspect a user (admin only)",
    "/upload - upload the configured file",
    "/stats - show simple stats",
)


def help_text(admin_id: int | None) -> str:
    lines = ["Available commands:", *HELP_LINES, ""]
    if admin_id is not None:
        lines.append("Admin commands are enabled.")
    else:
        lines.append("Note: no admin configured. Some commands require admin_id.")
    return "\n".join(lines)


def _start_note(event: CommandEvent) -> str:
    message = event.message
    raw = msgspec.json.format(msgspec.json.encode(message), indent=2).decode()
    return "\n".join(
        [
            "New /start received:",
            "",
            f"chat: {message.chat!r}",
            f"from: {message.from_!r}",
            f"message_id: {message.message_id}",
            f"text: {message.text or ''}",
            "",
            "raw_json:",
            raw,
        ]
    )


async def _notify_admin(deps: CommandDeps, client: BotClient, event: CommandEvent) -> None:
    if deps.admin_id is None:
        return
    note = _start_note(event)
    if len(note) < MAX_INLINE_NOTE:
        outcome = await client.send_message(deps.admin_id, note)
    else:
        path = deps.scratch_dir / f"start_info_{event.chat_id}.json"
        await anyio.Path(path).write_text(note, encoding="utf-8")
        outcome = await client.send_document(deps.admin_id, path)
    if isinstance(outcome, Failure):
        logger.warning(
            "commands.start.notify_failed",
            admin_id=deps.admin_id,
            error=outcome.message,
        )


async def handle_start(deps: CommandDeps, client: BotClient, event: CommandEvent) -> None:
    await deps.store.add_user(event.chat_id)
    sender = event.message.from_
    name = sender.first_name if sender is not None and sender.first_name else "there"
    welcome = f"Hello, {name}! Welcome. Type /help to see available commands."
    (
        await client.send_message(event.chat_id, welcome, reply_markup=START_KEYBOARD)
    ).unwrap()
    await _notify_admin(deps, client, event)


async def handle_help(deps: CommandDeps, client: BotClient, event: CommandEvent) -> None:
    text = help_text(deps.admin_id)
    (await client.send_message(event.chat_id, text, reply_markup=MAIN_KEYBOARD)).unwrap()


async def handle_ping(client: BotClient, event: CommandEvent) -> None:
    (await client.send_message(event.chat_id, "pong")).unwrap()


async def handle_echo(client: BotClient, event: CommandEvent) -> None:
    text = event.args_text if event.args_text.strip() else "usage: /echo <text>"
    (await client.send_message(event.chat_id, text)).unwrap()


async def handle_whoami(client: BotClient, event: CommandEvent) -> None:
    sender = event.message.from_
    if sender is None:
        return
    name = sender.username or sender.first_name
    (
        await client.send_message(event.chat_id, f"id: {sender.id}\nusername: {name}")
    ).unwrap()


async def handle_keyboard(client: BotClient, event: CommandEvent) -> None:
    (
        await client.send_message(event.chat_id, "Choose:", reply_markup=MAIN_KEYBOARD)
    ).unwrap()


async def handle_inline(client: BotClient, event: CommandEvent) -> None:
    (
        await client.send_message(
            event.chat_id, "Inline example:", reply_markup=INLINE_KEYBOARD
        )
    ).unwrap()


async def handle_button(client: BotClient, query: CallbackQuery) -> None:
    answered = await client.answer_callback_query(query.id, "Received", show_alert=False)
    if isinstance(answered, Failure):
        logger.info("commands.button.answer_failed", error=answered.message)
    if query.message is None:
        return
    data = query.data or "(no data)"
    (
        await client.send_message(query.message.chat.id, f"Button pressed: {data}")
    ).unwrap()
