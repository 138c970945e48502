from __future__ import annotations

from typing import TYPE_CHECKING

import msgspec

from ..logging import get_logger
from ..telegram.client import BotClient
from ..telegram.outcome import Failure, Success
from ..telegram.types import CommandEvent

if TYPE_CHECKING:
    from . import CommandDeps

logger = get_logger(__name__)


def _is_admin(deps: CommandDeps, event: CommandEvent) -> bool:
    return deps.admin_id is not None and event.sender_id == deps.admin_id


async def handle_broadcast(
    deps: CommandDeps, client: BotClient, event: CommandEvent
) -> None:
    if deps.admin_id is None:
        await client.send_message(event.chat_id, "admin_id not set")
        return
    if not _is_admin(deps, event):
        await client.send_message(event.chat_id, "not allowed")
        return
    body = event.args_text.strip()
    if not body:
        await client.send_message(event.chat_id, "usage: /broadcast <text>")
        return
    recipients = await deps.store.users()
    failed = 0
    for chat_id in recipients:
        outcome = await client.send_message(chat_id, body)
        if isinstance(outcome, Failure):
            failed += 1
            logger.info(
                "commands.broadcast.send_failed",
                chat_id=chat_id,
                error=outcome.message,
            )
    logger.info("commands.broadcast.done", recipients=len(recipients), failed=failed)


def _target_id(event: CommandEvent) -> int:
    args = event.args
    if args:
        try:
            return int(args[0])
        except ValueError:
            pass
    if event.sender_id is not None:
        return event.sender_id
    return event.chat_id


async def _profile_report(client: BotClient, target_id: int) -> list[str]:
    lines: list[str] = []
    photos = await client.get_user_profile_photos(target_id)
    if not isinstance(photos, Success):
        lines.append("failed to get profile photos")
        return lines
    lines.append(f"profile_photos_total: {photos.value.total_count}")
    if photos.value.total_count == 0 or not photos.value.photos:
        return lines
    sizes = photos.value.photos[0]
    if not sizes:
        return lines
    best = sizes[-1]
    lines.append(f"chosen_photo_file_id: {best.file_id}")
    info = await client.get_file(best.file_id)
    if not isinstance(info, Success):
        lines.append("getFile failed")
        return lines
    lines.append(f"file_info: {info.value!r}")
    if info.value.file_path is None:
        lines.append("file has no file_path (maybe not downloadable)")
        return lines
    payload = await client.download_file(info.value.file_path)
    if isinstance(payload, Success):
        lines.append(f"downloaded_bytes: {len(payload.value)}")
    else:
        lines.append("failed to download file bytes")
    return lines


async def handle_inspect(
    deps: CommandDeps, client: BotClient, event: CommandEvent
) -> None:
    if not _is_admin(deps, event):
        (await client.send_message(event.chat_id, "not allowed")).unwrap()
        return
    target_id = _target_id(event)
    lines = [f"target_user_id: {target_id}"]
    chat = await client.get_chat(target_id)
    if isinstance(chat, Success):
        pretty = msgspec.json.format(msgspec.json.encode(chat.value), indent=2)
        lines.append(f"getChat: {pretty.decode()}")
    else:
        lines.append("getChat failed")
    lines.extend(await _profile_report(client, target_id))
    (await client.send_message(event.chat_id, "\n".join(lines))).unwrap()


async def handle_upload(
    deps: CommandDeps, client: BotClient, event: CommandEvent
) -> None:
    (await client.send_document(event.chat_id, deps.upload_path)).unwrap()


async def handle_stats(
    deps: CommandDeps, client: BotClient, event: CommandEvent
) -> None:
    users = await deps.store.users()
    counters = await deps.store.counters()
    lines = [f"users: {len(users)}"]
    lines.extend(f"{name}: {count}" for name, count in sorted(counters.items()))
    (await client.send_message(event.chat_id, "\n".join(lines))).unwrap()
