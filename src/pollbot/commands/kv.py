from __future__ import annotations

from ..store import BotStore
from ..telegram.client import BotClient
from ..telegram.types import CommandEvent

NOT_SET = "(not set)"


async def handle_set(store: BotStore, client: BotClient, event: CommandEvent) -> None:
    key, _, value = event.args_text.strip().partition(" ")
    if not key or not value:
        (await client.send_message(event.chat_id, "usage: /set <k> <v>")).unwrap()
        return
    await store.set(key, value)
    (await client.send_message(event.chat_id, f"saved {key}")).unwrap()


async def handle_get(store: BotStore, client: BotClient, event: CommandEvent) -> None:
    key = event.args_text.strip().partition(" ")[0]
    if not key:
        (await client.send_message(event.chat_id, "usage: /get <k>")).unwrap()
        return
    value = await store.get(key)
    (await client.send_message(event.chat_id, value or NOT_SET)).unwrap()
