import json
import os
import signal
import sys
from contextlib import aclosing
from functools import partial
from pathlib import Path

import anyio
import pytest

from pollbot.dispatcher import Dispatcher
from pollbot.loop import (
    COOLDOWN_NOTICE,
    SHUTDOWN_NOTICE,
    CommandCooldown,
    LoopContext,
    handle_update,
    poll_updates,
    run_main_loop,
)
from pollbot.settings import PollbotSettings
from pollbot.store import USERS_FILE, BotStore
from pollbot.telegram.api_schemas import Contact, Location, Update
from pollbot.telegram.outcome import ErrorKind, Failure, Success
from tests.telegram_fakes import FakeBot, make_callback, make_message, make_update

ADMIN = 1000


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.anyio
async def test_poll_updates_advances_offset_and_cools_down(fake_bot: FakeBot) -> None:
    fake_bot.updates = [
        Failure(ErrorKind.TRANSPORT, "connection reset"),
        Success([make_update(5, "/a"), make_update(6, "/b")]),
        Success([]),
        Success([make_update(7, "/c")]),
    ]
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    seen: list[int] = []
    async with aclosing(
        poll_updates(fake_bot, timeout_s=1, cooldown_s=2.0, sleep=sleep)
    ) as updates:
        async for update in updates:
            seen.append(update.update_id)
            if len(seen) == 3:
                break

    assert seen == [5, 6, 7]
    assert delays == [2.0]
    offsets = [params["offset"] for method, params in fake_bot.calls]
    assert offsets == [None, None, 7, 7]


def test_command_cooldown() -> None:
    clock = FakeClock()
    cooldown = CommandCooldown(2.0, clock=clock)

    assert cooldown.allow(1)
    assert not cooldown.allow(1)
    assert cooldown.allow(2)
    clock.now += 2.5
    assert cooldown.allow(1)


def test_zero_cooldown_always_allows() -> None:
    cooldown = CommandCooldown(0)
    assert all(cooldown.allow(1) for _ in range(5))


async def _run_updates(
    bot: FakeBot,
    store: BotStore,
    updates: list[Update],
    *,
    cooldown: CommandCooldown | None = None,
    admin_id: int | None = None,
) -> list[str]:
    echoed: list[str] = []
    pressed: list[str | None] = []

    async def echo(client, event) -> None:
        echoed.append(event.args_text)

    async def on_button(client, query) -> None:
        pressed.append(query.data)

    dispatcher = Dispatcher(bot)
    dispatcher.register("echo", echo)
    dispatcher.register_catch_all(on_button)
    async with dispatcher, anyio.create_task_group() as tg:
        ctx = LoopContext(
            client=bot,
            dispatcher=dispatcher,
            store=store,
            cooldown=cooldown or CommandCooldown(0),
            task_group=tg,
            admin_id=admin_id,
        )
        for update in updates:
            await handle_update(ctx, update)
    return echoed + [f"button:{data}" for data in pressed]


@pytest.mark.anyio
async def test_handle_update_dispatches_and_counts(
    fake_bot: FakeBot, store: BotStore
) -> None:
    results = await _run_updates(
        fake_bot,
        store,
        [
            make_update(1, "/echo one", chat_id=10),
            make_update(2, "hello", chat_id=11),
            make_update(3, "/echo two", chat_id=10),
            Update(update_id=4, callback_query=make_callback("cb")),
        ],
    )

    assert sorted(results) == ["button:cb", "one", "two"]
    assert await store.users() == [10, 11]
    assert await store.counters() == {"echo": 2}


@pytest.mark.anyio
async def test_handle_update_applies_command_cooldown(
    fake_bot: FakeBot, store: BotStore
) -> None:
    clock = FakeClock()
    results = await _run_updates(
        fake_bot,
        store,
        [
            make_update(1, "/echo first", chat_id=10),
            make_update(2, "/echo second", chat_id=10),
            make_update(3, "just text", chat_id=10),
        ],
        cooldown=CommandCooldown(2.0, clock=clock),
    )

    assert results == ["first"]
    assert fake_bot.texts(10) == [COOLDOWN_NOTICE]


@pytest.mark.anyio
async def test_shared_contact_and_location_forwarded_to_admin(
    fake_bot: FakeBot, store: BotStore
) -> None:
    contact_msg = make_message(None, chat_id=20)
    contact_msg.contact = Contact(
        phone_number="+100", first_name="Cy", last_name="D", user_id=20
    )
    location_msg = make_message(None, chat_id=21)
    location_msg.location = Location(latitude=1.5, longitude=-2.25)

    await _run_updates(
        fake_bot,
        store,
        [
            Update(update_id=1, message=contact_msg),
            Update(update_id=2, message=location_msg),
        ],
        admin_id=ADMIN,
    )

    notes = sorted(fake_bot.texts(ADMIN))
    assert notes == [
        "Contact from chat 20:\nphone: +100\nfirst_name: Cy\nlast_name: D\nuser_id: 20",
        "Location from chat 21:\nlat: 1.5\nlon: -2.25",
    ]


@pytest.mark.anyio
async def test_shared_items_ignored_without_admin(
    fake_bot: FakeBot, store: BotStore
) -> None:
    message = make_message(None)
    message.location = Location(latitude=0.0, longitude=0.0)

    await _run_updates(fake_bot, store, [Update(update_id=1, message=message)])

    assert fake_bot.send_calls == []


class HangingReplyBot(FakeBot):
    """Replies to ``hang_chat`` never complete."""

    def __init__(self, hang_chat: int) -> None:
        super().__init__()
        self.hang_chat = hang_chat
        self.hanging = anyio.Event()
        self.hang_finished = False

    async def send_message(self, chat_id: int, text: str, **kwargs):
        if chat_id == self.hang_chat:
            self.hanging.set()
            await anyio.sleep_forever()
            self.hang_finished = True
        return await super().send_message(chat_id, text, **kwargs)


@pytest.mark.anyio
@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
async def test_sigint_stops_polling_notifies_admin_and_snapshots(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    bot = HangingReplyBot(hang_chat=10)
    bot.updates = [Success([make_update(1, "/ping", chat_id=10)])]
    settings = PollbotSettings(
        bot_token="123456:ABCdef_ghiJKL",
        admin_id=ADMIN,
        data_dir=tmp_path / "data",
    )

    with anyio.fail_after(10):
        async with anyio.create_task_group() as tg:
            tg.start_soon(partial(run_main_loop, settings, client=bot))
            await bot.hanging.wait()
            await anyio.sleep(0.05)
            os.kill(os.getpid(), signal.SIGINT)

    assert bot.texts(ADMIN) == [SHUTDOWN_NOTICE]
    assert bot.hang_finished is False
    assert json.loads((tmp_path / "data" / USERS_FILE).read_text()) == [10]
    polls = [method for method, _ in bot.calls if method == "getUpdates"]
    assert len(polls) == 2
