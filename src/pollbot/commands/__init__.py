from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from ..dispatcher import Dispatcher
from ..store import BotStore
from . import admin, basic, kv

__all__ = ["CommandDeps", "register_commands"]


@dataclass(frozen=True, slots=True)
class CommandDeps:
    store: BotStore
    admin_id: int | None = None
    upload_path: Path = Path("README.md")
    scratch_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))


def register_commands(dispatcher: Dispatcher, deps: CommandDeps) -> None:
    dispatcher.register("start", partial(basic.handle_start, deps))
    dispatcher.register("help", partial(basic.handle_help, deps))
    dispatcher.register("ping", basic.handle_ping)
    dispatcher.register("echo", basic.handle_echo)
    dispatcher.register("whoami", basic.handle_whoami)
    dispatcher.register("keyboard", basic.handle_keyboard)
    dispatcher.register("inline", basic.handle_inline)
    dispatcher.register_catch_all(basic.handle_button)

    dispatcher.register("set", partial(kv.handle_set, deps.store))
    dispatcher.register("get", partial(kv.handle_get, deps.store))

    dispatcher.register("broadcast", partial(admin.handle_broadcast, deps))
    dispatcher.register("inspect", partial(admin.handle_inspect, deps))
    dispatcher.register("upload", partial(admin.handle_upload, deps))
    dispatcher.register("stats", partial(admin.handle_stats, deps))
