from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path

import anyio

from .logging import get_logger
from .utils.json_state import atomic_write_json, read_json

logger = get_logger(__name__)

__all__ = ["BotStore", "autosave"]

KV_FILE = "kv.json"
USERS_FILE = "users.json"


class BotStore:
    """Shared state for command handlers: key/value pairs, known chats, counters.

    All access goes through one lock, so handlers running concurrently see a
    consistent view. Counters are in-memory only; the key/value map and the
    user set are written to ``data_dir`` by :meth:`snapshot`.
    """

    def __init__(
        self,
        data_dir: Path | None = None,
        *,
        kv: dict[str, str] | None = None,
        users: set[int] | None = None,
    ) -> None:
        self._data_dir = data_dir
        self._kv: dict[str, str] = dict(kv or {})
        self._users: set[int] = set(users or ())
        self._counters: dict[str, int] = {}
        self._lock = anyio.Lock()

    @classmethod
    def load(cls, data_dir: Path) -> BotStore:
        kv_raw = read_json(data_dir / KV_FILE, log_prefix="store.kv")
        users_raw = read_json(data_dir / USERS_FILE, log_prefix="store.users")
        kv: dict[str, str] = {}
        if isinstance(kv_raw, dict):
            kv = {str(key): str(value) for key, value in kv_raw.items()}
        users: set[int] = set()
        if isinstance(users_raw, list):
            users = {
                item
                for item in users_raw
                if isinstance(item, int) and not isinstance(item, bool)
            }
        logger.info("store.loaded", path=str(data_dir), keys=len(kv), users=len(users))
        return cls(data_dir, kv=kv, users=users)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._kv.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._kv[key] = value

    async def add_user(self, user_id: int) -> bool:
        async with self._lock:
            if user_id in self._users:
                return False
            self._users.add(user_id)
            return True

    async def users(self) -> list[int]:
        async with self._lock:
            return sorted(self._users)

    async def bump(self, command: str) -> int:
        async with self._lock:
            count = self._counters.get(command, 0) + 1
            self._counters[command] = count
            return count

    async def counters(self) -> dict[str, int]:
        async with self._lock:
            return dict(self._counters)

    async def snapshot(self) -> None:
        if self._data_dir is None:
            return
        async with self._lock:
            kv = dict(self._kv)
            users = sorted(self._users)
        await anyio.to_thread.run_sync(self._write, kv, users)
        logger.debug("store.saved", path=str(self._data_dir))

    def _write(self, kv: dict[str, str], users: list[int]) -> None:
        if self._data_dir is None:
            raise RuntimeError("store has no data_dir")
        atomic_write_json(self._data_dir / KV_FILE, kv)
        atomic_write_json(self._data_dir / USERS_FILE, users, sort_keys=False)


async def autosave(
    store: BotStore,
    interval_s: float,
    *,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> None:
    while True:
        await sleep(interval_s)
        try:
            await store.snapshot()
        except OSError as exc:
            logger.error(
                "store.autosave_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
