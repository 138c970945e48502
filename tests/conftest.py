import pytest

from pollbot.store import BotStore
from tests.telegram_fakes import FakeBot


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def store() -> BotStore:
    return BotStore()
