from dataclasses import dataclass
from typing import Any, List

import pytest

from giftshop.config import Settings
from giftshop.database import init_db
from giftshop.models import GiftType
from giftshop.services import build_services

ADMIN_ID = 999
FRONTEND_URL = "https://gifts.example"


@dataclass
class SentMessage:
    chat_id: int
    text: str
    reply_markup: Any = None


class FakeBot:
    """Records outgoing messages instead of calling Telegram."""

    def __init__(self) -> None:
        self.sent: List[SentMessage] = []
        self.session = None

    async def send_message(self, chat_id, text, reply_markup=None, **kwargs):
        self.sent.append(SentMessage(chat_id, text, reply_markup))

    def messages_to(self, chat_id: int) -> List[SentMessage]:
        return [m for m in self.sent if m.chat_id == chat_id]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        BOT_TOKEN="42:TEST",
        ADMIN_TG_ID=ADMIN_ID,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'gifts.db'}",
        FRONTEND_URL=FRONTEND_URL,
        PAYMENT_PROVIDER="stub",
        PAYMENT_REDIRECT_URL="https://pay.example/redirect",
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="secret",
    )


@pytest.fixture
def bot():
    return FakeBot()


@pytest.fixture
async def services(settings, bot):
    services = build_services(settings, bot=bot)
    await init_db(services.engine)
    yield services
    await services.aclose()


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def seed(store):
    async def _seed(*codes: str, gift_type: GiftType = GiftType.NORMAL):
        return await store.create_gifts(codes, gift_type)

    return _seed
