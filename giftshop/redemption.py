import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import GiftStatus, GiftType, utcnow
from .store import GiftStore
from .telegram_client import TelegramNotifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GiftSummary:
    id: int
    code: str
    type: str


@dataclass(frozen=True)
class Stats:
    normal_left: int
    vip_found: bool
    total_used: int
    server_time: datetime


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class RedemptionGate:
    """Checks and redeems codes for the front-end.

    Unknown codes and already used codes get the same negative answer so the
    front-end cannot tell them apart.
    """

    def __init__(self, store: GiftStore, notifier: TelegramNotifier) -> None:
        self.store = store
        self.notifier = notifier

    async def check_code(self, code: str) -> Optional[GiftSummary]:
        code = normalize_code(code)
        if not code:
            return None
        gift = await self.store.find_redeemable(code)
        if gift is None:
            logger.info("Code %s not redeemable", code)
            return None
        self.notifier.dispatch_admin(f"🔍 Код проверен: {code}")
        return GiftSummary(id=gift.id, code=gift.code, type=gift.type)

    async def use_code(self, code: str) -> bool:
        code = normalize_code(code)
        if not code:
            return False
        if not await self.store.mark_used(code):
            logger.info("Redemption of %s rejected", code)
            return False
        logger.info("Code %s redeemed", code)
        self.notifier.dispatch_admin(f"🎁 Код активирован: {code}")
        return True

    async def stats(self) -> Stats:
        return Stats(
            normal_left=await self.store.count(GiftStatus.FREE.value, GiftType.NORMAL.value),
            vip_found=await self.store.count(GiftStatus.USED.value, GiftType.VIP.value) > 0,
            total_used=await self.store.count(GiftStatus.USED.value),
            server_time=utcnow(),
        )
