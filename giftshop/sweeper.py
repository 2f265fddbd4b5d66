import asyncio
import logging
from datetime import timedelta

from .models import utcnow
from .store import GiftStore

logger = logging.getLogger(__name__)


class ReservationSweeper:
    """Releases reservations nobody paid for within the TTL."""

    def __init__(self, store: GiftStore, ttl_minutes: int, interval_seconds: int = 60) -> None:
        self.store = store
        self.ttl = timedelta(minutes=ttl_minutes)
        self.interval_seconds = interval_seconds

    async def sweep(self) -> int:
        released = await self.store.release_expired(utcnow() - self.ttl)
        if released:
            logger.info("Released %d abandoned reservations", released)
        return released

    async def run(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Reservation sweep failed")
            await asyncio.sleep(self.interval_seconds)
