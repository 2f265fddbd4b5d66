"""
Gift record store.

Every state change is a single UPDATE guarded by the status the caller expects
to find. The affected row count tells the caller whether its transition won;
zero rows means another request already moved the gift on.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from .models import HELD_STATUSES, Gift, GiftStatus, GiftType, utcnow

logger = logging.getLogger(__name__)


_CLEARED_RESERVATION = {
    "status": GiftStatus.FREE.value,
    "reserved": False,
    "reserved_at": None,
    "tg_user_id": None,
    "payment_id": None,
}


def _held_by(requester_id: int):
    return select(Gift).where(Gift.tg_user_id == requester_id, Gift.status.in_(HELD_STATUSES)).limit(1)


class GiftStore:
    """Async access to the gifts table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def _conditional_update(self, *conditions, **values) -> int:
        stmt = (
            update(Gift)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    # === Reads ===
    async def get(self, gift_id: int) -> Optional[Gift]:
        async with self._sessionmaker() as session:
            return await session.get(Gift, gift_id)

    async def get_by_code(self, code: str) -> Optional[Gift]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(Gift).where(Gift.code == code))
            return result.scalar_one_or_none()

    async def list_gifts(self, status: Optional[str] = None, limit: int = 100) -> List[Gift]:
        stmt = select(Gift).order_by(Gift.id.desc()).limit(limit)
        if status:
            stmt = stmt.where(Gift.status == status)
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_redeemable(self, code: str) -> Optional[Gift]:
        stmt = select(Gift).where(
            Gift.code == code,
            Gift.status == GiftStatus.PAID.value,
            Gift.is_used.is_(False),
        )
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_latest_for_requester(self, requester_id: int) -> Optional[Gift]:
        stmt = (
            select(Gift)
            .where(
                Gift.tg_user_id == requester_id,
                Gift.status.in_(HELD_STATUSES + (GiftStatus.PAID.value,)),
            )
            .order_by(Gift.reserved_at.desc(), Gift.id.desc())
            .limit(1)
        )
        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def count(self, status: Optional[str] = None, gift_type: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Gift)
        if status:
            stmt = stmt.where(Gift.status == status)
        if gift_type:
            stmt = stmt.where(Gift.type == gift_type)
        async with self._sessionmaker() as session:
            return int(await session.scalar(stmt) or 0)

    # === Writes ===
    async def create_gifts(self, codes: Iterable[Optional[str]], gift_type: GiftType = GiftType.NORMAL) -> List[Gift]:
        gifts = [Gift(code=code.upper() if code else None, type=gift_type.value) for code in codes]
        async with self._sessionmaker() as session:
            session.add_all(gifts)
            await session.commit()
        logger.info("Created %d %s gifts", len(gifts), gift_type.value)
        return gifts

    async def claim_free(self, requester_id: int, gift_type: GiftType = GiftType.NORMAL) -> Optional[Gift]:
        """Claim one free gift for the requester or return None when the pool is empty.

        A requester holds at most one gift: when they already hold one, that gift
        is returned and nothing new is claimed.
        """
        held = aliased(Gift)
        holds_nothing = ~(
            select(held.id)
            .where(held.tg_user_id == requester_id, held.status.in_(HELD_STATUSES))
            .exists()
        )
        async with self._sessionmaker() as session:
            while True:
                candidate = await session.scalar(
                    select(Gift.id)
                    .where(Gift.status == GiftStatus.FREE.value, Gift.type == gift_type.value)
                    .order_by(Gift.id)
                    .limit(1)
                )
                if candidate is None:
                    return await session.scalar(_held_by(requester_id))

                result = await session.execute(
                    update(Gift)
                    .where(Gift.id == candidate, Gift.status == GiftStatus.FREE.value, holds_nothing)
                    .values(
                        status=GiftStatus.RESERVED.value,
                        reserved=True,
                        reserved_at=utcnow(),
                        tg_user_id=requester_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await session.commit()
                    return await session.get(Gift, candidate, populate_existing=True)

                await session.rollback()
                current = await session.scalar(_held_by(requester_id))
                if current is not None:
                    logger.info("Requester %s already holds gift %s", requester_id, current.id)
                    return current

                # Lost the race for this candidate, look for the next one
                logger.debug("Gift %s was claimed concurrently, retrying", candidate)

    async def release(self, gift_id: int, requester_id: Optional[int] = None) -> bool:
        conditions = [Gift.id == gift_id, Gift.status.in_(HELD_STATUSES)]
        if requester_id is not None:
            conditions.append(Gift.tg_user_id == requester_id)
        return await self._conditional_update(*conditions, **_CLEARED_RESERVATION) == 1

    async def release_expired(self, cutoff: datetime) -> int:
        return await self._conditional_update(
            Gift.status.in_(HELD_STATUSES),
            Gift.reserved_at < cutoff,
            **_CLEARED_RESERVATION,
        )

    async def attach_payment(self, gift_id: int, requester_id: int, payment_id: str) -> bool:
        return await self._conditional_update(
            Gift.id == gift_id,
            Gift.tg_user_id == requester_id,
            Gift.status.in_(HELD_STATUSES),
            status=GiftStatus.WAITING_PAYMENT.value,
            payment_id=payment_id,
        ) == 1

    async def mark_paid(self, gift_id: int, requester_id: int, fallback_code: str) -> Optional[Gift]:
        """Move a held gift to paid. Returns the gift only for the call that made the change."""
        changed = await self._conditional_update(
            Gift.id == gift_id,
            Gift.tg_user_id == requester_id,
            Gift.status.in_(HELD_STATUSES),
            status=GiftStatus.PAID.value,
            reserved=False,
            paid_at=utcnow(),
            code=func.coalesce(Gift.code, fallback_code),
        )
        if changed != 1:
            return None
        return await self.get(gift_id)

    async def mark_used(self, code: str) -> bool:
        return await self._conditional_update(
            Gift.code == code,
            Gift.status == GiftStatus.PAID.value,
            Gift.is_used.is_(False),
            status=GiftStatus.USED.value,
            is_used=True,
            used_at=utcnow(),
        ) == 1
