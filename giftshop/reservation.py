import logging
from typing import Optional

from .errors import InvalidGiftState
from .models import Gift, GiftType
from .payments import PaymentHandle, PaymentInitiator
from .store import GiftStore

logger = logging.getLogger(__name__)


class ReservationEngine:
    """Claims gifts for buyers and moves them towards payment."""

    def __init__(self, store: GiftStore, payments: PaymentInitiator) -> None:
        self.store = store
        self.payments = payments

    async def reserve(self, requester_id: int) -> Optional[Gift]:
        gift = await self.store.claim_free(requester_id, GiftType.NORMAL)
        if gift is None:
            logger.info("No free gifts left for %s", requester_id)
            return None
        logger.info("Gift %s reserved for %s", gift.id, requester_id)
        return gift

    async def cancel(self, gift_id: int, requester_id: Optional[int] = None) -> bool:
        """Return a held gift to the pool. Paid and used gifts are never touched."""
        released = await self.store.release(gift_id, requester_id)
        if released:
            logger.info("Reservation on gift %s cancelled", gift_id)
        else:
            logger.info("Nothing to cancel on gift %s (requester=%s)", gift_id, requester_id)
        return released

    async def initiate_payment(self, gift_id: int, requester_id: int) -> PaymentHandle:
        gift = await self.store.get(gift_id)
        if gift is None or gift.tg_user_id != requester_id or not gift.reserved:
            raise InvalidGiftState(gift_id, f"Gift {gift_id} is not held by {requester_id}")

        handle = await self.payments.create_payment(gift_id, requester_id)

        # The gift may have been paid, cancelled or swept while the provider answered
        if not await self.store.attach_payment(gift_id, requester_id, handle.payment_id):
            logger.warning("Payment %s for gift %s dropped: gift left the held state", handle.payment_id, gift_id)
            raise InvalidGiftState(gift_id)

        logger.info("Payment %s created for gift %s", handle.payment_id, gift_id)
        return handle

    async def current_reservation(self, requester_id: int) -> Optional[Gift]:
        return await self.store.find_latest_for_requester(requester_id)
