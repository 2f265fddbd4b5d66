"""
Payment reconciliation.

Providers deliver callbacks at least once and in any order. Only the delivery
whose conditional update moves the gift to ``paid`` sends notifications; every
later copy finds the gift already paid and does nothing.
"""
import enum
import logging
from typing import Any, Optional

from aiogram.utils.keyboard import InlineKeyboardBuilder

from .models import Gift, GiftStatus, generate_code
from .payments import PaymentEvent, parse_payment_event
from .store import GiftStore
from .telegram_client import TelegramNotifier

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    MALFORMED = "malformed"
    IGNORED = "ignored"
    PAID = "paid"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"


def code_kb(frontend_url: str):
    kb = InlineKeyboardBuilder()
    kb.button(text="🔍 ПРОВЕРИТЬ КОД НА САЙТЕ", url=frontend_url)
    return kb.as_markup()


class PaymentReconciler:
    def __init__(self, store: GiftStore, notifier: TelegramNotifier, frontend_url: str) -> None:
        self.store = store
        self.notifier = notifier
        self.frontend_url = frontend_url

    async def on_payment_event(self, payload: Any) -> ReconcileOutcome:
        event = parse_payment_event(payload)
        if event is None:
            logger.warning("Payment callback without gift/requester metadata dropped")
            return ReconcileOutcome.MALFORMED

        if not event.succeeded:
            # Left as-is for manual follow-up
            logger.info("Payment event %r for gift %s ignored", event.status, event.gift_id)
            return ReconcileOutcome.IGNORED

        gift = await self.store.mark_paid(event.gift_id, event.requester_id, generate_code())
        if gift is not None:
            logger.info("Gift %s paid by %s (payment %s)", gift.id, event.requester_id, event.payment_id)
            self._announce(gift, event)
            return ReconcileOutcome.PAID

        return await self._explain_noop(event)

    def _announce(self, gift: Gift, event: PaymentEvent) -> None:
        self.notifier.dispatch(
            event.requester_id,
            "🎉 <b>Оплата прошла успешно!</b>\n"
            f"🔑 <b>Ваш код:</b> <code>{gift.code}</code>\n"
            "👇 Перейдите на сайт и введите этот код:\n"
            f"{self.frontend_url}\n"
            "🎁 Вы получите цифровой подарок сразу после проверки кода!",
            reply_markup=code_kb(self.frontend_url),
        )
        self.notifier.dispatch_admin(
            f"💰 <b>Новая оплата</b>\nКод: {gift.code}\nTG ID: {event.requester_id}"
        )

    async def _explain_noop(self, event: PaymentEvent) -> ReconcileOutcome:
        gift: Optional[Gift] = await self.store.get(event.gift_id)
        if (
            gift is not None
            and gift.tg_user_id == event.requester_id
            and gift.status in (GiftStatus.PAID.value, GiftStatus.USED.value)
        ):
            logger.info("Duplicate payment callback for gift %s", event.gift_id)
            return ReconcileOutcome.DUPLICATE

        state = gift.status if gift is not None else "missing"
        logger.warning(
            "Payment %s for gift %s by %s cannot be applied (gift is %s)",
            event.payment_id, event.gift_id, event.requester_id, state,
        )
        self.notifier.dispatch_admin(
            "⚠️ <b>Оплата требует проверки</b>\n"
            f"Подарок: {event.gift_id} ({state})\nTG ID: {event.requester_id}\n"
            f"Платёж: {event.payment_id or '-'}"
        )
        return ReconcileOutcome.CONFLICT
