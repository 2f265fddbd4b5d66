"""
Telegram bot handlers for the gift key store
"""
import logging
from typing import Optional

from aiogram import Dispatcher, F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder

from .config import Settings
from .errors import InvalidGiftState, PaymentProviderError
from .models import Gift, GiftStatus
from .redemption import RedemptionGate
from .reservation import ReservationEngine
from .telegram_client import TelegramNotifier

logger = logging.getLogger(__name__)

BUY_KEY = "BUY_KEY"
STATS = "STATS"
MY_KEY = "MY_KEY"
CANCEL_PREFIX = "CANCEL:"


# === Keyboards ===
def start_kb(price: int, faq_url: Optional[str] = None) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text=f"🎯 КУПИТЬ КЛЮЧ ЗА {price} ₽", callback_data=BUY_KEY)
    kb.button(text="📊 Статистика", callback_data=STATS)
    kb.button(text="🔑 Мой ключ", callback_data=MY_KEY)
    if faq_url:
        kb.button(text="❓ FAQ", url=faq_url)
    kb.adjust(1)
    return kb.as_markup()


def pay_kb(pay_url: str, gift_id: int, price: int) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text=f"💳 ОПЛАТИТЬ {price} ₽", url=pay_url)
    kb.button(text="❌ ОТМЕНА", callback_data=f"{CANCEL_PREFIX}{gift_id}")
    kb.adjust(1)
    return kb.as_markup()


def reservation_kb(gift_id: int) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text="💳 ОПЛАТИТЬ", callback_data=BUY_KEY)
    kb.button(text="❌ ОТМЕНИТЬ РЕЗЕРВ", callback_data=f"{CANCEL_PREFIX}{gift_id}")
    kb.adjust(1)
    return kb.as_markup()


async def _ack(callback: CallbackQuery) -> None:
    try:
        await callback.answer()
    except TelegramAPIError as e:
        logger.debug("Callback answer failed: %s", e)


def _status_label(gift: Gift) -> str:
    if gift.status == GiftStatus.PAID.value:
        return "✅ <b>Оплачен</b>"
    return "⏳ <b>Ожидает оплаты</b>"


# === Handlers ===
async def cmd_start(message: Message, notifier: TelegramNotifier, settings: Settings) -> None:
    chat_id = message.chat.id
    text = (
        "🎁 <b>НОВОГОДНЯЯ ИГРА</b>\n"
        "🎯 Купи ключ - получи подарок\n"
        f"<b>Цена:</b> {settings.KEY_PRICE_RUB} ₽ за ключ\n"
        "<b>Гарантия:</b> Каждый код - уникальный подарок\n"
        "👇 Нажмите кнопку ниже, чтобы купить ключ:"
    )
    await notifier.send(chat_id, text, reply_markup=start_kb(settings.KEY_PRICE_RUB, settings.FAQ_URL))
    notifier.dispatch_admin(f"👤 Новый пользователь: {chat_id}")


async def buy_key(
    callback: CallbackQuery,
    reservations: ReservationEngine,
    notifier: TelegramNotifier,
    settings: Settings,
) -> None:
    await _ack(callback)
    tg_id = callback.from_user.id

    # A buyer who already holds a key gets the same key again instead of draining the pool
    gift = await reservations.current_reservation(tg_id)
    if gift is None or not gift.reserved:
        gift = await reservations.reserve(tg_id)
    if gift is None:
        await notifier.send(tg_id, "❌ К сожалению, ключи закончились")
        return

    try:
        payment = await reservations.initiate_payment(gift.id, tg_id)
    except (PaymentProviderError, InvalidGiftState) as e:
        logger.warning("Payment for gift %s could not be started: %s", gift.id, e)
        current = await reservations.store.get(gift.id)
        if current is not None and current.tg_user_id == tg_id and current.status == GiftStatus.PAID.value:
            # Paid while the link was being created; the code message is already on its way
            return
        await reservations.cancel(gift.id, tg_id)
        await notifier.send(tg_id, "⚠️ Не удалось создать платёж, попробуйте позже")
        return

    await notifier.send(
        tg_id,
        f"💳 <b>Оплатите {settings.KEY_PRICE_RUB} ₽</b>\n"
        "После оплаты вы получите:\n"
        "✅ Уникальный код для проверки на сайте\n"
        "🎁 Цифровой подарок\n"
        "👇 Нажмите для оплаты:",
        reply_markup=pay_kb(payment.confirmation_url, gift.id, settings.KEY_PRICE_RUB),
    )
    notifier.dispatch_admin(f"🛒 Пользователь {tg_id} начал покупку ключа {gift.id}")


async def show_stats(callback: CallbackQuery, redemption: RedemptionGate, notifier: TelegramNotifier) -> None:
    await _ack(callback)
    stats = await redemption.stats()
    await notifier.send(
        callback.from_user.id,
        "📊 <b>Статистика</b>\n"
        f"🎁 Осталось ключей: <b>{stats.normal_left}</b>\n"
        f"💎 VIP-билет: {'❌ Найден' if stats.vip_found else '🎯 В игре'}\n"
        f"🎫 Использовано ключей: <b>{stats.total_used}</b>\n"
        "👇 Купи ключ - попробуй удачу!",
    )


async def cancel_purchase(
    callback: CallbackQuery,
    reservations: ReservationEngine,
    notifier: TelegramNotifier,
) -> None:
    await _ack(callback)
    tg_id = callback.from_user.id
    try:
        gift_id = int(callback.data[len(CANCEL_PREFIX):])
    except ValueError:
        logger.warning("Bad cancel payload %r from %s", callback.data, tg_id)
        return

    if not await reservations.cancel(gift_id, tg_id):
        await notifier.send(tg_id, "❌ Не найдено вашей активной резервации")
        return

    await notifier.send(tg_id, "❌ Покупка отменена")
    notifier.dispatch_admin(f"❌ Пользователь {tg_id} отменил покупку ключа {gift_id}")


async def _send_reservation_status(tg_id: int, reservations: ReservationEngine, notifier: TelegramNotifier) -> None:
    gift = await reservations.current_reservation(tg_id)
    if gift is None:
        await notifier.send(
            tg_id,
            "📭 У вас нет активных резерваций.\n\nНажмите 'Купить ключ' для создания новой.",
        )
        return

    text = f"📋 <b>СТАТУС ВАШЕЙ РЕЗЕРВАЦИИ</b>\n\n📊 Статус: {_status_label(gift)}\n"
    if gift.status == GiftStatus.PAID.value:
        text += f"🔑 Код: <code>{gift.code}</code>\n🎁 <b>Подарок готов к получению!</b>"
        await notifier.send(tg_id, text)
        return
    await notifier.send(tg_id, text, reply_markup=reservation_kb(gift.id))


async def my_key(callback: CallbackQuery, reservations: ReservationEngine, notifier: TelegramNotifier) -> None:
    await _ack(callback)
    await _send_reservation_status(callback.from_user.id, reservations, notifier)


async def cmd_status(message: Message, reservations: ReservationEngine, notifier: TelegramNotifier) -> None:
    await _send_reservation_status(message.from_user.id, reservations, notifier)


def build_router() -> Router:
    router = Router(name="giftshop")
    router.message.register(cmd_start, CommandStart())
    router.message.register(cmd_status, Command("status"))
    router.callback_query.register(buy_key, F.data == BUY_KEY)
    router.callback_query.register(show_stats, F.data == STATS)
    router.callback_query.register(my_key, F.data == MY_KEY)
    router.callback_query.register(cancel_purchase, F.data.startswith(CANCEL_PREFIX))
    return router


def build_dispatcher(
    reservations: ReservationEngine,
    redemption: RedemptionGate,
    notifier: TelegramNotifier,
    settings: Settings,
) -> Dispatcher:
    dp = Dispatcher(
        reservations=reservations,
        redemption=redemption,
        notifier=notifier,
        settings=settings,
    )
    dp.include_router(build_router())
    return dp
