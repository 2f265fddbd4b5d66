"""
Construction and lifecycle of the long-lived clients
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from sqlalchemy.ext.asyncio import AsyncEngine

from .bot import build_dispatcher
from .config import Settings
from .database import create_engine, create_sessionmaker
from .payments import PaymentInitiator, build_payment_initiator
from .reconciler import PaymentReconciler
from .redemption import RedemptionGate
from .reservation import ReservationEngine
from .store import GiftStore
from .sweeper import ReservationSweeper
from .telegram_client import TelegramNotifier

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    store: GiftStore
    bot: Any
    notifier: TelegramNotifier
    payments: PaymentInitiator
    reservations: ReservationEngine
    reconciler: PaymentReconciler
    redemption: RedemptionGate
    dispatcher: Dispatcher
    sweeper: Optional[ReservationSweeper] = None

    async def aclose(self) -> None:
        await self.notifier.aclose()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    bot: Any = None,
    payments: Optional[PaymentInitiator] = None,
) -> Services:
    engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    store = GiftStore(create_sessionmaker(engine))

    if bot is None:
        bot = Bot(token=settings.BOT_TOKEN, default=DefaultBotProperties(parse_mode="HTML"))
    notifier = TelegramNotifier(bot, settings.ADMIN_TG_ID)
    if not settings.ADMIN_TG_ID:
        logger.warning("ADMIN_TG_ID is not set, admin notifications are disabled")

    payments = payments or build_payment_initiator(settings)
    reservations = ReservationEngine(store, payments)
    redemption = RedemptionGate(store, notifier)
    reconciler = PaymentReconciler(store, notifier, settings.FRONTEND_URL)

    sweeper = None
    if settings.RESERVATION_TTL_MINUTES > 0:
        sweeper = ReservationSweeper(store, settings.RESERVATION_TTL_MINUTES, settings.SWEEP_INTERVAL_SECONDS)

    return Services(
        settings=settings,
        engine=engine,
        store=store,
        bot=bot,
        notifier=notifier,
        payments=payments,
        reservations=reservations,
        reconciler=reconciler,
        redemption=redemption,
        dispatcher=build_dispatcher(reservations, redemption, notifier, settings),
        sweeper=sweeper,
    )
