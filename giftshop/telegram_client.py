from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from aiogram.exceptions import TelegramAPIError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Thin wrapper around the Telegram Bot API used to message buyers and the admin.

    Sending is best-effort: failures are logged and never propagate into the
    state transition that triggered them.
    """

    def __init__(self, bot: Any, admin_chat_id: Optional[int] = None) -> None:
        self.bot = bot
        self.admin_chat_id = admin_chat_id
        self._pending: Set[asyncio.Task] = set()

    async def send(self, chat_id: int, text: str, reply_markup: Any = None) -> bool:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=reply_markup,
                disable_web_page_preview=True,
            )
            return True
        except TelegramAPIError as e:
            logger.warning("Telegram send to %s failed: %s", chat_id, e)
            return False

    async def notify_admin(self, text: str) -> bool:
        if not self.admin_chat_id:
            return False
        return await self.send(self.admin_chat_id, text)

    def dispatch(self, chat_id: int, text: str, reply_markup: Any = None) -> asyncio.Task:
        """Send without waiting for the result."""
        return self._track(self.send(chat_id, text, reply_markup))

    def dispatch_admin(self, text: str) -> asyncio.Task:
        return self._track(self.notify_admin(text))

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background notification failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for notifications that are still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        session = getattr(self.bot, "session", None)
        if session is not None:
            await session.close()
