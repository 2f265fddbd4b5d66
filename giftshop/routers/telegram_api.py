import logging
import secrets
from typing import Optional

from aiogram.types import Update
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status

from ..deps import get_services
from ..services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])


async def _feed_update(services: Services, update: Update) -> None:
    try:
        await services.dispatcher.feed_update(services.bot, update)
    except Exception:
        # Telegram already got its 200; this delivery is not retried
        logger.exception("Telegram update %s failed", update.update_id)


@router.post("/telegram-webhook")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    secret = services.settings.TELEGRAM_WEBHOOK_SECRET
    if secret and not secrets.compare_digest((x_telegram_bot_api_secret_token or "").encode(), secret.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    try:
        update = Update.model_validate(await request.json(), context={"bot": services.bot})
    except ValueError:
        logger.warning("Unparseable Telegram update dropped")
        return {"ok": True}

    background_tasks.add_task(_feed_update, services, update)
    return {"ok": True}
