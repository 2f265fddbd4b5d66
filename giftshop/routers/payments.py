import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ..deps import get_services
from ..services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/tbank-webhook", response_class=PlainTextResponse)
@router.post("/yookassa", response_class=PlainTextResponse)
async def payment_webhook(request: Request, services: Services = Depends(get_services)):
    # Providers always get "ok" so they stop retrying; correctness lives in the conditional updates
    try:
        payload = await request.json()
        outcome = await services.reconciler.on_payment_event(payload)
        logger.info("Payment callback handled: %s", outcome.value)
    except Exception:
        logger.exception("Payment callback failed")
    return "ok"
