"""
Payment initiation and provider callback parsing
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

from .config import Settings
from .errors import PaymentProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentHandle:
    payment_id: str
    confirmation_url: str


@dataclass(frozen=True)
class PaymentEvent:
    succeeded: bool
    gift_id: int
    requester_id: int
    payment_id: Optional[str] = None
    status: Optional[str] = None


class PaymentInitiator(Protocol):
    async def create_payment(self, gift_id: int, requester_id: int) -> PaymentHandle:
        ...


class StubPaymentInitiator:
    """T-Bank style stub: generates an id locally and points the buyer at a fixed URL."""

    def __init__(self, redirect_url: str) -> None:
        self.redirect_url = redirect_url

    async def create_payment(self, gift_id: int, requester_id: int) -> PaymentHandle:
        payment_id = f"TBANK_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
        return PaymentHandle(payment_id=payment_id, confirmation_url=self.redirect_url)


class YooKassaClient:
    def __init__(self, shop_id: str, secret_key: str, amount_rub: int, return_url: str) -> None:
        self.shop_id = shop_id
        self.secret_key = secret_key
        self.amount_rub = amount_rub
        self.return_url = return_url
        self.base = "https://api.yookassa.ru/v3"

    def _create(self, gift_id: int, requester_id: int) -> dict:
        url = f"{self.base}/payments"
        body = {
            "amount": {"value": f"{self.amount_rub:.2f}", "currency": "RUB"},
            "capture": True,
            "confirmation": {"type": "redirect", "return_url": self.return_url},
            "description": f"Gift key #{gift_id}",
            "metadata": {"gift_id": str(gift_id), "tg_user_id": str(requester_id)},
        }
        # Same key for the same gift and buyer so a retried request does not create a second payment
        headers = {"Idempotence-Key": str(uuid.uuid5(uuid.NAMESPACE_URL, f"gift:{gift_id}:{requester_id}"))}
        resp = requests.post(url, json=body, headers=headers, auth=(self.shop_id, self.secret_key), timeout=20)
        resp.raise_for_status()
        return resp.json()

    async def create_payment(self, gift_id: int, requester_id: int) -> PaymentHandle:
        try:
            j = await asyncio.to_thread(self._create, gift_id, requester_id)
        except requests.RequestException as e:
            raise PaymentProviderError(f"YooKassa request failed: {e}") from e
        try:
            return PaymentHandle(
                payment_id=j["id"],
                confirmation_url=j["confirmation"]["confirmation_url"],
            )
        except (KeyError, TypeError) as e:
            raise PaymentProviderError(f"YooKassa error: {j}") from e


def build_payment_initiator(settings: Settings) -> PaymentInitiator:
    if settings.PAYMENT_PROVIDER == "yookassa":
        if not (settings.YOOKASSA_SHOP_ID and settings.YOOKASSA_SECRET):
            raise ValueError("YOOKASSA_SHOP_ID and YOOKASSA_SECRET are required for the yookassa provider")
        return YooKassaClient(
            shop_id=settings.YOOKASSA_SHOP_ID,
            secret_key=settings.YOOKASSA_SECRET,
            amount_rub=settings.KEY_PRICE_RUB,
            return_url=settings.PAYMENT_REDIRECT_URL,
        )
    return StubPaymentInitiator(settings.PAYMENT_REDIRECT_URL)


# === Provider callbacks ===
SUCCESS_STATUSES = {"success", "succeeded", "confirmed", "payment.succeeded"}


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_payment_event(payload: Any) -> Optional[PaymentEvent]:
    """Normalize a T-Bank or YooKassa callback. Returns None for malformed payloads."""
    if not isinstance(payload, dict):
        return None

    if "event" in payload:
        # YooKassa: {"event": "payment.succeeded", "object": {"id": ..., "metadata": {...}}}
        status = payload.get("event")
        obj = payload.get("object") or {}
        if not isinstance(obj, dict):
            return None
        payment_id = obj.get("id")
    else:
        # T-Bank: {"status": "success", "payment_id": ..., "metadata": {...}}
        status = payload.get("status")
        obj = payload
        payment_id = payload.get("payment_id") or payload.get("id")

    metadata: Dict[str, Any] = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        return None

    gift_id = _to_int(metadata.get("gift_id", metadata.get("order_id")))
    requester_id = _to_int(metadata.get("tg_user_id", metadata.get("tg_id")))
    if gift_id is None or requester_id is None:
        return None

    status = str(status or "").lower()
    return PaymentEvent(
        succeeded=status in SUCCESS_STATUSES,
        gift_id=gift_id,
        requester_id=requester_id,
        payment_id=str(payment_id) if payment_id is not None else None,
        status=status,
    )
