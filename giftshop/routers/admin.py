from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from ..deps import admin_basic_auth, get_services
from ..models import Gift, GiftStatus, GiftType, generate_code
from ..services import Services


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(admin_basic_auth)])


class GiftSeed(BaseModel):
    count: int = Field(default=1, ge=1, le=1000)
    type: GiftType = GiftType.NORMAL
    codes: Optional[List[str]] = None


def serialize_gift(g: Gift) -> dict:
    return {
        "id": g.id,
        "code": g.code,
        "type": g.type,
        "status": g.status,
        "tg_user_id": g.tg_user_id,
        "payment_id": g.payment_id,
        "reserved_at": g.reserved_at.isoformat() if g.reserved_at else None,
        "used_at": g.used_at.isoformat() if g.used_at else None,
    }


@router.get("/gifts")
async def list_gifts(status: Optional[GiftStatus] = None, services: Services = Depends(get_services)):
    gifts = await services.store.list_gifts(status.value if status else None)
    return {"items": [serialize_gift(g) for g in gifts]}


@router.post("/gifts", status_code=status.HTTP_201_CREATED)
async def create_gifts(seed: GiftSeed, services: Services = Depends(get_services)):
    codes = [c.strip() for c in (seed.codes or []) if c.strip()]
    if not codes:
        codes = [generate_code() for _ in range(seed.count)]
    try:
        gifts = await services.store.create_gifts(codes, seed.type)
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Duplicate gift code")
    return {"items": [serialize_gift(g) for g in gifts]}


@router.post("/gifts/{gift_id}/release")
async def release_gift(gift_id: int, services: Services = Depends(get_services)):
    released = await services.reservations.cancel(gift_id)
    return {"ok": True, "released": released}
