from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..deps import get_services
from ..models import utcnow
from ..services import Services


router = APIRouter()

NOT_REDEEMABLE = "Код не найден или уже использован"


@router.get("/")
async def health():
    return {"status": "online", "timestamp": utcnow().isoformat()}


@router.get("/api/check-gift/{code}")
async def check_gift(code: str, services: Services = Depends(get_services)):
    summary = await services.redemption.check_code(code)
    if summary is None:
        return JSONResponse(content={"ok": False, "message": NOT_REDEEMABLE}, status_code=404)
    return {"ok": True, "gift": asdict(summary)}


@router.post("/api/use-gift/{code}")
async def use_gift(code: str, services: Services = Depends(get_services)):
    if not await services.redemption.use_code(code):
        return JSONResponse(content={"ok": False, "message": NOT_REDEEMABLE}, status_code=400)
    return {"ok": True, "message": "Код успешно активирован"}


@router.get("/api/stats")
async def stats(services: Services = Depends(get_services)):
    s = await services.redemption.stats()
    return {
        "normal_left": s.normal_left,
        "vip_found": s.vip_found,
        "total_used": s.total_used,
        "server_time": s.server_time.isoformat(),
    }
