"""
FastAPI application for the gift key store
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_settings
from .database import init_db
from .routers import admin, payments, public, telegram_api
from .services import Services, build_services

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=level,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop the long-lived clients"""
    services: Services = app.state.services
    await init_db(services.engine)

    sweeper_task: Optional[asyncio.Task] = None
    if services.sweeper is not None:
        sweeper_task = asyncio.create_task(services.sweeper.run())

    logger.info("Gift shop started")
    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
    await services.aclose()
    logger.info("Gift shop stopped")


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    app = FastAPI(title="Gift Key Store", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(public.router)
    app.include_router(telegram_api.router)
    app.include_router(payments.router)
    app.include_router(admin.router)

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Store error on %s: %s", request.url.path, exc)
        return JSONResponse(content={"ok": False, "error": "Ошибка сервера"}, status_code=500)

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
