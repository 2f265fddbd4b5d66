"""
Gift shop configuration
"""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env.

    NOTE: For production, set BOT_TOKEN, ADMIN_TG_ID and a secure ADMIN_PASSWORD.
    """

    # Telegram Bot
    BOT_TOKEN: str = ""
    ADMIN_TG_ID: Optional[int] = None
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = None
    FAQ_URL: Optional[str] = None

    # Front-end where codes are redeemed
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: List[str] = ["*"]

    # Payments
    PAYMENT_PROVIDER: str = "stub"  # stub, yookassa
    PAYMENT_REDIRECT_URL: str = "https://t.me/gift_celler_bot"
    YOOKASSA_SHOP_ID: Optional[str] = None
    YOOKASSA_SECRET: Optional[str] = None
    KEY_PRICE_RUB: int = 100

    # Abandoned reservations; 0 disables the sweeper
    RESERVATION_TTL_MINUTES: int = 0
    SWEEP_INTERVAL_SECONDS: int = 60

    # Admin API
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 10000
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./giftshop.db"
    DATABASE_ECHO: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


def get_settings() -> Settings:
    return Settings()
