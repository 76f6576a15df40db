"""
Application configuration
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from datetime import datetime, time
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = "sqlite:///./hanami.db"

    # Telegram (salon chat: new bookings, status changes)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_ADMIN_CHAT_ID: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Booking grid
    OPENING_TIME: str = "08:00"
    CLOSING_TIME: str = "18:00"
    SLOT_STEP_MINUTES: int = 15
    BOOKING_DAYS_AHEAD: int = 60

    # Client self-cancellation
    CANCELLATION_WINDOW_HOURS: int = 24

    # Vouchers
    VOUCHER_CODE_PREFIX: str = "HNM"
    VOUCHER_CODE_LENGTH: int = 8
    VOUCHER_CODE_ATTEMPTS: int = 10

    # Development
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    class Config:
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True

    @property
    def opening_time(self) -> time:
        return datetime.strptime(self.OPENING_TIME, "%H:%M").time()

    @property
    def closing_time(self) -> time:
        return datetime.strptime(self.CLOSING_TIME, "%H:%M").time()


@lru_cache()
def get_settings() -> Settings:
    """Cached application settings"""
    return Settings()
