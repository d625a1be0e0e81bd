"""
Configuration settings for the application
"""

import os
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./registrations.db")
    SQLITE_BUSY_TIMEOUT: float = 15.0

    # Security
    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "admin_token_123")
    ORGANISATION_PASSWORD: str = os.getenv("ORGANISATION_PASSWORD", "")

    # Application
    SITE_URL: str = os.getenv("SITE_URL", "http://localhost:8000")
    SCHOOL_NAME: str = "Université d'Evry"
    LOG_LEVEL: str = "INFO"
    # Venue clock for the late on-site tier cutoff
    EVENT_TIMEZONE: str = os.getenv("EVENT_TIMEZONE", "Europe/Paris")

    # Payment gateway (SumUp)
    SUMUP_API_KEY: str | None = os.getenv("SUMUP_API_KEY")
    SUMUP_MERCHANT_CODE: str | None = os.getenv("SUMUP_MERCHANT_CODE")
    SUMUP_API_URL: str = "https://api.sumup.com"
    PAYMENT_CURRENCY: str = "EUR"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Registration e-mails (MailChannels); disabled unless both addresses are set
    MAIL_ADMIN_EMAIL: str | None = os.getenv("MAIL_ADMIN_EMAIL")
    MAIL_REPLY_TO: str | None = os.getenv("MAIL_REPLY_TO")
    MAIL_SENDER_NAME: str = "Nuit de l'Info"
    MAIL_API_URL: str = "https://api.mailchannels.net/tx/v1/send"

    # Capacity fallbacks when the settings table has no value
    MAX_TEAM_SIZE: int = 15
    MAX_TOTAL_PARTICIPANTS: int = 200
    MIN_TEAM_SIZE: int = 1

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:4321",
        "http://localhost:8000",
    ]

    @field_validator("EVENT_TIMEZONE")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    class Config:
        env_file = ".env"
