"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "billing-reconciler"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""

    # Redis (Celery broker + job locks)
    redis_url: str = "redis://localhost:6379/0"

    # Paynow gateway
    paynow_integration_id: str = ""
    paynow_integration_key: str = ""
    paynow_initiate_url: str = "https://www.paynow.co.zw/interface/initiatetransaction"
    paynow_result_url: str = "http://localhost:8000/webhooks/paynow"
    paynow_return_url: str = "http://localhost:3000/payment/complete"
    gateway_timeout_seconds: float = 15.0

    # SMTP
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_name: str = "Christus Veritas Technologies"
    smtp_from_email: str = "noreply@cvt.co.zw"
    support_email: str = "support@christusveritastechnologies.com"

    # Client dashboard (links in emails)
    client_url: str = "http://localhost:3000"

    # Billing
    default_currency: str = "USD"
    billing_timezone: str = "Africa/Harare"
    billing_reminder_days: int = 7
    # Re-send the upcoming-billing reminder every day inside the window
    billing_reminder_daily_repeat: bool = False
    stale_payment_minutes: int = 5

    # Admin
    admin_api_key: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
