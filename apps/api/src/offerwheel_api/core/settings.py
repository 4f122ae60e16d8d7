from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./offerwheel.db"
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    # Application URLs
    app_base_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # WhatsApp transport (lowest-precedence defaults; tenants and platform settings override)
    whatsapp_api_url: str = "https://unofficial.cloudwapi.in/send-message"
    whatsapp_api_key: str = ""
    whatsapp_sender: str = ""
    whatsapp_default_country_code: str = "91"
    whatsapp_timeout_seconds: float = 10.0

    # Notification retry
    notification_dispatch_enabled: bool = True
    notification_max_attempts: int = 3
    notification_backoff_seconds: float = 2.0

    # Vouchers
    voucher_code_max_attempts: int = 5
    qr_service_base_url: str = "https://api.qrserver.com/v1/create-qr-code/"
    qr_image_size: int = 400

    # Prize selection
    prize_reservation_max_rerolls: int = 3
    prize_day_timezone: str = "UTC"

    # Manager tooling
    customer_search_limit: int = 50

    @field_validator("whatsapp_default_country_code", mode="before")
    @classmethod
    def _strip_country_code(cls, value: object) -> str:
        if value is None:
            return ""
        return "".join(ch for ch in str(value) if ch.isdigit())

    @field_validator("notification_max_attempts", "voucher_code_max_attempts")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


settings = get_settings()
