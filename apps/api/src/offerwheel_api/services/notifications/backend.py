"""WhatsApp transport implementations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

import httpx
from loguru import logger

from offerwheel_api.core.settings import settings
from offerwheel_api.services.notifications.config import WhatsAppConfig


class WhatsAppBackend(Protocol):
    """Send one message; return a truthy payload on success, ``None`` on failure."""

    async def send_raw(self, phone: str, message: str, config: WhatsAppConfig) -> Optional[Any]:
        ...


def format_phone_number(phone: str, country_code: str | None = None) -> str:
    """Prefix local ten-digit numbers with the default country code."""

    country_code = settings.whatsapp_default_country_code if country_code is None else country_code
    digits = "".join(ch for ch in phone if ch.isdigit())
    if not country_code or digits.startswith(country_code) or len(digits) > 10:
        return digits
    return f"{country_code}{digits}"


def mask_phone(phone: str) -> str:
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]


class HttpWhatsAppBackend:
    """Posts to a cloudwapi-compatible ``send-message`` endpoint."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client = http_client
        self._timeout = timeout_seconds or settings.whatsapp_timeout_seconds

    async def send_raw(self, phone: str, message: str, config: WhatsAppConfig) -> Optional[Any]:
        if not config.is_complete:
            logger.error(
                "WhatsApp configuration missing API key or sender",
                config_source=config.source,
            )
            return None

        number = format_phone_number(phone)
        payload = {
            "api_key": config.api_key,
            "sender": config.sender,
            "number": number,
            "message": message,
        }
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        owns_client = self._client is None
        try:
            response = await client.post(config.api_url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "WhatsApp provider request failed",
                number=mask_phone(number),
                error=str(exc),
                config_source=config.source,
            )
            return None
        finally:
            if owns_client:
                await client.aclose()

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        if isinstance(body, dict) and body.get("status") is False:
            logger.warning("WhatsApp provider rejected message", number=mask_phone(number), response=body)
            return None
        return body or {"status": True}


@dataclass
class InMemoryWhatsAppBackend:
    """Records messages for tests; ``fail_times`` makes the first N sends fail."""

    sent_messages: List[tuple[str, str]]
    attempts: int
    fail_times: int

    def __init__(self, *, fail_times: int = 0) -> None:
        self.sent_messages = []
        self.attempts = 0
        self.fail_times = fail_times

    async def send_raw(self, phone: str, message: str, config: WhatsAppConfig) -> Optional[Any]:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            return None
        self.sent_messages.append((phone, message))
        return {"status": True, "attempt": self.attempts}


__all__ = [
    "HttpWhatsAppBackend",
    "InMemoryWhatsAppBackend",
    "WhatsAppBackend",
    "format_phone_number",
    "mask_phone",
]
