"""Layered WhatsApp credential resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.settings import Settings, get_settings
from offerwheel_api.models.tenant import PlatformSetting, Tenant

PLATFORM_KEYS = {
    "api_url": "WHATSAPP_API_URL",
    "api_key": "WHATSAPP_API_KEY",
    "sender": "WHATSAPP_SENDER",
}

ConfigSource = Literal["tenant", "platform", "environment"]


@dataclass(frozen=True)
class WhatsAppConfig:
    """Fully resolved transport credentials for one dispatch."""

    api_url: str
    api_key: Optional[str]
    sender: Optional[str]
    source: ConfigSource

    @property
    def is_complete(self) -> bool:
        return bool(self.api_url and self.api_key and self.sender)


def _tenant_override(wa_config: Mapping[str, object] | None) -> WhatsAppConfig | None:
    if not isinstance(wa_config, Mapping):
        return None
    api_url = wa_config.get("apiUrl")
    api_key = wa_config.get("apiKey")
    sender = wa_config.get("sender")
    # A partial tenant override is ignored entirely.
    if not (api_url and api_key and sender):
        return None
    return WhatsAppConfig(api_url=str(api_url), api_key=str(api_key), sender=str(sender), source="tenant")


async def resolve_whatsapp_config(
    session: AsyncSession,
    tenant_id: UUID | None = None,
    *,
    app_settings: Settings | None = None,
) -> WhatsAppConfig:
    """Resolve credentials: tenant override, then platform settings, then environment.

    Resolved fresh on every call so operator changes apply to the next message.
    """

    app_settings = app_settings or get_settings()

    if tenant_id is not None:
        wa_config = await session.scalar(select(Tenant.wa_config).where(Tenant.id == tenant_id))
        override = _tenant_override(wa_config)
        if override is not None:
            return override

    rows = await session.execute(
        select(PlatformSetting.key, PlatformSetting.value).where(PlatformSetting.key.in_(PLATFORM_KEYS.values()))
    )
    platform = {key: value for key, value in rows.all() if value}

    api_url = platform.get(PLATFORM_KEYS["api_url"]) or app_settings.whatsapp_api_url
    api_key = platform.get(PLATFORM_KEYS["api_key"]) or app_settings.whatsapp_api_key or None
    sender = platform.get(PLATFORM_KEYS["sender"]) or app_settings.whatsapp_sender or None
    source: ConfigSource = "platform" if platform else "environment"
    return WhatsAppConfig(api_url=api_url, api_key=api_key, sender=sender, source=source)


__all__ = ["PLATFORM_KEYS", "WhatsAppConfig", "resolve_whatsapp_config"]
