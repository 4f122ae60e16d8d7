from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.settings import settings
from offerwheel_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        logger.warning("Readiness database check failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({error})")
        status = "error"

    if settings.notification_dispatch_enabled and settings.whatsapp_api_key:
        components["whatsapp"] = ComponentStatus(status="ready")
    elif settings.notification_dispatch_enabled:
        components["whatsapp"] = ComponentStatus(
            status="ready",
            detail="No platform API key; tenant or platform settings rows must supply one",
        )
    else:
        components["whatsapp"] = ComponentStatus(
            status="disabled",
            detail="Notification dispatch disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
