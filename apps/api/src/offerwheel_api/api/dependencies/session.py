"""Identity dependencies forwarded by the auth gateway."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.db.session import get_session
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.manager import Manager
from offerwheel_api.models.tenant import Tenant


def _parse_identity(raw: str | None, label: str) -> UUID:
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {label} context",
        )
    try:
        return UUID(raw)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} identifier",
        ) from error


async def require_customer_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    tenant_slug: str | None = Header(None, alias="X-Tenant-Slug"),
    db: AsyncSession = Depends(get_session),
) -> EndUser:
    """Resolve the OTP-verified customer from forwarded session headers.

    When the gateway also forwards the tenant slug, the customer must belong to
    that tenant; a session from another tenant is treated as unknown.
    """

    user_id = _parse_identity(session_user, "session user")
    stmt = select(EndUser).where(EndUser.id == user_id)
    slug = (tenant_slug or "").strip().lower()
    if slug:
        stmt = stmt.join(Tenant, Tenant.id == EndUser.tenant_id).where(Tenant.slug == slug)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        )
    return user


async def require_manager_session(
    manager_header: str | None = Header(None, alias="X-Manager-Id"),
    db: AsyncSession = Depends(get_session),
) -> Manager:
    """Resolve an active manager from forwarded session headers."""

    manager_id = _parse_identity(manager_header, "manager")
    manager = (await db.execute(select(Manager).where(Manager.id == manager_id))).scalar_one_or_none()
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Manager not found",
        )
    if not manager.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager account is inactive",
        )
    return manager
