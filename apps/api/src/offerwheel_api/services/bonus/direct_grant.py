"""Manager-initiated spin grants capped per (manager, customer) pair."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.settings import settings
from offerwheel_api.models.bonus import BonusSpinSource
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.manager import DirectSpinGrant, Manager, ManagerAuditAction, ManagerAuditLog
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.bonus.grant_service import BonusSpinService, log_grant_failure
from offerwheel_api.services.errors import (
    LimitReachedError,
    NotEligibleError,
    NotFoundError,
    PromotionError,
    TransientInfraError,
)

SPINS_PER_DIRECT_GRANT = 1
_PHONE_SEPARATORS = re.compile(r"[\s\-+()]")


@dataclass
class DirectGrantResult:
    success: bool
    spins_granted: int
    total_granted_to_user: int
    remaining_limit: int
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class CustomerSearchResult:
    id: UUID
    phone: str
    name: Optional[str]
    email: Optional[str]
    total_spins_granted: int
    remaining_limit: int


class DirectGrantService:
    """Grant one bonus spin per call, never beyond ``manager.max_spins_per_user``.

    The manager row is locked while prior grants are summed, so the cap check
    and the grant insert happen in one transaction. The grant row, the ledger
    increment and the audit entry commit together or not at all.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._ledger = BonusSpinService(db_session)

    async def grant_direct_spin(
        self,
        manager_id: UUID,
        user_id: UUID,
        comment: str | None = None,
    ) -> DirectGrantResult:
        comment = (comment or "").strip() or None
        reason = "Direct spin grant by manager" + (f": {comment}" if comment else "")
        total_granted = 0
        max_per_user = 0

        try:
            manager = await self._load_manager(manager_id, lock=True)
            max_per_user = manager.max_spins_per_user
            tenant_id = manager.tenant_id
            user = await self._db.get(EndUser, user_id)
            if user is None:
                raise NotFoundError("Customer not found", code="user_not_found")
            if user.tenant_id != tenant_id:
                raise NotFoundError("Customer belongs to a different business", code="tenant_mismatch")

            total_granted = await self._granted_total(manager_id, user_id)
            if total_granted >= max_per_user:
                raise LimitReachedError(
                    f"Limit reached. You have already granted {total_granted} spins "
                    f"to this customer (max: {max_per_user})"
                )

            spins_to_grant = min(SPINS_PER_DIRECT_GRANT, max_per_user - total_granted)
            self._db.add(
                DirectSpinGrant(
                    tenant_id=tenant_id,
                    manager_id=manager_id,
                    user_id=user_id,
                    spins_granted=spins_to_grant,
                    comment=comment,
                )
            )
            new_spin_count = await self._ledger.apply_grant(
                user_id,
                spins_to_grant,
                reason,
                str(manager_id),
                source=BonusSpinSource.DIRECT_GRANT,
            )
            self._db.add(
                ManagerAuditLog(
                    tenant_id=tenant_id,
                    manager_id=manager_id,
                    action=ManagerAuditAction.DIRECT_SPIN_GRANT,
                    target_user_id=user_id,
                    spins_granted=spins_to_grant,
                    comment=comment or "Direct spin grant",
                )
            )
            await self._db.commit()
        except PromotionError as exc:
            await self._db.rollback()
            return self._failure(exc.message, exc.code, manager_id, user_id, reason, total_granted, max_per_user)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            return self._failure(str(exc), TransientInfraError.code, manager_id, user_id, reason, total_granted, max_per_user)

        total_after = total_granted + spins_to_grant
        get_spin_store().record_grant(BonusSpinSource.DIRECT_GRANT.value, success=True)
        logger.info(
            "Direct spin granted",
            manager_id=str(manager_id),
            user_id=str(user_id),
            spins_granted=spins_to_grant,
            total_granted=total_after,
            new_spin_count=new_spin_count,
        )
        return DirectGrantResult(
            success=True,
            spins_granted=spins_to_grant,
            total_granted_to_user=total_after,
            remaining_limit=max_per_user - total_after,
        )

    async def search_customers(self, manager_id: UUID, query: str) -> list[CustomerSearchResult]:
        """Tenant-scoped phone or name lookup annotated with this manager's grant headroom."""

        manager = await self._load_manager(manager_id)
        term = (query or "").strip()
        if not term:
            return []

        normalized = _PHONE_SEPARATORS.sub("", term)
        conditions = [
            EndUser.phone.contains(term, autoescape=True),
            func.lower(EndUser.name).contains(term.lower(), autoescape=True),
        ]
        if normalized and normalized != term:
            conditions.append(EndUser.phone.contains(normalized, autoescape=True))
        if len(normalized) >= 10:
            conditions.append(EndUser.phone.endswith(normalized[-10:], autoescape=True))

        stmt = (
            select(EndUser)
            .where(EndUser.tenant_id == manager.tenant_id, or_(*conditions))
            .order_by(EndUser.created_at.desc())
            .limit(settings.customer_search_limit)
        )
        users: Sequence[EndUser] = (await self._db.execute(stmt)).scalars().all()
        if not users:
            logger.info("Customer search returned no results", manager_id=str(manager_id), query=term)
            return []

        totals_stmt = (
            select(DirectSpinGrant.user_id, func.coalesce(func.sum(DirectSpinGrant.spins_granted), 0))
            .where(
                DirectSpinGrant.manager_id == manager_id,
                DirectSpinGrant.user_id.in_([user.id for user in users]),
            )
            .group_by(DirectSpinGrant.user_id)
        )
        totals = {user_id: int(total) for user_id, total in (await self._db.execute(totals_stmt)).all()}

        return [
            CustomerSearchResult(
                id=user.id,
                phone=user.phone,
                name=user.name,
                email=user.email,
                total_spins_granted=totals.get(user.id, 0),
                remaining_limit=max(manager.max_spins_per_user - totals.get(user.id, 0), 0),
            )
            for user in users
        ]

    async def _load_manager(self, manager_id: UUID, *, lock: bool = False) -> Manager:
        stmt = select(Manager).where(Manager.id == manager_id)
        if lock:
            stmt = stmt.with_for_update()
        manager = (await self._db.execute(stmt)).scalar_one_or_none()
        if manager is None:
            raise NotFoundError("Manager not found", code="manager_not_found")
        if not manager.is_active:
            raise NotEligibleError("Manager account is inactive", reason="manager_inactive")
        return manager

    async def _granted_total(self, manager_id: UUID, user_id: UUID) -> int:
        total = await self._db.scalar(
            select(func.coalesce(func.sum(DirectSpinGrant.spins_granted), 0)).where(
                DirectSpinGrant.manager_id == manager_id,
                DirectSpinGrant.user_id == user_id,
            )
        )
        return int(total or 0)

    @staticmethod
    def _failure(
        error: str,
        code: str,
        manager_id: UUID,
        user_id: UUID,
        reason: str,
        total_granted: int,
        max_per_user: int,
    ) -> DirectGrantResult:
        log_grant_failure(
            error,
            user_id=user_id,
            amount=SPINS_PER_DIRECT_GRANT,
            reason=reason,
            granted_by=str(manager_id),
            source=BonusSpinSource.DIRECT_GRANT,
        )
        get_spin_store().record_grant(BonusSpinSource.DIRECT_GRANT.value, success=False, error_code=code)
        return DirectGrantResult(
            success=False,
            spins_granted=0,
            total_granted_to_user=total_granted,
            remaining_limit=max(max_per_user - total_granted, 0),
            error=error,
            error_code=code,
        )


__all__ = ["CustomerSearchResult", "DirectGrantResult", "DirectGrantService", "SPINS_PER_DIRECT_GRANT"]
