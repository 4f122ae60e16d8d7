"""Bonus spin ledger mutation shared by referrals, task approvals and direct grants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.models.bonus import BonusSpinGrant, BonusSpinSource
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.spin import Spin
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.errors import NotEligibleError, NotFoundError, PromotionError, TransientInfraError

NO_PRIOR_SPIN_MESSAGE = "Customer must spin at least once before receiving bonus spins"


@dataclass
class GrantResult:
    success: bool
    new_spin_count: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class BonusSpinService:
    """Increment ``EndUser.bonus_spins_earned`` under the has-spun precondition."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def grant_bonus_spins(
        self,
        user_id: UUID,
        amount: int,
        reason: str,
        granted_by: str,
        *,
        source: BonusSpinSource = BonusSpinSource.MANUAL,
        milestone: int | None = None,
    ) -> GrantResult:
        """Grant spins in a transaction of their own; never raises for expected failures.

        A ``milestone`` is recorded on the ledger row and pays out at most once
        per user and source.
        """

        try:
            new_count = await self.apply_grant(user_id, amount, reason, granted_by, source=source, milestone=milestone)
            await self._db.commit()
        except PromotionError as exc:
            await self._db.rollback()
            log_grant_failure(exc.message, user_id=user_id, amount=amount, reason=reason, granted_by=granted_by, source=source)
            get_spin_store().record_grant(source.value, success=False, error_code=exc.code)
            return GrantResult(success=False, error=exc.message, error_code=exc.code)
        except IntegrityError as exc:
            await self._db.rollback()
            if milestone is None:
                return _infra_failure(exc, user_id=user_id, amount=amount, reason=reason, granted_by=granted_by, source=source)
            logger.warning(
                "Bonus spin milestone already granted",
                user_id=str(user_id),
                source=source.value,
                milestone=milestone,
            )
            get_spin_store().record_grant(source.value, success=False, error_code="already_granted")
            return GrantResult(success=False, error="Milestone has already been granted", error_code="already_granted")
        except SQLAlchemyError as exc:
            await self._db.rollback()
            return _infra_failure(exc, user_id=user_id, amount=amount, reason=reason, granted_by=granted_by, source=source)

        get_spin_store().record_grant(source.value, success=True)
        logger.info(
            "Granted bonus spins",
            user_id=str(user_id),
            amount=amount,
            reason=reason,
            granted_by=granted_by,
            source=source.value,
            new_spin_count=new_count,
        )
        return GrantResult(success=True, new_spin_count=new_count)

    async def apply_grant(
        self,
        user_id: UUID,
        amount: int,
        reason: str,
        granted_by: str,
        *,
        source: BonusSpinSource,
        milestone: int | None = None,
    ) -> int:
        """Mutate the ledger inside the caller's transaction and return the new total.

        Raises ``NotFoundError`` or ``NotEligibleError``; the caller owns
        commit and rollback.
        """

        if amount < 1:
            raise PromotionError("Bonus spin amount must be a positive integer", code="invalid_amount")

        user = (
            await self._db.execute(select(EndUser).where(EndUser.id == user_id).with_for_update())
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError("Customer not found", code="customer_not_found")

        has_spun = await self._db.scalar(select(Spin.id).where(Spin.user_id == user_id).limit(1))
        if has_spun is None:
            raise NotEligibleError(NO_PRIOR_SPIN_MESSAGE, reason="no_prior_spin")

        await self._db.execute(
            update(EndUser)
            .where(EndUser.id == user_id)
            .values(bonus_spins_earned=EndUser.bonus_spins_earned + amount)
            .execution_options(synchronize_session=False)
        )
        self._db.add(
            BonusSpinGrant(
                tenant_id=user.tenant_id,
                user_id=user_id,
                amount=amount,
                source=source,
                reason=reason,
                granted_by=granted_by,
                milestone=milestone,
            )
        )
        await self._db.flush()
        await self._db.refresh(user, attribute_names=["bonus_spins_earned"])
        return int(user.bonus_spins_earned)


def _infra_failure(
    exc: SQLAlchemyError,
    *,
    user_id: UUID,
    amount: int,
    reason: str,
    granted_by: str,
    source: BonusSpinSource,
) -> GrantResult:
    log_grant_failure(str(exc), user_id=user_id, amount=amount, reason=reason, granted_by=granted_by, source=source)
    get_spin_store().record_grant(source.value, success=False, error_code=TransientInfraError.code)
    return GrantResult(
        success=False,
        error="Bonus spins could not be granted, please retry",
        error_code=TransientInfraError.code,
    )


def log_grant_failure(
    error: str,
    *,
    user_id: UUID,
    amount: int,
    reason: str,
    granted_by: str,
    source: BonusSpinSource,
) -> None:
    logger.error(
        "Failed to grant bonus spins",
        error=error,
        user_id=str(user_id),
        amount=amount,
        reason=reason,
        granted_by=granted_by,
        source=source.value,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


__all__ = ["BonusSpinService", "GrantResult", "NO_PRIOR_SPIN_MESSAGE", "log_grant_failure"]
