"""Referral linking and milestone bonus spins."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.models.bonus import BonusSpinSource
from offerwheel_api.models.campaign import Campaign
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.services.bonus.grant_service import BonusSpinService, GrantResult
from offerwheel_api.services.errors import NotEligibleError, NotFoundError
from offerwheel_api.services.notifications.dispatcher import NotificationRequest
from offerwheel_api.services.notifications.templates import ReferralMilestoneMessage

REFERRAL_MILESTONE_SPINS = 1


@dataclass
class ReferralResult:
    referrer_id: UUID
    total_referrals: int
    milestone_reached: bool
    grant: Optional[GrantResult] = None
    notification: Optional[NotificationRequest] = None


class ReferralService:
    """Link a newly verified customer to their referrer and unlock milestone spins."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._ledger = BonusSpinService(db_session)

    async def attach_referral(
        self,
        user_id: UUID,
        referral_code: str,
        *,
        campaign_id: UUID | None = None,
    ) -> ReferralResult:
        user = await self._db.get(EndUser, user_id)
        if user is None:
            raise NotFoundError("Customer not found", code="customer_not_found")
        if user.referred_by_id is not None:
            raise NotEligibleError("Customer has already been referred", reason="already_referred")

        code = (referral_code or "").strip().upper()
        # The referrer row stays locked until the link commits, so concurrent
        # referees count their links one at a time.
        referrer = (
            await self._db.execute(
                select(EndUser)
                .where(EndUser.referral_code == code, EndUser.tenant_id == user.tenant_id)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if referrer is None:
            raise NotFoundError("Referral code not found", code="referral_code_not_found")
        if referrer.id == user.id:
            raise NotEligibleError("Customers cannot refer themselves", reason="self_referral")

        referrer_id = referrer.id
        tenant_id = user.tenant_id
        campaign = await self._campaign(tenant_id, campaign_id)
        required = campaign.referrals_required_for_spin if campaign is not None else 0

        user.referred_by_id = referrer_id
        await self._db.flush()
        total = int(
            await self._db.scalar(select(func.count(EndUser.id)).where(EndUser.referred_by_id == referrer_id)) or 0
        )
        # The link stands on its own; the milestone grant commits separately
        # and pays out once per milestone.
        await self._db.commit()

        logger.info(
            "Referral attached",
            user_id=str(user_id),
            referrer_id=str(referrer_id),
            total_referrals=total,
        )
        result = ReferralResult(referrer_id=referrer_id, total_referrals=total, milestone_reached=False)
        if not required or total % required != 0:
            return result

        result.milestone_reached = True
        result.grant = await self._ledger.grant_bonus_spins(
            referrer_id,
            REFERRAL_MILESTONE_SPINS,
            f"Referral milestone: {total} referrals",
            "referral",
            source=BonusSpinSource.REFERRAL,
            milestone=total // required,
        )
        if result.grant.success:
            result.notification = NotificationRequest(
                user_id=referrer_id,
                tenant_id=tenant_id,
                message=ReferralMilestoneMessage(total_referrals=total, spins=REFERRAL_MILESTONE_SPINS),
            )
        return result

    async def _campaign(self, tenant_id: UUID, campaign_id: UUID | None) -> Campaign | None:
        if campaign_id is not None:
            campaign = await self._db.get(Campaign, campaign_id)
            if campaign is None or campaign.tenant_id != tenant_id:
                raise NotFoundError("Campaign not found")
            return campaign

        now = datetime.now(timezone.utc)
        return await self._db.scalar(
            select(Campaign)
            .where(
                Campaign.tenant_id == tenant_id,
                Campaign.is_active.is_(True),
                Campaign.start_date <= now,
                Campaign.end_date >= now,
            )
            .order_by(Campaign.start_date.desc())
            .limit(1)
        )


__all__ = ["REFERRAL_MILESTONE_SPINS", "ReferralResult", "ReferralService"]
