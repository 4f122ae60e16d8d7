"""Spin eligibility evaluation for a customer against a campaign."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.clock import as_utc
from offerwheel_api.models.campaign import Campaign
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.spin import Spin
from offerwheel_api.services.errors import NotFoundError

REASON_CAMPAIGN_INACTIVE = "campaign_inactive"
REASON_COOLDOWN = "cooldown"
REASON_NO_SPINS = "no_spins_remaining"


def is_campaign_live(campaign: Campaign, now: datetime) -> bool:
    if not campaign.is_active:
        return False
    return as_utc(campaign.start_date) <= now <= as_utc(campaign.end_date)


@dataclass
class SpinStatus:
    """Serializable eligibility snapshot for a customer and campaign."""

    can_spin: bool
    base_spins_available: int
    bonus_spins_available: int
    total_available: int
    next_spin_in_hours: int
    referrals_progress: int
    referrals_required: int
    total_referrals: int
    reason: Optional[str] = None

    @property
    def uses_bonus_pool(self) -> bool:
        """Base allowance is consumed first; bonus spins only once it is exhausted."""

        return self.base_spins_available <= 0 and self.bonus_spins_available > 0

    def user_message(self) -> str:
        if self.reason == REASON_CAMPAIGN_INACTIVE:
            return "This campaign is not running right now."
        if self.reason == REASON_COOLDOWN:
            hours = self.next_spin_in_hours
            unit = "hour" if hours == 1 else "hours"
            return f"No spins available. Come back in {hours} {unit} or invite friends for bonus spins."
        return "No spins available. Invite friends or complete tasks to earn bonus spins."


class EligibilityEvaluator:
    """Decide whether a customer may spin now and from which pool."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_status(
        self,
        user_id: UUID,
        campaign_id: UUID,
        *,
        tenant_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SpinStatus:
        user, campaign = await self.load_participants(user_id, campaign_id, tenant_id=tenant_id)
        return await self.evaluate(user, campaign, now=now)

    async def load_participants(
        self,
        user_id: UUID,
        campaign_id: UUID,
        *,
        tenant_id: UUID | None = None,
        lock_user: bool = False,
    ) -> tuple[EndUser, Campaign]:
        """Resolve the customer and campaign, enforcing a shared tenant."""

        stmt = select(EndUser).where(EndUser.id == user_id)
        if lock_user:
            stmt = stmt.with_for_update()
        user = (await self._db.execute(stmt)).scalar_one_or_none()
        campaign = await self._db.get(Campaign, campaign_id)

        if user is None:
            raise NotFoundError("Customer not found")
        if campaign is None:
            raise NotFoundError("Campaign not found")
        if user.tenant_id != campaign.tenant_id:
            raise NotFoundError("Campaign not found")
        if tenant_id is not None and campaign.tenant_id != tenant_id:
            raise NotFoundError("Campaign not found")
        return user, campaign

    async def evaluate(
        self,
        user: EndUser,
        campaign: Campaign,
        *,
        now: datetime | None = None,
    ) -> SpinStatus:
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)

        base_available, next_spin_in_hours = await self._base_allowance(user.id, campaign, now)
        bonus_available = await self._bonus_allowance(user, campaign.id)
        total_referrals = await self._referral_count(user.id)

        required = max(campaign.referrals_required_for_spin or 0, 0)
        progress = total_referrals % required if required else total_referrals

        reason: Optional[str] = None
        can_spin = base_available > 0 or bonus_available > 0
        if not is_campaign_live(campaign, now):
            can_spin = False
            reason = REASON_CAMPAIGN_INACTIVE
        elif not can_spin:
            reason = REASON_COOLDOWN if next_spin_in_hours > 0 else REASON_NO_SPINS

        return SpinStatus(
            can_spin=can_spin,
            base_spins_available=base_available,
            bonus_spins_available=bonus_available,
            total_available=base_available + bonus_available,
            next_spin_in_hours=next_spin_in_hours,
            referrals_progress=progress,
            referrals_required=required,
            total_referrals=total_referrals,
            reason=reason,
        )

    async def _base_allowance(self, user_id: UUID, campaign: Campaign, now: datetime) -> tuple[int, int]:
        limit = max(campaign.spin_limit or 0, 0)
        cooldown_hours = max(campaign.spin_cooldown or 0, 0)
        base_filter = (
            Spin.user_id == user_id,
            Spin.campaign_id == campaign.id,
            Spin.is_referral_bonus.is_(False),
        )

        if cooldown_hours == 0:
            used = await self._db.scalar(select(func.count(Spin.id)).where(*base_filter))
            return max(limit - int(used or 0), 0), 0

        # Rolling window: a base spin frees its slot once it is cooldown_hours old.
        window = timedelta(hours=cooldown_hours)
        stmt = (
            select(Spin.created_at)
            .where(*base_filter, Spin.created_at >= now - window)
            .order_by(Spin.created_at.asc())
        )
        in_window = [as_utc(value) for value in (await self._db.execute(stmt)).scalars()]
        available = max(limit - len(in_window), 0)

        next_spin_in_hours = 0
        if available == 0 and limit > 0 and in_window:
            frees_next_slot = in_window[len(in_window) - limit]
            remaining = (frees_next_slot + window - now).total_seconds()
            next_spin_in_hours = max(math.ceil(remaining / 3600), 0)
        return available, next_spin_in_hours

    async def _bonus_allowance(self, user: EndUser, campaign_id: UUID) -> int:
        consumed = await self._db.scalar(
            select(func.count(Spin.id)).where(
                Spin.user_id == user.id,
                Spin.campaign_id == campaign_id,
                Spin.is_referral_bonus.is_(True),
            )
        )
        return max((user.bonus_spins_earned or 0) - int(consumed or 0), 0)

    async def _referral_count(self, user_id: UUID) -> int:
        count = await self._db.scalar(select(func.count(EndUser.id)).where(EndUser.referred_by_id == user_id))
        return int(count or 0)


__all__ = [
    "EligibilityEvaluator",
    "REASON_CAMPAIGN_INACTIVE",
    "REASON_COOLDOWN",
    "REASON_NO_SPINS",
    "SpinStatus",
    "as_utc",
    "is_campaign_live",
]
