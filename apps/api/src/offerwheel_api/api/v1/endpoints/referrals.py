from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.api.dependencies.notifications import get_notification_dispatcher, schedule_notification
from offerwheel_api.api.dependencies.session import require_customer_session
from offerwheel_api.api.errors import promotion_http_error
from offerwheel_api.db.session import get_session
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.services.bonus.referrals import REFERRAL_MILESTONE_SPINS, ReferralService
from offerwheel_api.services.errors import PromotionError
from offerwheel_api.services.notifications import NotificationDispatcher


router = APIRouter(prefix="/referrals", tags=["referrals"])


class ReferralRequest(BaseModel):
    referralCode: str = Field(..., min_length=1, max_length=16)
    campaignId: Optional[UUID] = None


class ReferralResponse(BaseModel):
    referrerId: UUID
    totalReferrals: int
    milestoneReached: bool
    bonusSpinsGranted: int


@router.post("", response_model=ReferralResponse, status_code=201)
async def attach_referral(
    payload: ReferralRequest,
    background_tasks: BackgroundTasks,
    customer: EndUser = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReferralResponse:
    """Record who referred the session customer."""

    try:
        result = await ReferralService(db).attach_referral(
            customer.id,
            payload.referralCode,
            campaign_id=payload.campaignId,
        )
    except PromotionError as exc:
        raise promotion_http_error(exc) from exc

    schedule_notification(background_tasks, dispatcher, result.notification)
    granted = REFERRAL_MILESTONE_SPINS if result.grant is not None and result.grant.success else 0
    return ReferralResponse(
        referrerId=result.referrer_id,
        totalReferrals=result.total_referrals,
        milestoneReached=result.milestone_reached,
        bonusSpinsGranted=granted,
    )
