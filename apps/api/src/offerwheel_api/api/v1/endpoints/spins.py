"""Customer-facing spin status and spin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.api.dependencies.notifications import get_notification_dispatcher, schedule_notification
from offerwheel_api.api.dependencies.session import require_customer_session
from offerwheel_api.api.errors import promotion_http_error
from offerwheel_api.db.session import get_session
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.services.errors import PromotionError
from offerwheel_api.services.notifications import NotificationDispatcher
from offerwheel_api.services.spins import EligibilityEvaluator, SpinOutcome, SpinService, SpinStatus


router = APIRouter(prefix="/campaigns", tags=["spins"])


class SpinStatusResponse(BaseModel):
    canSpin: bool
    baseSpinsAvailable: int
    bonusSpinsAvailable: int
    totalAvailable: int
    nextSpinInHours: int
    referralsProgress: int
    referralsRequired: int
    totalReferrals: int
    reason: Optional[str] = None
    message: Optional[str] = None


class PrizeSummary(BaseModel):
    id: UUID
    name: Optional[str]


class VoucherResponse(BaseModel):
    code: str
    expiresAt: datetime
    redemptionLimit: int
    qrImageUrl: Optional[str]


class SpinResultResponse(BaseModel):
    spinId: UUID
    wonPrize: bool
    tryAgain: bool
    prize: Optional[PrizeSummary]
    message: Optional[str]
    isBonusSpin: bool
    replayed: bool
    voucher: Optional[VoucherResponse]
    status: SpinStatusResponse


def _status_response(status: SpinStatus) -> SpinStatusResponse:
    return SpinStatusResponse(
        canSpin=status.can_spin,
        baseSpinsAvailable=status.base_spins_available,
        bonusSpinsAvailable=status.bonus_spins_available,
        totalAvailable=status.total_available,
        nextSpinInHours=status.next_spin_in_hours,
        referralsProgress=status.referrals_progress,
        referralsRequired=status.referrals_required,
        totalReferrals=status.total_referrals,
        reason=status.reason,
        message=status.user_message() if not status.can_spin else None,
    )


def _spin_response(outcome: SpinOutcome) -> SpinResultResponse:
    voucher = outcome.voucher
    return SpinResultResponse(
        spinId=outcome.spin_id,
        wonPrize=outcome.won_prize,
        tryAgain=outcome.try_again,
        prize=PrizeSummary(id=outcome.prize_id, name=outcome.prize_name) if outcome.prize_id else None,
        message=outcome.message,
        isBonusSpin=outcome.is_bonus_spin,
        replayed=outcome.replayed,
        voucher=(
            VoucherResponse(
                code=voucher.code,
                expiresAt=voucher.expires_at,
                redemptionLimit=voucher.redemption_limit,
                qrImageUrl=voucher.qr_image_url,
            )
            if voucher
            else None
        ),
        status=_status_response(outcome.status),
    )


@router.get("/{campaign_id}/status", response_model=SpinStatusResponse)
async def get_spin_status(
    campaign_id: UUID,
    customer: EndUser = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
) -> SpinStatusResponse:
    """Report whether the session customer may spin now."""

    try:
        status = await EligibilityEvaluator(db).get_status(customer.id, campaign_id, tenant_id=customer.tenant_id)
    except PromotionError as exc:
        raise promotion_http_error(exc) from exc
    return _status_response(status)


@router.post("/{campaign_id}/spins", response_model=SpinResultResponse, status_code=201)
async def create_spin(
    campaign_id: UUID,
    background_tasks: BackgroundTasks,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    customer: EndUser = Depends(require_customer_session),
    db: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SpinResultResponse:
    """Consume one spin and return the outcome; notifications go out after the response."""

    try:
        outcome = await SpinService(db).spin(
            customer.id,
            campaign_id,
            tenant_id=customer.tenant_id,
            idempotency_key=idempotency_key,
        )
    except PromotionError as exc:
        raise promotion_http_error(exc) from exc

    schedule_notification(background_tasks, dispatcher, outcome.notification)
    return _spin_response(outcome)
