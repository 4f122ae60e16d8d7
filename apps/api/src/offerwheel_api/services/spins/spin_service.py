"""Spin orchestration: eligibility gate, prize draw, persistence, voucher."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.models.campaign import Prize
from offerwheel_api.models.spin import Spin
from offerwheel_api.models.tenant import Tenant
from offerwheel_api.models.voucher import Voucher
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.errors import NotEligibleError
from offerwheel_api.services.notifications.dispatcher import NotificationRequest
from offerwheel_api.services.notifications.templates import PrizeWinMessage, VoucherMessage
from offerwheel_api.services.spins.eligibility import EligibilityEvaluator, SpinStatus
from offerwheel_api.services.spins.prize_selector import PrizeSelector
from offerwheel_api.services.vouchers.service import VoucherParams, VoucherService


@dataclass
class IssuedVoucher:
    code: str
    expires_at: datetime
    redemption_limit: int
    qr_image_url: Optional[str]


@dataclass
class SpinOutcome:
    spin_id: UUID
    won_prize: bool
    prize_id: Optional[UUID]
    prize_name: Optional[str]
    message: Optional[str]
    is_bonus_spin: bool
    status: SpinStatus
    voucher: Optional[IssuedVoucher] = None
    replayed: bool = False
    notification: Optional[NotificationRequest] = None

    @property
    def try_again(self) -> bool:
        return not self.won_prize


def _issued(voucher: Voucher | None) -> IssuedVoucher | None:
    if voucher is None:
        return None
    return IssuedVoucher(
        code=voucher.code,
        expires_at=voucher.expires_at,
        redemption_limit=voucher.redemption_limit,
        qr_image_url=voucher.qr_image_url,
    )


class SpinService:
    """Consume one spin for a customer.

    The customer row is locked while eligibility is evaluated and the spin
    is written, so concurrent requests cannot both take the last spin.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rng: random.Random | None = None,
        vouchers: VoucherService | None = None,
    ) -> None:
        self._db = db_session
        self._evaluator = EligibilityEvaluator(db_session)
        self._selector = PrizeSelector(db_session, rng=rng)
        self._vouchers = vouchers or VoucherService(db_session)

    async def spin(
        self,
        user_id: UUID,
        campaign_id: UUID,
        *,
        tenant_id: UUID | None = None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> SpinOutcome:
        if idempotency_key:
            previous = await self._spin_for_key(user_id, idempotency_key)
            if previous is not None:
                return await self._replay(previous, now=now)

        user, campaign = await self._evaluator.load_participants(
            user_id, campaign_id, tenant_id=tenant_id, lock_user=True
        )
        status = await self._evaluator.evaluate(user, campaign, now=now)
        if not status.can_spin:
            await self._db.rollback()
            raise NotEligibleError(status.user_message(), reason=status.reason or "no_spins_remaining")

        use_bonus = status.uses_bonus_pool
        tenant_id = campaign.tenant_id
        tenant_slug = await self._db.scalar(select(Tenant.slug).where(Tenant.id == tenant_id))

        selection = await self._selector.select_prize(campaign.id, now=now)
        prize = selection.prize
        if selection.won_prize and prize is not None:
            message = f"Congratulations! You won {prize.name}!"
        else:
            message = selection.message

        spin = Spin(
            tenant_id=tenant_id,
            user_id=user_id,
            campaign_id=campaign_id,
            prize_id=selection.prize_id,
            won_prize=selection.won_prize,
            is_referral_bonus=use_bonus,
            outcome_message=message,
            idempotency_key=idempotency_key,
        )
        if now is not None:
            spin.created_at = now
        self._db.add(spin)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            if idempotency_key:
                previous = await self._spin_for_key(user_id, idempotency_key)
                if previous is not None:
                    return await self._replay(previous, now=now)
            raise

        spin_id = spin.id
        prize_name = prize.name if prize is not None else None
        voucher_params: VoucherParams | None = None
        if selection.won_prize and prize is not None and (prize.voucher_validity_days or 0) > 0:
            voucher_params = VoucherParams(
                spin_id=spin_id,
                prize_id=prize.id,
                user_id=user_id,
                tenant_id=tenant_id,
                tenant_slug=tenant_slug or "",
                validity_days=prize.voucher_validity_days,
                redemption_limit=prize.voucher_redemption_limit,
                generate_qr=bool(prize.generate_qr),
            )

        pool = "bonus" if use_bonus else "base"
        get_spin_store().record_spin(pool=pool, won=selection.won_prize)
        logger.info(
            "Spin resolved",
            spin_id=str(spin_id),
            user_id=str(user_id),
            campaign_id=str(campaign_id),
            pool=pool,
            won_prize=selection.won_prize,
            prize_id=str(selection.prize_id) if selection.prize_id else None,
            rerolls=selection.rerolls,
        )

        issued: IssuedVoucher | None = None
        if voucher_params is not None:
            issue = await self._vouchers.issue_for_spin(voucher_params)
            issued = _issued(issue.voucher)

        notification: NotificationRequest | None = None
        if issued is not None:
            notification = NotificationRequest(
                user_id=user_id,
                tenant_id=tenant_id,
                message=VoucherMessage(
                    code=issued.code,
                    prize_name=prize_name or "",
                    expires_at=issued.expires_at,
                    qr_image_url=issued.qr_image_url,
                ),
            )
        elif selection.won_prize and prize_name:
            notification = NotificationRequest(
                user_id=user_id,
                tenant_id=tenant_id,
                message=PrizeWinMessage(prize_name=prize_name),
            )

        return SpinOutcome(
            spin_id=spin_id,
            won_prize=selection.won_prize,
            prize_id=selection.prize_id,
            prize_name=prize_name,
            message=message,
            is_bonus_spin=use_bonus,
            status=await self._evaluator.get_status(user_id, campaign_id, now=now),
            voucher=issued,
            notification=notification,
        )

    async def _spin_for_key(self, user_id: UUID, idempotency_key: str) -> Spin | None:
        return await self._db.scalar(
            select(Spin).where(Spin.user_id == user_id, Spin.idempotency_key == idempotency_key)
        )

    async def _replay(self, spin: Spin, *, now: datetime | None) -> SpinOutcome:
        prize_name = None
        if spin.prize_id is not None:
            prize_name = await self._db.scalar(select(Prize.name).where(Prize.id == spin.prize_id))
        voucher = await self._db.scalar(select(Voucher).where(Voucher.spin_id == spin.id))
        logger.info("Replaying spin for repeated request", spin_id=str(spin.id), user_id=str(spin.user_id))
        return SpinOutcome(
            spin_id=spin.id,
            won_prize=spin.won_prize,
            prize_id=spin.prize_id,
            prize_name=prize_name,
            message=spin.outcome_message,
            is_bonus_spin=spin.is_referral_bonus,
            status=await self._evaluator.get_status(spin.user_id, spin.campaign_id, now=now),
            voucher=_issued(voucher),
            replayed=True,
        )


__all__ = ["IssuedVoucher", "SpinOutcome", "SpinService"]
