"""Voucher issuance, validation and redemption."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.core.clock import as_utc
from offerwheel_api.core.settings import settings
from offerwheel_api.models.campaign import Prize
from offerwheel_api.models.end_user import EndUser
from offerwheel_api.models.voucher import Voucher
from offerwheel_api.observability.spins import get_spin_store
from offerwheel_api.services.errors import PromotionError, TransientInfraError
from offerwheel_api.services.vouchers.codes import generate_voucher_code, normalize_voucher_code, qr_image_url

InvalidReason = Literal["not_found", "wrong_tenant", "expired", "redeemed", "limit_reached"]
VoucherStatus = Literal["active", "expired", "redeemed"]


@dataclass(frozen=True)
class VoucherParams:
    spin_id: UUID
    prize_id: UUID
    user_id: UUID
    tenant_id: UUID
    tenant_slug: str
    validity_days: int
    redemption_limit: int
    generate_qr: bool


@dataclass
class VoucherIssueResult:
    voucher: Optional[Voucher]
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.voucher is not None


@dataclass
class VoucherValidation:
    valid: bool
    reason: Optional[InvalidReason] = None
    voucher: Optional[Voucher] = None


@dataclass
class RedemptionResult:
    success: bool
    voucher: Optional[Voucher] = None
    error: Optional[str] = None
    reason: Optional[InvalidReason] = None


@dataclass
class VoucherSummary:
    code: str
    prize_name: str
    expires_at: datetime
    redemption_count: int
    redemption_limit: int
    status: VoucherStatus
    qr_image_url: Optional[str]


_INVALID_MESSAGES: dict[str, str] = {
    "not_found": "Voucher not found",
    "wrong_tenant": "Voucher belongs to a different business",
    "expired": "Voucher has expired",
    "redeemed": "Voucher has already been redeemed",
    "limit_reached": "Voucher redemption limit reached",
}


class VoucherService:
    """Mint one voucher per winning spin and check it at the counter."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        code_generator: Callable[[str], str] = generate_voucher_code,
    ) -> None:
        self._db = db_session
        self._generate_code = code_generator

    async def create_voucher(self, params: VoucherParams, *, now: datetime | None = None) -> Voucher:
        """Create and commit the spin's voucher, or return the one it already has."""

        existing = await self._voucher_for_spin(params.spin_id)
        if existing is not None:
            return existing

        issued_at = now or datetime.now(timezone.utc)
        max_attempts = settings.voucher_code_max_attempts
        for attempt in range(1, max_attempts + 1):
            code = self._generate_code(params.tenant_slug)
            if await self._db.scalar(select(Voucher.id).where(Voucher.code == code)) is not None:
                logger.warning("Voucher code collision", code=code, attempt=attempt, max_attempts=max_attempts)
                continue

            voucher = Voucher(
                code=code,
                tenant_id=params.tenant_id,
                spin_id=params.spin_id,
                prize_id=params.prize_id,
                user_id=params.user_id,
                expires_at=issued_at + timedelta(days=params.validity_days),
                redemption_limit=params.redemption_limit,
                redemption_count=0,
                is_redeemed=False,
                qr_image_url=qr_image_url(code) if params.generate_qr else None,
            )
            self._db.add(voucher)
            try:
                await self._db.commit()
            except IntegrityError:
                await self._db.rollback()
                # Either a concurrent issue for the same spin won, or the code collided.
                existing = await self._voucher_for_spin(params.spin_id)
                if existing is not None:
                    return existing
                logger.warning("Voucher code collision on insert", code=code, attempt=attempt)
                continue

            logger.info(
                "Voucher issued",
                voucher_id=str(voucher.id),
                spin_id=str(params.spin_id),
                tenant_id=str(params.tenant_id),
                expires_at=voucher.expires_at.isoformat(),
            )
            return voucher

        raise TransientInfraError(f"Failed to generate unique voucher code after {max_attempts} attempts")

    async def issue_for_spin(self, params: VoucherParams) -> VoucherIssueResult:
        """Issue without raising; a failed voucher never invalidates the win."""

        try:
            voucher = await self.create_voucher(params)
        except (PromotionError, SQLAlchemyError) as exc:
            await self._db.rollback()
            logger.error(
                "Voucher issuance failed",
                error=str(exc),
                spin_id=str(params.spin_id),
                prize_id=str(params.prize_id),
                user_id=str(params.user_id),
                tenant_id=str(params.tenant_id),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            get_spin_store().record_voucher("failed")
            return VoucherIssueResult(voucher=None, error=str(exc))

        get_spin_store().record_voucher("issued")
        return VoucherIssueResult(voucher=voucher)

    async def validate_voucher(self, code: str, tenant_id: UUID, *, now: datetime | None = None) -> VoucherValidation:
        voucher = await self._db.scalar(
            select(Voucher).where(Voucher.code == normalize_voucher_code(code)).execution_options(populate_existing=True)
        )
        if voucher is None:
            return VoucherValidation(valid=False, reason="not_found")
        if voucher.tenant_id != tenant_id:
            return VoucherValidation(valid=False, reason="wrong_tenant")

        now = now or datetime.now(timezone.utc)
        if as_utc(voucher.expires_at) < now:
            return VoucherValidation(valid=False, reason="expired", voucher=voucher)
        if voucher.is_redeemed:
            return VoucherValidation(valid=False, reason="redeemed", voucher=voucher)
        if voucher.redemption_count >= voucher.redemption_limit:
            return VoucherValidation(valid=False, reason="limit_reached", voucher=voucher)
        return VoucherValidation(valid=True, voucher=voucher)

    async def redeem_voucher(self, code: str, tenant_id: UUID, redeemed_by: str) -> RedemptionResult:
        validation = await self.validate_voucher(code, tenant_id)
        if not validation.valid:
            return RedemptionResult(
                success=False,
                voucher=validation.voucher,
                error=_INVALID_MESSAGES[validation.reason or "not_found"],
                reason=validation.reason,
            )

        voucher = validation.voucher
        redeemed_at = datetime.now(timezone.utc)
        result = await self._db.execute(
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.is_redeemed.is_(False),
                Voucher.redemption_count < Voucher.redemption_limit,
            )
            .values(
                redemption_count=Voucher.redemption_count + 1,
                is_redeemed=case((Voucher.redemption_count + 1 >= Voucher.redemption_limit, True), else_=False),
                redeemed_at=redeemed_at,
                redeemed_by=redeemed_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._db.rollback()
            return RedemptionResult(success=False, error=_INVALID_MESSAGES["limit_reached"], reason="limit_reached")

        await self._db.commit()
        await self._db.refresh(voucher)
        logger.info(
            "Voucher redeemed",
            voucher_id=str(voucher.id),
            tenant_id=str(tenant_id),
            redeemed_by=redeemed_by,
            redemption_count=voucher.redemption_count,
        )
        return RedemptionResult(success=True, voucher=voucher)

    async def list_vouchers_by_phone(
        self, phone: str, tenant_id: UUID, *, now: datetime | None = None
    ) -> list[VoucherSummary]:
        digits = re.sub(r"\D", "", phone or "")
        if not digits:
            return []
        suffix = digits[-10:]
        now = now or datetime.now(timezone.utc)

        stmt = (
            select(Voucher, Prize.name)
            .join(EndUser, EndUser.id == Voucher.user_id)
            .join(Prize, Prize.id == Voucher.prize_id)
            .where(Voucher.tenant_id == tenant_id, EndUser.phone.endswith(suffix, autoescape=True))
            .order_by(Voucher.created_at.desc())
        )
        summaries: list[VoucherSummary] = []
        for voucher, prize_name in (await self._db.execute(stmt)).all():
            if voucher.is_redeemed or voucher.redemption_count >= voucher.redemption_limit:
                status: VoucherStatus = "redeemed"
            elif as_utc(voucher.expires_at) < now:
                status = "expired"
            else:
                status = "active"
            summaries.append(
                VoucherSummary(
                    code=voucher.code,
                    prize_name=prize_name,
                    expires_at=as_utc(voucher.expires_at),
                    redemption_count=voucher.redemption_count,
                    redemption_limit=voucher.redemption_limit,
                    status=status,
                    qr_image_url=voucher.qr_image_url,
                )
            )
        return summaries

    async def _voucher_for_spin(self, spin_id: UUID) -> Voucher | None:
        return await self._db.scalar(select(Voucher).where(Voucher.spin_id == spin_id))


__all__ = [
    "RedemptionResult",
    "VoucherIssueResult",
    "VoucherParams",
    "VoucherService",
    "VoucherSummary",
    "VoucherValidation",
]
