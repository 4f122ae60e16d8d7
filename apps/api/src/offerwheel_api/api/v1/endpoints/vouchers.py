from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from offerwheel_api.api.dependencies.session import require_manager_session
from offerwheel_api.api.errors import result_http_error
from offerwheel_api.db.session import get_session
from offerwheel_api.models.manager import Manager
from offerwheel_api.models.voucher import Voucher
from offerwheel_api.services.vouchers import VoucherService


router = APIRouter(prefix="/vouchers", tags=["vouchers"])


class VoucherCodeRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=32)


class VoucherDetail(BaseModel):
    code: str
    expiresAt: datetime
    redemptionCount: int
    redemptionLimit: int
    isRedeemed: bool
    qrImageUrl: Optional[str]


class VoucherValidationResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    voucher: Optional[VoucherDetail] = None


class VoucherSummaryItem(BaseModel):
    code: str
    prizeName: str
    expiresAt: datetime
    redemptionCount: int
    redemptionLimit: int
    status: Literal["active", "expired", "redeemed"]
    qrImageUrl: Optional[str]


def _detail(voucher: Voucher | None) -> VoucherDetail | None:
    if voucher is None:
        return None
    return VoucherDetail(
        code=voucher.code,
        expiresAt=voucher.expires_at,
        redemptionCount=voucher.redemption_count,
        redemptionLimit=voucher.redemption_limit,
        isRedeemed=voucher.is_redeemed,
        qrImageUrl=voucher.qr_image_url,
    )


@router.post("/validate", response_model=VoucherValidationResponse)
async def validate_voucher(
    payload: VoucherCodeRequest,
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> VoucherValidationResponse:
    """Check a code at the counter without consuming it."""

    validation = await VoucherService(db).validate_voucher(payload.code, manager.tenant_id)
    if validation.reason == "wrong_tenant":
        # Other tenants' vouchers are indistinguishable from unknown codes.
        return VoucherValidationResponse(valid=False, reason="not_found")
    return VoucherValidationResponse(
        valid=validation.valid,
        reason=validation.reason,
        voucher=_detail(validation.voucher),
    )


@router.post("/redeem", response_model=VoucherDetail)
async def redeem_voucher(
    payload: VoucherCodeRequest,
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> VoucherDetail:
    result = await VoucherService(db).redeem_voucher(payload.code, manager.tenant_id, str(manager.id))
    if not result.success:
        reason = "not_found" if result.reason == "wrong_tenant" else result.reason
        raise result_http_error(reason, {"message": result.error, "reason": reason})
    return _detail(result.voucher)


@router.get("/lookup-phone", response_model=List[VoucherSummaryItem])
async def lookup_vouchers(
    phone: str = Query(..., min_length=4, max_length=20),
    manager: Manager = Depends(require_manager_session),
    db: AsyncSession = Depends(get_session),
) -> List[VoucherSummaryItem]:
    summaries = await VoucherService(db).list_vouchers_by_phone(phone, manager.tenant_id)
    return [
        VoucherSummaryItem(
            code=item.code,
            prizeName=item.prize_name,
            expiresAt=item.expires_at,
            redemptionCount=item.redemption_count,
            redemptionLimit=item.redemption_limit,
            status=item.status,
            qrImageUrl=item.qr_image_url,
        )
        for item in summaries
    ]
