"""Voucher service exports."""

from .codes import generate_voucher_code, qr_image_url, voucher_prefix  # noqa: F401
from .service import (  # noqa: F401
    RedemptionResult,
    VoucherIssueResult,
    VoucherParams,
    VoucherService,
    VoucherSummary,
    VoucherValidation,
)
