"""Voucher code and QR URL generation."""

from __future__ import annotations

import re
import secrets
from urllib.parse import urlencode

from offerwheel_api.core.settings import settings

VOUCHER_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
VOUCHER_ID_LENGTH = 12
PREFIX_LENGTH = 4
VOUCHER_CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{PREFIX_LENGTH}}}-[{VOUCHER_ALPHABET}]{{{VOUCHER_ID_LENGTH}}}$")

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


def voucher_prefix(tenant_slug: str) -> str:
    cleaned = _NON_ALPHANUMERIC.sub("", tenant_slug or "")
    return cleaned[:PREFIX_LENGTH].upper().ljust(PREFIX_LENGTH, "X")


def generate_voucher_code(tenant_slug: str) -> str:
    """Return ``XXXX-XXXXXXXXXXXX``: tenant prefix, dash, 12 unambiguous characters."""

    unique = "".join(secrets.choice(VOUCHER_ALPHABET) for _ in range(VOUCHER_ID_LENGTH))
    return f"{voucher_prefix(tenant_slug)}-{unique}"


def normalize_voucher_code(code: str) -> str:
    return (code or "").strip().upper()


def qr_image_url(code: str, *, size: int | None = None) -> str:
    size = size or settings.qr_image_size
    query = urlencode({"size": f"{size}x{size}", "data": code, "ecc": "M", "margin": 4})
    return f"{settings.qr_service_base_url}?{query}"


__all__ = [
    "VOUCHER_ALPHABET",
    "VOUCHER_CODE_PATTERN",
    "generate_voucher_code",
    "normalize_voucher_code",
    "qr_image_url",
    "voucher_prefix",
]
