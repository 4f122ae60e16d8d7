"""Notification service package."""

from .backend import (
    HttpWhatsAppBackend,
    InMemoryWhatsAppBackend,
    WhatsAppBackend,
    format_phone_number,
    mask_phone,
)
from .config import WhatsAppConfig, resolve_whatsapp_config
from .dispatcher import NotificationDispatcher, NotificationRequest, NotificationResult
from .templates import (
    ApprovalMessage,
    OtpMessage,
    OutboundMessage,
    PrizeWinMessage,
    ReferralMilestoneMessage,
    RejectionMessage,
    VoucherMessage,
)

__all__ = [
    "ApprovalMessage",
    "HttpWhatsAppBackend",
    "InMemoryWhatsAppBackend",
    "NotificationDispatcher",
    "NotificationRequest",
    "NotificationResult",
    "OtpMessage",
    "OutboundMessage",
    "PrizeWinMessage",
    "ReferralMilestoneMessage",
    "RejectionMessage",
    "VoucherMessage",
    "WhatsAppBackend",
    "WhatsAppConfig",
    "format_phone_number",
    "mask_phone",
    "resolve_whatsapp_config",
]
