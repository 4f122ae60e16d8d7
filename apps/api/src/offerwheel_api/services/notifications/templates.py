"""WhatsApp message builders for spin engine events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional, Union

from offerwheel_api.models.notification import NotificationCategoryEnum


def _spins(count: int) -> str:
    return f"{count} bonus spin" if count == 1 else f"{count} bonus spins"


def format_expiry(expires_at: datetime) -> str:
    return expires_at.strftime("%d %b %Y")


@dataclass(frozen=True)
class ApprovalMessage:
    task_type: str
    spins: int
    customer_name: Optional[str] = None

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.APPROVAL
    store_body: ClassVar[bool] = True

    def render(self) -> str:
        greeting = f"Congratulations {self.customer_name}!" if self.customer_name else "Congratulations!"
        return (
            f"{greeting}\n\n"
            f"Your {self.task_type} task has been verified.\n"
            f"Reward: {_spins(self.spins)} added to your account.\n\n"
            "Spin now and good luck!"
        )


@dataclass(frozen=True)
class RejectionMessage:
    task_type: str
    reason: str

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.REJECTION
    store_body: ClassVar[bool] = True

    def render(self) -> str:
        return (
            f"Your {self.task_type} task could not be verified.\n\n"
            f"Reason: {self.reason}\n\n"
            "Please complete the task again and resubmit."
        )


@dataclass(frozen=True)
class VoucherMessage:
    code: str
    prize_name: str
    expires_at: datetime
    qr_image_url: Optional[str] = None

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.VOUCHER
    store_body: ClassVar[bool] = True

    def render(self) -> str:
        lines = [
            f'Congratulations! You won "{self.prize_name}".',
            "",
            f"Your voucher code: *{self.code}*",
            f"Valid until: {format_expiry(self.expires_at)}",
        ]
        if self.qr_image_url:
            lines.append(f"QR code: {self.qr_image_url}")
        lines += ["", "Show this message at the counter to redeem."]
        return "\n".join(lines)


@dataclass(frozen=True)
class PrizeWinMessage:
    prize_name: str
    coupon_code: Optional[str] = None

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.PRIZE
    store_body: ClassVar[bool] = True

    def render(self) -> str:
        message = f'Congratulations! You\'ve won "{self.prize_name}" from our Spin & Win wheel.'
        if self.coupon_code:
            message += f"\n\nYour Coupon Code: *{self.coupon_code}*"
        return message + "\n\nShow this message to claim your reward!"


@dataclass(frozen=True)
class ReferralMilestoneMessage:
    total_referrals: int
    spins: int

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.GENERIC
    store_body: ClassVar[bool] = True

    def render(self) -> str:
        friends = "friend has" if self.total_referrals == 1 else "friends have"
        return (
            f"Great news! {self.total_referrals} {friends} joined using your referral link.\n\n"
            f"Reward: {_spins(self.spins)} added to your account.\n\n"
            "Keep sharing to earn more!"
        )


@dataclass(frozen=True)
class OtpMessage:
    code: str
    valid_minutes: int = 5

    category: ClassVar[NotificationCategoryEnum] = NotificationCategoryEnum.OTP
    store_body: ClassVar[bool] = False

    def render(self) -> str:
        return (
            f"Your Spin & Win verification code is: {self.code}. "
            f"Valid for {self.valid_minutes} minutes. DO NOT share this code with anyone."
        )


OutboundMessage = Union[
    ApprovalMessage,
    RejectionMessage,
    VoucherMessage,
    PrizeWinMessage,
    ReferralMilestoneMessage,
    OtpMessage,
    str,
]


def render_message(message: OutboundMessage) -> str:
    return message if isinstance(message, str) else message.render()


def message_category(message: OutboundMessage) -> NotificationCategoryEnum:
    return NotificationCategoryEnum.GENERIC if isinstance(message, str) else message.category


__all__ = [
    "ApprovalMessage",
    "OtpMessage",
    "OutboundMessage",
    "PrizeWinMessage",
    "ReferralMilestoneMessage",
    "RejectionMessage",
    "VoucherMessage",
    "format_expiry",
    "message_category",
    "render_message",
]
