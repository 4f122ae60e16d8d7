from datetime import datetime, timezone

from offerwheel_api.models.notification import NotificationCategoryEnum
from offerwheel_api.services.notifications import (
    ApprovalMessage,
    OtpMessage,
    PrizeWinMessage,
    ReferralMilestoneMessage,
    RejectionMessage,
    VoucherMessage,
)
from offerwheel_api.services.notifications.templates import message_category, render_message


def test_approval_message_pluralises_spins() -> None:
    single = ApprovalMessage(task_type="instagram - follow", spins=1).render()
    several = ApprovalMessage(task_type="instagram - follow", spins=3, customer_name="Priya").render()

    assert "1 bonus spin added" in single
    assert single.startswith("Congratulations!")
    assert "3 bonus spins added" in several
    assert several.startswith("Congratulations Priya!")
    assert "instagram - follow" in several


def test_rejection_message_carries_reason() -> None:
    text = RejectionMessage(task_type="facebook - share", reason="Screenshot missing").render()

    assert "could not be verified" in text
    assert "Reason: Screenshot missing" in text


def test_voucher_message_includes_code_expiry_and_optional_qr() -> None:
    expires = datetime(2026, 1, 9, tzinfo=timezone.utc)
    plain = VoucherMessage(code="CAFE-ABCDEFGHJKMN", prize_name="Free Latte", expires_at=expires).render()
    with_qr = VoucherMessage(
        code="CAFE-ABCDEFGHJKMN",
        prize_name="Free Latte",
        expires_at=expires,
        qr_image_url="https://qr.example/x.png",
    ).render()

    assert "*CAFE-ABCDEFGHJKMN*" in plain
    assert "Valid until: 09 Jan 2026" in plain
    assert "QR code" not in plain
    assert "QR code: https://qr.example/x.png" in with_qr


def test_prize_and_referral_messages() -> None:
    prize = PrizeWinMessage(prize_name="Sticker", coupon_code="SAVE10").render()
    milestone = ReferralMilestoneMessage(total_referrals=3, spins=1).render()

    assert '"Sticker"' in prize
    assert "*SAVE10*" in prize
    assert "3 friends have joined" in milestone
    assert "1 bonus spin added" in milestone


def test_categories_and_plain_text() -> None:
    assert message_category(OtpMessage(code="123456")) == NotificationCategoryEnum.OTP
    assert OtpMessage.store_body is False
    assert message_category("Hello") == NotificationCategoryEnum.GENERIC
    assert render_message("Hello") == "Hello"
