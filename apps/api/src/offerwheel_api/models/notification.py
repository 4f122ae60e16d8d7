from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from offerwheel_api.db.base import Base


class NotificationStatusEnum(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class NotificationCategoryEnum(str, Enum):
    APPROVAL = "approval"
    REJECTION = "rejection"
    VOUCHER = "voucher"
    PRIZE = "prize"
    OTP = "otp"
    GENERIC = "generic"


class NotificationDelivery(Base):
    """Audit row for one WhatsApp dispatch, written after retries finish."""

    __tablename__ = "notification_deliveries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True, index=True)
    phone_masked = Column(String(32), nullable=False)
    category = Column(
        SqlEnum(NotificationCategoryEnum, name="notification_category_enum"),
        nullable=False,
        default=NotificationCategoryEnum.GENERIC,
    )
    status = Column(SqlEnum(NotificationStatusEnum, name="notification_status_enum"), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    config_source = Column(String(16), nullable=True)
    # OTP bodies are never stored.
    body = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
