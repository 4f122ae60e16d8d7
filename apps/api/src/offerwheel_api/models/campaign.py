"""Campaign, prize and daily award counter models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offerwheel_api.db.base import Base


class Campaign(Base):
    """Tenant-scoped wheel configuration."""

    __tablename__ = "campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    spin_limit = Column(Integer, nullable=False, default=1, server_default="1")
    # Hours between base spins; 0 means the base allowance is lifetime.
    spin_cooldown = Column(Integer, nullable=False, default=24, server_default="24")
    referrals_required_for_spin = Column(Integer, nullable=False, default=0, server_default="0")
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tenant = relationship("Tenant", back_populates="campaigns")
    prizes = relationship("Prize", back_populates="campaign", order_by="Prize.position")


class Prize(Base):
    """Weighted wheel slice."""

    __tablename__ = "prizes"
    __table_args__ = (
        CheckConstraint("probability >= 0", name="ck_prizes_probability_non_negative"),
        CheckConstraint("current_stock IS NULL OR current_stock >= 0", name="ck_prizes_stock_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    probability = Column(Float, nullable=False, default=0)
    # None means no per-day ceiling.
    daily_limit = Column(Integer, nullable=True)
    current_stock = Column(Integer, nullable=True)
    low_stock_alert = Column(Integer, nullable=True)
    position = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    show_try_again_message = Column(Boolean, nullable=False, default=False, server_default="false")
    try_again_message = Column(String, nullable=True)
    voucher_validity_days = Column(Integer, nullable=False, default=0, server_default="0")
    voucher_redemption_limit = Column(Integer, nullable=False, default=1, server_default="1")
    generate_qr = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    campaign = relationship("Campaign", back_populates="prizes")


class PrizeDailyCounter(Base):
    """Awards per prize per calendar day, reserved with conditional updates."""

    __tablename__ = "prize_daily_counters"
    __table_args__ = (
        UniqueConstraint("prize_id", "day", name="uq_prize_daily_counters_prize_day"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    prize_id = Column(UUID(as_uuid=True), ForeignKey("prizes.id", ondelete="CASCADE"), nullable=False)
    day = Column(Date, nullable=False)
    awarded_count = Column(Integer, nullable=False, default=0, server_default="0")
