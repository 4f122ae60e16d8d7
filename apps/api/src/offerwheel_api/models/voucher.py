"""Redeemable vouchers minted for winning spins."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offerwheel_api.db.base import Base


class Voucher(Base):
    __tablename__ = "vouchers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(17), nullable=False, unique=True, index=True)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    # Unique so a spin can never carry two vouchers.
    spin_id = Column(UUID(as_uuid=True), ForeignKey("spins.id", ondelete="CASCADE"), nullable=False, unique=True)
    prize_id = Column(UUID(as_uuid=True), ForeignKey("prizes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    redemption_limit = Column(Integer, nullable=False, default=1, server_default="1")
    redemption_count = Column(Integer, nullable=False, default=0, server_default="0")
    is_redeemed = Column(Boolean, nullable=False, default=False, server_default="false")
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_by = Column(String, nullable=True)
    qr_image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    prize = relationship("Prize")
    user = relationship("EndUser")
