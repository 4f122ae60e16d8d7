"""Phone-verified customers who spin the wheel."""

from __future__ import annotations

import secrets
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offerwheel_api.db.base import Base

REFERRAL_CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"


def generate_referral_code(length: int = 8) -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))


class EndUser(Base):
    """Customer record created on first OTP verification.

    ``bonus_spins_earned`` is a monotonic counter; consumption is derived from
    spin rows flagged ``is_referral_bonus``.
    """

    __tablename__ = "end_users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "phone", name="uq_end_users_tenant_phone"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    phone = Column(String(32), nullable=False, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    referral_code = Column(String(16), nullable=False, unique=True, default=generate_referral_code)
    referred_by_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True, index=True)
    bonus_spins_earned = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tenant = relationship("Tenant")
    referred_by = relationship("EndUser", remote_side=[id])
