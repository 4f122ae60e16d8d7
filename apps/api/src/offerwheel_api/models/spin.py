"""Resolved spin attempts."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offerwheel_api.core.clock import utcnow
from offerwheel_api.db.base import Base


class Spin(Base):
    """Append-only outcome of one consumed spin.

    Spins are the source of truth for "has spun" checks, cooldown windows and
    bonus consumption (``is_referral_bonus``).
    """

    __tablename__ = "spins"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_spins_user_idempotency_key"),
        Index("ix_spins_user_campaign_created", "user_id", "campaign_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    prize_id = Column(UUID(as_uuid=True), ForeignKey("prizes.id", ondelete="SET NULL"), nullable=True)
    won_prize = Column(Boolean, nullable=False, default=False)
    is_referral_bonus = Column(Boolean, nullable=False, default=False)
    outcome_message = Column(String, nullable=True)
    idempotency_key = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("EndUser")
    campaign = relationship("Campaign")
    prize = relationship("Prize")
