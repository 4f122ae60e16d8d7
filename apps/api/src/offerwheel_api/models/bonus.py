"""Bonus spin grant events."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from offerwheel_api.db.base import Base


class BonusSpinSource(str, Enum):
    """Where a bonus spin grant originated."""

    TASK_APPROVAL = "task_approval"
    REFERRAL = "referral"
    DIRECT_GRANT = "direct_grant"
    MANUAL = "manual"


class BonusSpinGrant(Base):
    """Append-only grant event written with every ``bonus_spins_earned`` increment.

    The sum of ``amount`` per user always equals the user's counter. Referral
    grants carry the milestone they unlock, so each milestone pays out once.
    """

    __tablename__ = "bonus_spin_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "milestone", name="uq_bonus_spin_grants_milestone"),
        CheckConstraint("amount > 0", name="ck_bonus_spin_grants_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    source = Column(SqlEnum(BonusSpinSource, name="bonus_spin_source"), nullable=False)
    reason = Column(String, nullable=False)
    granted_by = Column(String, nullable=False)
    milestone = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
