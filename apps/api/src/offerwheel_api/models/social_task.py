"""Social engagement tasks that earn bonus spins after manager review."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
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


class SocialTask(Base):
    __tablename__ = "social_tasks"
    __table_args__ = (
        CheckConstraint("spins_reward >= 0", name="ck_social_tasks_spins_reward_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    platform = Column(String(32), nullable=False)
    action_type = Column(String(32), nullable=False)
    target_url = Column(String, nullable=True)
    spins_reward = Column(Integer, nullable=False, default=1, server_default="1")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TaskCompletionStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SocialTaskCompletion(Base):
    """A customer's claim that they completed a social task."""

    __tablename__ = "social_task_completions"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_social_task_completions_task_user"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(UUID(as_uuid=True), ForeignKey("social_tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        SqlEnum(TaskCompletionStatus, name="task_completion_status"),
        nullable=False,
        default=TaskCompletionStatus.PENDING,
    )
    spins_awarded = Column(Integer, nullable=False, default=0, server_default="0")
    reviewed_by_id = Column(UUID(as_uuid=True), ForeignKey("managers.id", ondelete="SET NULL"), nullable=True)
    review_comment = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    claimed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    task = relationship("SocialTask")
    user = relationship("EndUser")
