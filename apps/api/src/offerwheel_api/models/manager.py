"""Store managers, their direct grants and the compliance audit trail."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from offerwheel_api.db.base import Base


class Manager(Base):
    """Tenant staff allowed to verify tasks and grant spins."""

    __tablename__ = "managers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    username = Column(String(64), nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    max_bonus_spins_per_approval = Column(Integer, nullable=False, default=10, server_default="10")
    max_spins_per_user = Column(Integer, nullable=False, default=5, server_default="5")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tenant = relationship("Tenant")


class DirectSpinGrant(Base):
    """Append-only record of a manager granting a spin directly to a customer."""

    __tablename__ = "direct_spin_grants"
    __table_args__ = (
        Index("ix_direct_spin_grants_manager_user", "manager_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    manager_id = Column(UUID(as_uuid=True), ForeignKey("managers.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False)
    spins_granted = Column(Integer, nullable=False, default=1)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ManagerAuditAction(str, Enum):
    """Grant-affecting manager actions."""

    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    DIRECT_SPIN_GRANT = "direct_spin_grant"


class ManagerAuditLog(Base):
    """Compliance trail; rows are never updated."""

    __tablename__ = "manager_audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    manager_id = Column(UUID(as_uuid=True), ForeignKey("managers.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(SqlEnum(ManagerAuditAction, name="manager_audit_action"), nullable=False)
    target_user_id = Column(UUID(as_uuid=True), ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True)
    task_completion_id = Column(
        UUID(as_uuid=True), ForeignKey("social_task_completions.id", ondelete="SET NULL"), nullable=True
    )
    spins_granted = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
