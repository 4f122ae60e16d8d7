"""Promotion engine schema: tenants, campaigns, prizes, spins, vouchers and bonus ledger.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _tenant_fk(ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete=ondelete), nullable=nullable)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("wa_config", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "platform_settings",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        _updated_at(),
    )
    op.create_index("ix_platform_settings_key", "platform_settings", ["key"], unique=True)

    op.create_table(
        "end_users",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("referral_code", sa.String(length=16), nullable=False, unique=True),
        sa.Column("referred_by_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("bonus_spins_earned", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "phone", name="uq_end_users_tenant_phone"),
    )
    op.create_index("ix_end_users_tenant_id", "end_users", ["tenant_id"])
    op.create_index("ix_end_users_phone", "end_users", ["phone"])
    op.create_index("ix_end_users_referred_by_id", "end_users", ["referred_by_id"])

    op.create_table(
        "campaigns",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("spin_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("spin_cooldown", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("referrals_required_for_spin", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_campaigns_tenant_id", "campaigns", ["tenant_id"])

    op.create_table(
        "prizes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("campaign_id", _uuid(), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("probability", sa.Float(), nullable=False),
        sa.Column("daily_limit", sa.Integer(), nullable=True),
        sa.Column("current_stock", sa.Integer(), nullable=True),
        sa.Column("low_stock_alert", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("show_try_again_message", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("try_again_message", sa.String(), nullable=True),
        sa.Column("voucher_validity_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("voucher_redemption_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("generate_qr", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.CheckConstraint("probability >= 0", name="ck_prizes_probability_non_negative"),
        sa.CheckConstraint("current_stock IS NULL OR current_stock >= 0", name="ck_prizes_stock_non_negative"),
    )
    op.create_index("ix_prizes_campaign_id", "prizes", ["campaign_id"])

    op.create_table(
        "prize_daily_counters",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("prize_id", _uuid(), sa.ForeignKey("prizes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("awarded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("prize_id", "day", name="uq_prize_daily_counters_prize_day"),
    )

    op.create_table(
        "spins",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("campaign_id", _uuid(), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("prize_id", _uuid(), sa.ForeignKey("prizes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("won_prize", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_referral_bonus", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("outcome_message", sa.String(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "idempotency_key", name="uq_spins_user_idempotency_key"),
    )
    op.create_index("ix_spins_tenant_id", "spins", ["tenant_id"])
    op.create_index("ix_spins_user_campaign_created", "spins", ["user_id", "campaign_id", "created_at"])

    op.create_table(
        "vouchers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("code", sa.String(length=17), nullable=False),
        _tenant_fk(),
        sa.Column("spin_id", _uuid(), sa.ForeignKey("spins.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("prize_id", _uuid(), sa.ForeignKey("prizes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redemption_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("redemption_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_redeemed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_by", sa.String(), nullable=True),
        sa.Column("qr_image_url", sa.String(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_vouchers_code", "vouchers", ["code"], unique=True)
    op.create_index("ix_vouchers_tenant_id", "vouchers", ["tenant_id"])
    op.create_index("ix_vouchers_user_id", "vouchers", ["user_id"])

    op.create_table(
        "managers",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("max_bonus_spins_per_approval", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("max_spins_per_user", sa.Integer(), nullable=False, server_default="5"),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_managers_tenant_id", "managers", ["tenant_id"])

    op.create_table(
        "direct_spin_grants",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("manager_id", _uuid(), sa.ForeignKey("managers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("spins_granted", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("comment", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_direct_spin_grants_tenant_id", "direct_spin_grants", ["tenant_id"])
    op.create_index("ix_direct_spin_grants_manager_user", "direct_spin_grants", ["manager_id", "user_id"])

    op.create_table(
        "social_tasks",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("campaign_id", _uuid(), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("target_url", sa.String(), nullable=True),
        sa.Column("spins_reward", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.CheckConstraint("spins_reward >= 0", name="ck_social_tasks_spins_reward_non_negative"),
    )
    op.create_index("ix_social_tasks_tenant_id", "social_tasks", ["tenant_id"])
    op.create_index("ix_social_tasks_campaign_id", "social_tasks", ["campaign_id"])

    op.create_table(
        "social_task_completions",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("task_id", _uuid(), sa.ForeignKey("social_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "VERIFIED", "REJECTED", name="task_completion_status"),
            nullable=False,
        ),
        sa.Column("spins_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reviewed_by_id", _uuid(), sa.ForeignKey("managers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("review_comment", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("task_id", "user_id", name="uq_social_task_completions_task_user"),
    )
    op.create_index("ix_social_task_completions_tenant_id", "social_task_completions", ["tenant_id"])
    op.create_index("ix_social_task_completions_user_id", "social_task_completions", ["user_id"])

    op.create_table(
        "manager_audit_logs",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("manager_id", _uuid(), sa.ForeignKey("managers.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "action",
            sa.Enum("TASK_APPROVED", "TASK_REJECTED", "DIRECT_SPIN_GRANT", name="manager_audit_action"),
            nullable=False,
        ),
        sa.Column("target_user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "task_completion_id",
            _uuid(),
            sa.ForeignKey("social_task_completions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("spins_granted", sa.Integer(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_manager_audit_logs_tenant_id", "manager_audit_logs", ["tenant_id"])
    op.create_index("ix_manager_audit_logs_manager_id", "manager_audit_logs", ["manager_id"])

    op.create_table(
        "bonus_spin_grants",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "source",
            sa.Enum("TASK_APPROVAL", "REFERRAL", "DIRECT_GRANT", "MANUAL", name="bonus_spin_source"),
            nullable=False,
        ),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("granted_by", sa.String(), nullable=False),
        sa.Column("milestone", sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_bonus_spin_grants_amount_positive"),
        sa.UniqueConstraint("user_id", "source", "milestone", name="uq_bonus_spin_grants_milestone"),
    )
    op.create_index("ix_bonus_spin_grants_tenant_id", "bonus_spin_grants", ["tenant_id"])
    op.create_index("ix_bonus_spin_grants_user_id", "bonus_spin_grants", ["user_id"])

    op.create_table(
        "notification_deliveries",
        sa.Column("id", _uuid(), primary_key=True),
        _tenant_fk(ondelete="SET NULL", nullable=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("end_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("phone_masked", sa.String(length=32), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "APPROVAL",
                "REJECTION",
                "VOUCHER",
                "PRIZE",
                "OTP",
                "GENERIC",
                name="notification_category_enum",
            ),
            nullable=False,
        ),
        sa.Column("status", sa.Enum("SENT", "FAILED", name="notification_status_enum"), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("config_source", sa.String(length=16), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notification_deliveries_tenant_id", "notification_deliveries", ["tenant_id"])
    op.create_index("ix_notification_deliveries_user_id", "notification_deliveries", ["user_id"])


def downgrade() -> None:
    for table in (
        "notification_deliveries",
        "bonus_spin_grants",
        "manager_audit_logs",
        "social_task_completions",
        "social_tasks",
        "direct_spin_grants",
        "managers",
        "vouchers",
        "spins",
        "prize_daily_counters",
        "prizes",
        "campaigns",
        "end_users",
        "platform_settings",
        "tenants",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        "notification_status_enum",
        "notification_category_enum",
        "bonus_spin_source",
        "manager_audit_action",
        "task_completion_status",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
