"""Create loyalty accounts, point transactions, catalog and notification tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = postgresql.UUID(as_uuid=True)

account_role = sa.Enum("CUSTOMER", "BRANCH_STAFF", "FRANCHISE_ADMIN", "SUPER_ADMIN", name="account_role")
ledger_event_type = sa.Enum("REDEEM", "ACTIVITY", "REFERRAL", "ADJUSTMENT", name="ledger_event_type")
activity_status = sa.Enum("PENDING", "APPROVED", "REJECTED", name="activity_status")
referral_status = sa.Enum("PENDING", "COMPLETED", name="referral_status")
notification_channel = sa.Enum("EMAIL", name="notification_channel_enum")
outbox_status = sa.Enum("PENDING", "SENT", "FAILED", name="outbox_status_enum")


def upgrade() -> None:
    op.create_table(
        "loyalty_accounts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", account_role, nullable=False, server_default="CUSTOMER"),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("referred_by_id", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["referred_by_id"], ["loyalty_accounts.id"]),
        sa.CheckConstraint("balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
    )
    op.create_index("ix_loyalty_accounts_email", "loyalty_accounts", ["email"])

    op.create_table(
        "point_transactions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", ledger_event_type, nullable=False),
        sa.Column("delta", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["loyalty_accounts.id"]),
        sa.UniqueConstraint("idempotency_key", name="uq_point_transactions_idempotency_key"),
        sa.CheckConstraint("delta <> 0", name="ck_point_transactions_delta_non_zero"),
    )
    op.create_index(
        "ix_point_transactions_account_created",
        "point_transactions",
        ["account_id", "created_at"],
    )

    op.create_table(
        "rewards",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_cost", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("points_cost > 0", name="ck_rewards_points_cost_positive"),
    )

    op.create_table(
        "activity_point_rules",
        sa.Column("activity_type", sa.String(length=64), primary_key=True),
        sa.Column("points_value", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("points_value > 0", name="ck_activity_point_rules_points_positive"),
    )

    op.create_table(
        "point_earning_activities",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("activity_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", activity_status, nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by_id", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["loyalty_accounts.id"]),
        sa.ForeignKeyConstraint(["reviewed_by_id"], ["loyalty_accounts.id"]),
    )
    op.create_index("ix_point_earning_activities_account_id", "point_earning_activities", ["account_id"])
    op.create_index("ix_point_earning_activities_status", "point_earning_activities", ["status"])

    op.create_table(
        "referrals",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("referrer_id", sa.String(length=64), nullable=False),
        sa.Column("referred_user_email", sa.String(), nullable=False),
        sa.Column("status", referral_status, nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["referrer_id"], ["loyalty_accounts.id"]),
        sa.UniqueConstraint("referrer_id", "referred_user_email", name="uq_referrals_referrer_email"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["loyalty_accounts.id"]),
    )
    op.create_index("ix_notifications_account_id", "notifications", ["account_id"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("account_id", sa.String(length=64), nullable=True),
        sa.Column("channel", notification_channel, nullable=False),
        sa.Column("status", outbox_status, nullable=False, server_default="PENDING"),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=False),
        sa.Column("body_html", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["loyalty_accounts.id"]),
    )
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])


def downgrade() -> None:
    op.drop_index("ix_notification_outbox_status", table_name="notification_outbox")
    op.drop_table("notification_outbox")
    op.drop_index("ix_notifications_account_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_referrals_referrer_id", table_name="referrals")
    op.drop_table("referrals")
    op.drop_index("ix_point_earning_activities_status", table_name="point_earning_activities")
    op.drop_index("ix_point_earning_activities_account_id", table_name="point_earning_activities")
    op.drop_table("point_earning_activities")
    op.drop_table("activity_point_rules")
    op.drop_table("rewards")
    op.drop_index("ix_point_transactions_account_created", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_loyalty_accounts_email", table_name="loyalty_accounts")
    op.drop_table("loyalty_accounts")

    bind = op.get_bind()
    for enum in (
        outbox_status,
        notification_channel,
        referral_status,
        activity_status,
        ledger_event_type,
        account_role,
    ):
        enum.drop(bind, checkfirst=True)
