"""create_credits_schema

Revision ID: 7f3a91c2d4e5
Revises:
Create Date: 2026-10-18 09:12:41.208517

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7f3a91c2d4e5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

payment_token = sa.Enum("usdc", "sol", "ghost", name="paymenttoken")
deposit_status = sa.Enum("pending", "credited", name="depositstatus")


def upgrade() -> None:
    """Create the accounts, deposits and usage records tables."""
    op.create_table(
        "accounts",
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("tier", sa.String(), nullable=False),
        sa.Column("cached_tier", sa.String(), nullable=True),
        sa.Column("last_tier_check", sa.TIMESTAMP(), nullable=True),
        sa.Column("tier_check_failed_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("free_credits", sa.Float(), nullable=False),
        sa.Column("paid_credits", sa.Float(), nullable=False),
        sa.Column("lifetime_credits_purchased", sa.Float(), nullable=False),
        sa.Column("free_credits_reset_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("quota_used", sa.Integer(), nullable=False),
        sa.Column("quota_reset_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("rate_window_start", sa.TIMESTAMP(), nullable=True),
        sa.Column("rate_window_count", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(), nullable=True),
        sa.CheckConstraint("free_credits >= 0", name="check_free_credits_non_negative"),
        sa.CheckConstraint("paid_credits >= 0", name="check_paid_credits_non_negative"),
        sa.CheckConstraint("quota_used >= 0", name="check_quota_used_non_negative"),
        sa.PrimaryKeyConstraint("address"),
    )
    op.create_table(
        "deposits",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_address", sa.String(), nullable=False),
        sa.Column("token", payment_token, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("usd_value_at_time", sa.Float(), nullable=True),
        sa.Column("credits_granted", sa.Integer(), nullable=True),
        sa.Column("bonus_applied", sa.Float(), nullable=True),
        sa.Column("status", deposit_status, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("next_attempt_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("confirmed_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("credited_at", sa.TIMESTAMP(), nullable=True),
        sa.CheckConstraint("amount > 0", name="check_deposit_amount_positive"),
        sa.CheckConstraint(
            "credits_granted IS NULL OR credits_granted >= 0", name="check_credits_granted_non_negative"
        ),
        sa.CheckConstraint(
            "status != 'credited' OR credits_granted IS NOT NULL", name="check_credited_deposit_has_credits"
        ),
        sa.ForeignKeyConstraint(["account_address"], ["accounts.address"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_deposits_account_address"), "deposits", ["account_address"], unique=False)
    op.create_index(op.f("ix_deposits_status"), "deposits", ["status"], unique=False)
    op.create_table(
        "usage_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_address", sa.String(), nullable=False),
        sa.Column("endpoint", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("credits_consumed", sa.Float(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=True),
        sa.CheckConstraint("credits_consumed >= 0", name="check_credits_consumed_non_negative"),
        sa.ForeignKeyConstraint(["account_address"], ["accounts.address"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_usage_records_created_at"), "usage_records", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_usage_records_created_at"), table_name="usage_records")
    op.drop_table("usage_records")
    op.drop_index(op.f("ix_deposits_status"), table_name="deposits")
    op.drop_index(op.f("ix_deposits_account_address"), table_name="deposits")
    op.drop_table("deposits")
    op.drop_table("accounts")
    payment_token.drop(op.get_bind(), checkfirst=True)
    deposit_status.drop(op.get_bind(), checkfirst=True)
