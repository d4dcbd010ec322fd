"""Baseline: users, matches and ledger audit transactions.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the three core tables."""
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("gender", sa.String(16), nullable=False),
        sa.Column("bio", sa.Text(), server_default="", nullable=False),
        sa.Column("photos", postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("preferred_tip_amount", sa.Integer(), server_default="3", nullable=False),
        sa.Column("is_online", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("last_active", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("match_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("ghosted_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("ghosted_by_count", sa.Integer(), server_default="0", nullable=False),
        sa.UniqueConstraint("wallet_address", name="uq_users_wallet_address"),
    )
    op.create_index("idx_users_discovery", "users", ["gender", "is_online", sa.text("last_active DESC")])
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_gender "
        "CHECK (gender IN ('MALE', 'FEMALE'))"
    )

    # --- matches ---
    op.create_table(
        "matches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sender_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receiver_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pair_low_id", sa.String(36), nullable=False),
        sa.Column("pair_high_id", sa.String(36), nullable=False),
        sa.Column("tip_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("transaction_hash", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), server_default="PENDING", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ghosted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("pair_low_id", "pair_high_id", name="uq_matches_pair"),
        sa.UniqueConstraint("transaction_hash", name="uq_matches_transaction_hash"),
    )
    op.create_index("idx_matches_status_expires", "matches", ["status", "expires_at"])
    op.create_index("idx_matches_sender", "matches", ["sender_id"])
    op.create_index("idx_matches_receiver", "matches", ["receiver_id"])
    op.execute(
        "ALTER TABLE matches ADD CONSTRAINT ck_matches_status "
        "CHECK (status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'GHOSTED'))"
    )
    op.execute("ALTER TABLE matches ADD CONSTRAINT ck_matches_not_self CHECK (sender_id <> receiver_id)")
    op.execute("ALTER TABLE matches ADD CONSTRAINT ck_matches_tip_positive CHECK (tip_amount > 0)")
    op.execute(
        "ALTER TABLE matches ADD CONSTRAINT ck_matches_terminal_timestamp CHECK ("
        "(status = 'PENDING' AND accepted_at IS NULL AND rejected_at IS NULL AND ghosted_at IS NULL) OR "
        "(status = 'ACCEPTED' AND accepted_at IS NOT NULL AND rejected_at IS NULL AND ghosted_at IS NULL) OR "
        "(status = 'REJECTED' AND rejected_at IS NOT NULL AND accepted_at IS NULL AND ghosted_at IS NULL) OR "
        "(status = 'GHOSTED' AND ghosted_at IS NOT NULL AND accepted_at IS NULL AND rejected_at IS NULL))"
    )

    # --- transactions ---
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("transaction_hash", sa.String(128), nullable=True),
        sa.Column("match_id", sa.String(36), sa.ForeignKey("matches.id", ondelete="SET NULL"), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("status", sa.String(16), server_default="PENDING", nullable=False),
    )
    op.create_index("idx_transactions_wallet_ts", "transactions", ["wallet_address", "timestamp"])
    op.create_index("idx_transactions_match", "transactions", ["match_id"])
    op.execute(
        "ALTER TABLE transactions ADD CONSTRAINT ck_transactions_type "
        "CHECK (type IN ('TIP_SENT', 'TIP_RECEIVED', 'REFUND', 'GHOST_FORFEIT'))"
    )
    op.execute(
        "ALTER TABLE transactions ADD CONSTRAINT ck_transactions_status "
        "CHECK (status IN ('PENDING', 'CONFIRMED', 'FAILED'))"
    )


def downgrade() -> None:
    """Drop the core tables."""
    op.drop_table("transactions")
    op.drop_table("matches")
    op.drop_table("users")
