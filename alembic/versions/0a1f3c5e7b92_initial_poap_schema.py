"""Initial POAP bot schema

Revision ID: 0a1f3c5e7b92
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1f3c5e7b92"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create rules, reaction ledger, delivery journal and audit log."""
    op.create_table(
        "poap_rules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("channel_id", sa.String(100), nullable=False),
        sa.Column("reaction_threshold", sa.Integer, nullable=False, server_default="3"),
        sa.Column("poap_event_id", sa.String(100), nullable=False),
        sa.Column("poap_name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_poap_rules_channel_active", "poap_rules", ["channel_id", "is_active"])

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.String(50), nullable=False),
        sa.Column("channel_id", sa.String(50), nullable=False),
        sa.Column("user_id", sa.String(50), nullable=False),
        sa.Column("reaction_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("delivered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "message_id", "user_id", name="uq_message_reactions_message_user"
        ),
    )

    op.create_table(
        "poap_deliveries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(50), nullable=False),
        sa.Column("user_email", sa.String(320), nullable=False),
        sa.Column("message_id", sa.String(50), nullable=False),
        sa.Column("channel_id", sa.String(50), nullable=False),
        sa.Column("poap_event_id", sa.String(100), nullable=False),
        sa.Column("claim_link", sa.String(500), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_poap_deliveries_message_user", "poap_deliveries", ["message_id", "user_id"]
    )
    op.create_index("ix_poap_deliveries_delivered_at", "poap_deliveries", ["delivered_at"])

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    op.drop_table("admin_log")
    op.drop_table("poap_deliveries")
    op.drop_table("message_reactions")
    op.drop_table("poap_rules")
