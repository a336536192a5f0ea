"""Create discord link, verification, role mapping, and admin_log tables

Revision ID: 5c2e8a41f0d3
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e8a41f0d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "discord_links",
        sa.Column("discord_id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True),
        sa.Column("primary_arm", sa.String(32), nullable=True),
        sa.Column(
            "linked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "discord_verifications",
        sa.Column("verification_code", sa.String(12), primary_key=True),
        sa.Column("discord_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_discord_verifications_discord_id", "discord_verifications", ["discord_id"],
    )
    op.create_index(
        "ix_discord_verifications_expires_at", "discord_verifications", ["expires_at"],
    )

    op.create_table(
        "discord_role_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=True),
        sa.Column("arm", sa.String(32), nullable=False),
        sa.Column("user_type", sa.String(50), nullable=False, server_default="community_member"),
        sa.Column("discord_role_name", sa.String(100), nullable=False),
        sa.Column("discord_role_id", sa.String(32), nullable=True),
        sa.Column("arm_family", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("guild_id", "arm", name="uq_role_mapping_guild_arm"),
    )
    op.create_index("ix_role_mappings_guild", "discord_role_mappings", ["guild_id"])
    # Postgres treats NULLs as distinct, so default rows need their own guard.
    op.create_index(
        "uq_role_mapping_default_arm",
        "discord_role_mappings",
        ["arm"],
        unique=True,
        postgresql_where=sa.text("guild_id IS NULL"),
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )


def downgrade() -> None:
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_table("admin_log")

    op.drop_index("uq_role_mapping_default_arm", table_name="discord_role_mappings")
    op.drop_index("ix_role_mappings_guild", table_name="discord_role_mappings")
    op.drop_table("discord_role_mappings")

    op.drop_index("ix_discord_verifications_expires_at", table_name="discord_verifications")
    op.drop_index("ix_discord_verifications_discord_id", table_name="discord_verifications")
    op.drop_table("discord_verifications")

    op.drop_table("discord_links")
