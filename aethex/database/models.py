"""
aethex.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables:
- discord_links          — Discord account ↔ AeThex account, plus primary arm
- discord_verifications  — Short-lived /verify codes awaiting redemption
- discord_role_mappings  — (guild, arm) → Discord role reference
- admin_log              — Append-only audit trail for mapping changes
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all AeThex ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Arm(enum.StrEnum):
    """The closed set of AeThex arms (community divisions)."""
    LABS = "labs"
    GAMEFORGE = "gameforge"
    CORP = "corp"
    FOUNDATION = "foundation"
    DEVLINK = "devlink"
    NEXUS = "nexus"
    STAFF = "staff"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def is_known_arm(value: str | None) -> bool:
    return value in {a.value for a in Arm}


# ---------------------------------------------------------------------------
# DiscordLink — one row per linked Discord account
# ---------------------------------------------------------------------------
class DiscordLink(Base):
    __tablename__ = "discord_links"

    discord_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    primary_arm: Mapped[str | None] = mapped_column(String(32), default=None)
    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<DiscordLink discord={self.discord_id} user={self.user_id!r} arm={self.primary_arm}>"


# ---------------------------------------------------------------------------
# DiscordVerification — pending /verify codes
# ---------------------------------------------------------------------------
class DiscordVerification(Base):
    __tablename__ = "discord_verifications"

    verification_code: Mapped[str] = mapped_column(String(12), primary_key=True)
    discord_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_discord_verifications_discord_id", "discord_id"),
        Index("ix_discord_verifications_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<DiscordVerification code={self.verification_code} discord={self.discord_id}>"


# ---------------------------------------------------------------------------
# RoleMapping — which Discord role represents an arm in a guild
# ---------------------------------------------------------------------------
class RoleMapping(Base):
    """Maps ``(guild_id, arm)`` to a Discord role.

    ``guild_id`` NULL marks a default row used by every guild that has no
    row of its own for that arm.  ``arm_family`` tags the mapped role as an
    arm role, so holding it while switching arms gets it removed.
    """

    __tablename__ = "discord_role_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    arm: Mapped[str] = mapped_column(String(32), nullable=False)
    user_type: Mapped[str] = mapped_column(String(50), default="community_member")
    discord_role_name: Mapped[str] = mapped_column(String(100), nullable=False)
    discord_role_id: Mapped[str | None] = mapped_column(String(32), default=None)
    arm_family: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("guild_id", "arm", name="uq_role_mapping_guild_arm"),
        Index("ix_role_mappings_guild", "guild_id"),
        # NULLs are distinct in the constraint above; default rows need their own.
        Index(
            "uq_role_mapping_default_arm",
            "arm",
            unique=True,
            postgresql_where=text("guild_id IS NULL"),
            sqlite_where=text("guild_id IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<RoleMapping id={self.id} guild={self.guild_id} arm={self.arm} "
            f"role={self.discord_role_name!r}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
