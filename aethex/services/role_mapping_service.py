"""
aethex.services.role_mapping_service — Role Mapping Store
==========================================================

Reads and audited writes for ``discord_role_mappings``.

Lookup precedence for ``(guild_id, arm)``:
  1. The row scoped to that guild.
  2. The default row (``guild_id IS NULL``).

Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSONB
  5. Commit
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aethex.database.models import AdminActionType, AdminLog, RoleMapping, is_known_arm

logger = logging.getLogger(__name__)

TABLE_NAME = "discord_role_mappings"

_UPDATABLE_FIELDS = frozenset({
    "guild_id", "arm", "user_type", "discord_role_name", "discord_role_id", "arm_family",
})
_NULLABLE_FIELDS = frozenset({"guild_id", "discord_role_id"})


class DuplicateMappingError(ValueError):
    """A mapping for the same (guild, arm) already exists."""


class AmbiguousMappingError(ValueError):
    """More than one mapping row matched a single (guild, arm) lookup."""


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=TABLE_NAME,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _scope(guild_id: int | None):
    if guild_id is None:
        return RoleMapping.guild_id.is_(None)
    return RoleMapping.guild_id == guild_id


def _find_conflict(
    session: Session, guild_id: int | None, arm: str, exclude_id: int | None = None,
) -> RoleMapping | None:
    stmt = select(RoleMapping).where(_scope(guild_id), RoleMapping.arm == arm)
    if exclude_id is not None:
        stmt = stmt.where(RoleMapping.id != exclude_id)
    return session.scalars(stmt).first()


def _clean_role_id(value: str | int | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_mapping(engine: Engine, guild_id: int, arm: str) -> RoleMapping | None:
    """Return the mapping that applies to *arm* in *guild_id*, or ``None``.

    Raises
    ------
    AmbiguousMappingError
        If more than one row exists at the winning precedence level.
    """
    with Session(engine, expire_on_commit=False) as session:
        for scope_guild in (guild_id, None):
            rows = session.scalars(
                select(RoleMapping).where(_scope(scope_guild), RoleMapping.arm == arm)
            ).all()
            if len(rows) > 1:
                raise AmbiguousMappingError(
                    f"{len(rows)} role mappings for arm {arm!r} "
                    f"in guild {scope_guild if scope_guild is not None else 'default'}"
                )
            if rows:
                session.expunge(rows[0])
                return rows[0]
    return None


def get_family_role_refs(engine: Engine, guild_id: int) -> set[str]:
    """Role ids and names of every arm-family mapping that applies to *guild_id*."""
    with Session(engine) as session:
        rows = session.scalars(
            select(RoleMapping).where(
                or_(RoleMapping.guild_id == guild_id, RoleMapping.guild_id.is_(None)),
                RoleMapping.arm_family.is_(True),
            )
        ).all()
        refs: set[str] = set()
        for row in rows:
            refs.add(row.discord_role_name)
            if row.discord_role_id:
                refs.add(row.discord_role_id)
        return refs


def list_mappings(engine: Engine, guild_id: int | None = None) -> list[RoleMapping]:
    """All mappings, newest first.  Filtered to one guild plus defaults when given."""
    with Session(engine, expire_on_commit=False) as session:
        stmt = select(RoleMapping).order_by(RoleMapping.created_at.desc(), RoleMapping.id.desc())
        if guild_id is not None:
            stmt = stmt.where(
                or_(RoleMapping.guild_id == guild_id, RoleMapping.guild_id.is_(None))
            )
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


# ---------------------------------------------------------------------------
# Audited writes
# ---------------------------------------------------------------------------
def create_mapping(
    engine: Engine,
    *,
    arm: str,
    discord_role_name: str,
    actor_id: int,
    guild_id: int | None = None,
    discord_role_id: str | int | None = None,
    user_type: str | None = None,
    arm_family: bool = True,
) -> RoleMapping:
    """Create a new role mapping.

    Raises
    ------
    ValueError
        If *arm* is unknown or the role name is blank.
    DuplicateMappingError
        If a mapping for ``(guild_id, arm)`` already exists.
    """
    if not is_known_arm(arm):
        raise ValueError(f"Unknown arm: {arm!r}")
    role_name = (discord_role_name or "").strip()
    if not role_name:
        raise ValueError("discord_role_name is required")

    with Session(engine, expire_on_commit=False) as session:
        if _find_conflict(session, guild_id, arm) is not None:
            raise DuplicateMappingError(
                f"A mapping for arm {arm!r} already exists in guild {guild_id}"
            )

        row = RoleMapping(
            guild_id=guild_id,
            arm=arm,
            user_type=user_type or "community_member",
            discord_role_name=role_name,
            discord_role_id=_clean_role_id(discord_role_id),
            arm_family=arm_family,
        )
        session.add(row)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateMappingError(
                f"A mapping for arm {arm!r} already exists in guild {guild_id}"
            ) from exc
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_id=str(row.id),
            before=None,
            after=_row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)

    logger.info("Role mapping created: %r by %d", row, actor_id)
    return row


def update_mapping(
    engine: Engine,
    mapping_id: int,
    *,
    actor_id: int,
    **changes: Any,
) -> RoleMapping | None:
    """Apply *changes* to a mapping.  Returns ``None`` if *mapping_id* is unknown.

    Unknown keys are ignored.  ``None`` clears ``guild_id`` (making the row a
    default) or ``discord_role_id``; other ``None`` values are skipped.
    """
    changes = {
        k: v for k, v in changes.items()
        if k in _UPDATABLE_FIELDS and (v is not None or k in _NULLABLE_FIELDS)
    }
    if "arm" in changes and not is_known_arm(changes["arm"]):
        raise ValueError(f"Unknown arm: {changes['arm']!r}")
    if "discord_role_name" in changes:
        name = (changes["discord_role_name"] or "").strip()
        if not name:
            raise ValueError("discord_role_name cannot be blank")
        changes["discord_role_name"] = name
    if "discord_role_id" in changes:
        changes["discord_role_id"] = _clean_role_id(changes["discord_role_id"])

    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(RoleMapping, mapping_id)
        if obj is None:
            return None

        new_guild = changes.get("guild_id", obj.guild_id)
        new_arm = changes.get("arm", obj.arm)
        if _find_conflict(session, new_guild, new_arm, exclude_id=obj.id) is not None:
            raise DuplicateMappingError(
                f"A mapping for arm {new_arm!r} already exists in guild {new_guild}"
            )

        before = _row_to_dict(obj)
        for key, value in changes.items():
            setattr(obj, key, value)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise DuplicateMappingError(
                f"A mapping for arm {new_arm!r} already exists in guild {new_guild}"
            ) from exc
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_id=str(obj.id),
            before=before,
            after=_row_to_dict(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)
        return obj


def delete_mapping(engine: Engine, mapping_id: int, *, actor_id: int) -> bool:
    """Delete a mapping.  Returns ``True`` if the row existed."""
    with Session(engine) as session:
        obj = session.get(RoleMapping, mapping_id)
        if obj is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.DELETE,
            target_id=str(obj.id),
            before=_row_to_dict(obj),
            after=None,
        )
        session.delete(obj)
        session.commit()

    logger.info("Role mapping %d deleted by %d", mapping_id, actor_id)
    return True
