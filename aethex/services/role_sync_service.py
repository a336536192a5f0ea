"""
aethex.services.role_sync_service — Arm Role Reconciliation
============================================================

Keeps a member's arm role in a guild consistent with their primary arm.

How it works (per guild, strictly in order):
    1. Resolve the member and their current roles.
    2. Look up the role mapping for ``(guild, arm)``.
    3. Resolve the mapped role against the guild's live role list
       (platform id first, then exact name).
    4. Remove every other arm-family role the member holds.  A failed
       removal is logged and skipped.
    5. Add the target role unless the member already has it.

Every terminal state is reported as a :class:`RoleSyncOutcome`; nothing
raises out of :meth:`ArmRoleReconciler.reconcile`.  A second call with the
same arm and unchanged state reports ``already_assigned`` and makes no
changes.

:class:`CrossGuildRoleSync` runs the reconciler in every guild the bot is
in, skipping guilds the member is not part of and isolating per-guild
failures.

Both classes take their collaborators as constructor arguments: a
:class:`GuildMembershipProvider` (Discord) and a :class:`RoleMappingLookup`
(the database).  Tests supply in-memory fakes.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import discord
from sqlalchemy import Engine

from aethex.constants import is_family_role_name
from aethex.database.engine import run_db
from aethex.services import role_mapping_service

if TYPE_CHECKING:
    from aethex.database.models import RoleMapping

logger = logging.getLogger(__name__)

SYNC_REASON = "AeThex arm role sync"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GuildRole:
    """A role as seen in one guild at one moment."""
    id: int
    name: str


@dataclass(slots=True)
class GuildMember:
    """A member's roles in one guild, fetched for a single reconciliation.

    ``handle`` is whatever the provider needs to mutate the member
    (a :class:`discord.Member` for the Discord provider).
    """
    guild_id: int
    id: int
    roles: list[GuildRole]
    handle: Any = None

    def has_role(self, role: GuildRole) -> bool:
        return any(r.id == role.id for r in self.roles)


class RoleSyncOutcome(enum.StrEnum):
    ASSIGNED = "assigned"
    ALREADY_ASSIGNED = "already_assigned"
    NO_MAPPING = "no_mapping"
    ROLE_NOT_FOUND = "role_not_found"
    MEMBER_NOT_FOUND = "member_not_found"
    PROVIDER_ERROR = "provider_error"


SUCCESS_OUTCOMES = frozenset({RoleSyncOutcome.ASSIGNED, RoleSyncOutcome.ALREADY_ASSIGNED})


@dataclass(slots=True)
class ReconcileResult:
    guild_id: int
    outcome: RoleSyncOutcome
    target_role: GuildRole | None = None
    removed: list[GuildRole] = field(default_factory=list)
    failed_removals: list[GuildRole] = field(default_factory=list)
    step: str | None = None      # Failing step for provider_error
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------
class GuildMembershipProvider(Protocol):
    """Chat-platform access the reconciler needs.  Every call may fail."""

    def guild_ids(self) -> list[int]: ...

    async def get_member(self, guild_id: int, member_id: int) -> GuildMember | None: ...

    async def get_roles(self, guild_id: int) -> list[GuildRole]: ...

    async def add_role(self, member: GuildMember, role: GuildRole) -> None: ...

    async def remove_role(self, member: GuildMember, role: GuildRole) -> None: ...


class RoleMappingLookup(Protocol):
    """Read-only access to the role-mapping store."""

    async def lookup_role(self, guild_id: int, arm: str) -> RoleMapping | None: ...

    async def family_role_refs(self, guild_id: int) -> set[str]: ...


# ---------------------------------------------------------------------------
# Role resolution
# ---------------------------------------------------------------------------
def resolve_mapped_role(mapping: RoleMapping, roles: Sequence[GuildRole]) -> GuildRole | None:
    """Find the guild role *mapping* points at: platform id first, then exact name."""
    candidate_ids: list[int] = []
    for ref in (mapping.discord_role_id, mapping.discord_role_name):
        if ref and str(ref).strip().isdigit():
            candidate_ids.append(int(str(ref).strip()))

    for role_id in candidate_ids:
        for role in roles:
            if role.id == role_id:
                return role

    for role in roles:
        if role.name == mapping.discord_role_name:
            return role
    return None


def is_family_role(role: GuildRole, tagged_refs: set[str], match_by_name: bool) -> bool:
    if str(role.id) in tagged_refs or role.name in tagged_refs:
        return True
    return match_by_name and is_family_role_name(role.name)


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------
class ArmRoleReconciler:
    """Bring one member's arm role in one guild in line with one arm.

    Parameters
    ----------
    provider:
        Guild membership access (fetch member/roles, add/remove role).
    mappings:
        Role mapping lookup.
    family_match_by_name:
        Also treat roles whose *name* contains an arm tag as arm-family
        roles, in addition to roles tagged in the mapping store.
    """

    def __init__(
        self,
        provider: GuildMembershipProvider,
        mappings: RoleMappingLookup,
        *,
        family_match_by_name: bool = True,
    ) -> None:
        self.provider = provider
        self.mappings = mappings
        self.family_match_by_name = family_match_by_name

    def _provider_error(self, guild_id: int, step: str, exc: BaseException) -> ReconcileResult:
        detail = str(exc) or type(exc).__name__
        logger.error("Role sync failed in guild %d at step %s: %s", guild_id, step, detail)
        return ReconcileResult(
            guild_id=guild_id,
            outcome=RoleSyncOutcome.PROVIDER_ERROR,
            step=step,
            detail=detail,
        )

    async def reconcile(self, guild_id: int, member_id: int, arm: str) -> ReconcileResult:
        """Make *member_id* hold exactly the *arm* role among arm-family roles."""
        # 1. Member
        try:
            member = await self.provider.get_member(guild_id, member_id)
        except Exception as exc:
            return self._provider_error(guild_id, "fetch_member", exc)
        if member is None:
            logger.debug("Member %d not in guild %d", member_id, guild_id)
            return ReconcileResult(guild_id=guild_id, outcome=RoleSyncOutcome.MEMBER_NOT_FOUND)

        # 2. Mapping
        try:
            mapping = await self.mappings.lookup_role(guild_id, arm)
        except Exception as exc:
            return self._provider_error(guild_id, "lookup_mapping", exc)
        if mapping is None:
            logger.warning("No role mapping for arm %s in guild %d", arm, guild_id)
            return ReconcileResult(
                guild_id=guild_id,
                outcome=RoleSyncOutcome.NO_MAPPING,
                detail=f"No role configured for {arm}",
            )

        # 3. Target role
        try:
            guild_roles = await self.provider.get_roles(guild_id)
        except Exception as exc:
            return self._provider_error(guild_id, "fetch_roles", exc)
        target = resolve_mapped_role(mapping, guild_roles)
        if target is None:
            logger.warning(
                "Mapped role %r for arm %s not found in guild %d",
                mapping.discord_role_name, arm, guild_id,
            )
            return ReconcileResult(
                guild_id=guild_id,
                outcome=RoleSyncOutcome.ROLE_NOT_FOUND,
                detail=f"Role {mapping.discord_role_name!r} does not exist",
            )

        # 4. Stale arm-family roles
        try:
            tagged_refs = await self.mappings.family_role_refs(guild_id)
        except Exception as exc:
            return self._provider_error(guild_id, "lookup_family_roles", exc)
        stale = [
            role for role in member.roles
            if role.id != target.id
            and is_family_role(role, tagged_refs, self.family_match_by_name)
        ]

        # 5. Remove them, tolerating individual failures
        result = ReconcileResult(
            guild_id=guild_id,
            outcome=RoleSyncOutcome.ALREADY_ASSIGNED,
            target_role=target,
        )
        for role in stale:
            try:
                await self.provider.remove_role(member, role)
            except Exception as exc:
                logger.warning(
                    "Could not remove role %s (%d) from %d in guild %d: %s",
                    role.name, role.id, member_id, guild_id, exc,
                )
                result.failed_removals.append(role)
            else:
                result.removed.append(role)

        # 6. Ensure the target role
        if member.has_role(target):
            return result
        try:
            await self.provider.add_role(member, target)
        except Exception as exc:
            failed = self._provider_error(guild_id, "add_role", exc)
            failed.target_role = target
            failed.removed = result.removed
            failed.failed_removals = result.failed_removals
            return failed

        result.outcome = RoleSyncOutcome.ASSIGNED
        logger.info(
            "Assigned role %s to %d in guild %d (removed %d stale)",
            target.name, member_id, guild_id, len(result.removed),
        )
        return result


# ---------------------------------------------------------------------------
# Cross-guild orchestrator
# ---------------------------------------------------------------------------
class CrossGuildRoleSync:
    """Run :class:`ArmRoleReconciler` for one member in every joined guild."""

    def __init__(self, provider: GuildMembershipProvider, reconciler: ArmRoleReconciler) -> None:
        self.provider = provider
        self.reconciler = reconciler

    async def _reconcile_guild(self, guild_id: int, member_id: int, arm: str) -> ReconcileResult:
        try:
            return await self.reconciler.reconcile(guild_id, member_id, arm)
        except Exception as exc:
            logger.exception("Unexpected role sync failure in guild %d", guild_id)
            return ReconcileResult(
                guild_id=guild_id,
                outcome=RoleSyncOutcome.PROVIDER_ERROR,
                step="reconcile",
                detail=str(exc) or type(exc).__name__,
            )

    async def sync_all(self, member_id: int, arm: str) -> list[ReconcileResult]:
        """Reconcile *member_id* to *arm* everywhere.

        Guilds the member is not in are left out of the result.
        """
        guild_ids = list(self.provider.guild_ids())
        results = await asyncio.gather(*(
            self._reconcile_guild(guild_id, member_id, arm) for guild_id in guild_ids
        ))
        present = [r for r in results if r.outcome != RoleSyncOutcome.MEMBER_NOT_FOUND]

        succeeded, total = summarize_sync(present)
        logger.info(
            "Role sync for %d → %s: %d/%d guilds ok (%d checked)",
            member_id, arm, succeeded, total, len(guild_ids),
        )
        return present


def summarize_sync(results: Sequence[ReconcileResult]) -> tuple[int, int]:
    """``(succeeded, total)`` for "synced in N of M guilds" messages."""
    return sum(1 for r in results if r.ok), len(results)


# ---------------------------------------------------------------------------
# Production collaborators
# ---------------------------------------------------------------------------
class DatabaseRoleMappingLookup:
    """:class:`RoleMappingLookup` backed by ``discord_role_mappings``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def lookup_role(self, guild_id: int, arm: str) -> RoleMapping | None:
        return await run_db(role_mapping_service.get_mapping, self.engine, guild_id, arm)

    async def family_role_refs(self, guild_id: int) -> set[str]:
        return await run_db(role_mapping_service.get_family_role_refs, self.engine, guild_id)


def _to_guild_role(role: discord.Role) -> GuildRole:
    return GuildRole(id=role.id, name=role.name)


class DiscordMembershipProvider:
    """:class:`GuildMembershipProvider` over a discord.py client.

    Every API call is bounded by *timeout* seconds; a timeout surfaces as
    :class:`asyncio.TimeoutError` to the reconciler.
    """

    def __init__(self, client: discord.Client, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout

    def guild_ids(self) -> list[int]:
        return [guild.id for guild in self.client.guilds]

    def _guild(self, guild_id: int) -> discord.Guild | None:
        return self.client.get_guild(guild_id)

    async def get_member(self, guild_id: int, member_id: int) -> GuildMember | None:
        guild = self._guild(guild_id)
        if guild is None:
            return None
        try:
            member = await asyncio.wait_for(guild.fetch_member(member_id), self.timeout)
        except discord.NotFound:
            return None
        return GuildMember(
            guild_id=guild_id,
            id=member.id,
            roles=[_to_guild_role(r) for r in member.roles if not r.is_default()],
            handle=member,
        )

    async def get_roles(self, guild_id: int) -> list[GuildRole]:
        guild = self._guild(guild_id)
        if guild is None:
            raise LookupError(f"Guild {guild_id} is not available")
        roles = await asyncio.wait_for(guild.fetch_roles(), self.timeout)
        return [_to_guild_role(r) for r in roles if not r.is_default()]

    async def add_role(self, member: GuildMember, role: GuildRole) -> None:
        await asyncio.wait_for(
            member.handle.add_roles(discord.Object(id=role.id), reason=SYNC_REASON),
            self.timeout,
        )

    async def remove_role(self, member: GuildMember, role: GuildRole) -> None:
        await asyncio.wait_for(
            member.handle.remove_roles(discord.Object(id=role.id), reason=SYNC_REASON),
            self.timeout,
        )
