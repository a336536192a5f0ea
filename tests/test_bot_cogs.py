"""
Tests for the Realm, Membership, and PeriodicTasks cogs.

Slash command callbacks are invoked directly with mocked interactions;
link state goes through the real services on an in-memory database.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from aethex.bot.cogs.membership import Membership
from aethex.bot.cogs.realm import NOT_LINKED_MESSAGE, Realm
from aethex.bot.cogs.tasks import PeriodicTasks
from aethex.database.models import DiscordVerification
from aethex.services import link_service
from aethex.services.role_sync_service import (
    GuildRole,
    ReconcileResult,
    RoleSyncOutcome,
)

DISCORD_ID = 777


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_bot(engine) -> MagicMock:
    """Create a lightweight mock AethexBot."""
    bot = MagicMock()
    bot.engine = engine
    bot.cfg = SimpleNamespace(
        verification_ttl_minutes=15,
        verify_url="https://aethex.dev/discord-verify",
        family_match_by_name=True,
    )
    guild = MagicMock()
    guild.id = 1
    guild.name = "AeThex Hub"
    bot.guilds = [guild]
    bot.role_sync.sync_all = AsyncMock(return_value=[
        ReconcileResult(
            guild_id=1,
            outcome=RoleSyncOutcome.ASSIGNED,
            target_role=GuildRole(id=10, name="Corp"),
        ),
    ])
    bot.reconciler.reconcile = AsyncMock()
    return bot


def _make_interaction(user_id: int = DISCORD_ID) -> MagicMock:
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.user.display_name = "Nova"
    interaction.user.display_avatar.url = "https://cdn.example/avatar.png"
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def _link(engine, discord_id: int = DISCORD_ID, arm: str | None = None) -> None:
    code = link_service.create_verification(engine, discord_id).verification_code
    link_service.redeem_verification(engine, code, f"user-{discord_id}")
    if arm:
        link_service.set_primary_arm(engine, discord_id, arm)


# ---------------------------------------------------------------------------
# Realm cog
# ---------------------------------------------------------------------------
class TestVerifyCommand:
    def test_issues_code(self, db_engine):
        cog = Realm(_make_bot(db_engine))
        interaction = _make_interaction()

        run_async(cog.verify.callback(cog, interaction))

        with Session(db_engine) as session:
            code = session.scalar(select(DiscordVerification.verification_code))
        embed = interaction.response.send_message.call_args.kwargs["embed"]
        assert code in embed.description
        assert "discord-verify?code=" in embed.description

    def test_already_linked_shows_profile(self, db_engine):
        _link(db_engine)
        cog = Realm(_make_bot(db_engine))
        interaction = _make_interaction()

        run_async(cog.verify.callback(cog, interaction))

        args, kwargs = interaction.response.send_message.call_args
        assert "already linked" in args[0]
        assert kwargs["embed"].title.endswith("Your AeThex Profile")


class TestSetRealmCommand:
    def test_not_linked(self, db_engine):
        bot = _make_bot(db_engine)
        cog = Realm(bot)
        interaction = _make_interaction()

        run_async(cog.set_realm.callback(cog, interaction, "corp"))

        interaction.followup.send.assert_awaited_once_with(NOT_LINKED_MESSAGE, ephemeral=True)
        bot.role_sync.sync_all.assert_not_awaited()

    def test_stores_arm_and_syncs(self, db_engine):
        _link(db_engine, arm="gameforge")
        bot = _make_bot(db_engine)
        cog = Realm(bot)
        interaction = _make_interaction()

        run_async(cog.set_realm.callback(cog, interaction, "corp"))

        assert link_service.get_link(db_engine, DISCORD_ID).primary_arm == "corp"
        bot.role_sync.sync_all.assert_awaited_once_with(DISCORD_ID, "corp")
        embed = interaction.followup.send.call_args.kwargs["embed"]
        assert "Synced in 1 of 1 servers" in embed.description
        assert embed.fields[0].name.endswith("AeThex Hub")


class TestRefreshRolesCommand:
    def test_requires_realm(self, db_engine):
        _link(db_engine)
        bot = _make_bot(db_engine)
        cog = Realm(bot)
        interaction = _make_interaction()

        run_async(cog.refresh_roles.callback(cog, interaction))

        assert "/set-realm" in interaction.followup.send.call_args.args[0]
        bot.role_sync.sync_all.assert_not_awaited()

    def test_resyncs_current_realm(self, db_engine):
        _link(db_engine, arm="labs")
        bot = _make_bot(db_engine)
        cog = Realm(bot)

        run_async(cog.refresh_roles.callback(cog, _make_interaction()))

        bot.role_sync.sync_all.assert_awaited_once_with(DISCORD_ID, "labs")


def _guild_role(role_id: int, name: str, default: bool = False) -> MagicMock:
    role = MagicMock()
    role.id = role_id
    role.name = name
    role.is_default.return_value = default
    return role


class TestVerifyRoleCommand:
    def _interaction(self) -> MagicMock:
        interaction = _make_interaction()
        interaction.guild.id = 1
        interaction.user.roles = [
            _guild_role(1, "@everyone", default=True),
            _guild_role(10, "Corp"),
            _guild_role(11, "Moderator"),
        ]
        return interaction

    def test_shows_expected_and_held_roles(self, db_engine):
        _link(db_engine, arm="corp")
        bot = _make_bot(db_engine)
        bot.role_mappings.lookup_role = AsyncMock(return_value=SimpleNamespace(discord_role_name="Corp"))
        bot.role_mappings.family_role_refs = AsyncMock(return_value={"Corp"})
        cog = Realm(bot)
        interaction = self._interaction()

        run_async(cog.verify_role.callback(cog, interaction))

        embed = interaction.response.send_message.call_args.kwargs["embed"]
        assert [f.value for f in embed.fields][1:] == ["Corp", "Corp"]

    def test_database_fault_falls_back_to_name_matching(self, db_engine):
        _link(db_engine, arm="corp")
        bot = _make_bot(db_engine)
        fault = OperationalError("SELECT 1", {}, Exception("connection refused"))
        bot.role_mappings.lookup_role = AsyncMock(side_effect=fault)
        bot.role_mappings.family_role_refs = AsyncMock(side_effect=fault)
        cog = Realm(bot)
        interaction = self._interaction()

        run_async(cog.verify_role.callback(cog, interaction))

        embed = interaction.response.send_message.call_args.kwargs["embed"]
        assert [f.value for f in embed.fields][1:] == ["Not configured here", "Corp"]


class TestUnlinkCommand:
    def test_unlink(self, db_engine):
        _link(db_engine)
        cog = Realm(_make_bot(db_engine))
        interaction = _make_interaction()

        run_async(cog.unlink.callback(cog, interaction))

        assert "Unlinked" in interaction.response.send_message.call_args.args[0]
        assert link_service.get_link(db_engine, DISCORD_ID) is None

    def test_unlink_when_not_linked(self, db_engine):
        cog = Realm(_make_bot(db_engine))
        interaction = _make_interaction()

        run_async(cog.unlink.callback(cog, interaction))

        interaction.response.send_message.assert_awaited_once_with(NOT_LINKED_MESSAGE, ephemeral=True)


# ---------------------------------------------------------------------------
# Membership cog
# ---------------------------------------------------------------------------
def _make_member(member_id: int = DISCORD_ID, *, bot: bool = False) -> MagicMock:
    member = MagicMock(spec=discord.Member)
    member.id = member_id
    member.bot = bot
    member.display_name = "Nova"
    member.guild = MagicMock()
    member.guild.id = 1
    member.guild.name = "AeThex Hub"
    return member


class TestMemberJoin:
    def test_reconciles_linked_member(self, db_engine):
        _link(db_engine, arm="foundation")
        bot = _make_bot(db_engine)

        run_async(Membership(bot).on_member_join(_make_member()))

        bot.reconciler.reconcile.assert_awaited_once_with(1, DISCORD_ID, "foundation")

    @pytest.mark.parametrize("linked,arm,is_bot", [
        (False, None, False),
        (True, None, False),
        (True, "corp", True),
    ])
    def test_skips(self, db_engine, linked, arm, is_bot):
        if linked:
            _link(db_engine, arm=arm)
        bot = _make_bot(db_engine)

        run_async(Membership(bot).on_member_join(_make_member(bot=is_bot)))

        bot.reconciler.reconcile.assert_not_awaited()

    def test_errors_are_logged_not_raised(self, db_engine):
        _link(db_engine, arm="corp")
        bot = _make_bot(db_engine)
        bot.reconciler.reconcile = AsyncMock(side_effect=RuntimeError("boom"))

        run_async(Membership(bot).on_member_join(_make_member()))


# ---------------------------------------------------------------------------
# Periodic tasks
# ---------------------------------------------------------------------------
class TestVerificationPurge:
    def test_purge_loop_removes_expired_codes(self, db_engine):
        with Session(db_engine) as session:
            session.add(DiscordVerification(
                verification_code="OLD001", discord_id=1,
                expires_at=datetime.now(UTC) - timedelta(minutes=5),
            ))
            session.commit()
        link_service.create_verification(db_engine, 2)

        cog = PeriodicTasks(_make_bot(db_engine))
        run_async(cog.purge_loop())

        with Session(db_engine) as session:
            remaining = session.scalars(select(DiscordVerification.discord_id)).all()
        assert remaining == [2]
