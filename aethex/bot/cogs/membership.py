"""
aethex.bot.cogs.membership — Arm Role Sync on Join
===================================================

When a linked member joins (or rejoins) a guild, reconcile their arm role
there so they don't have to run ``/refresh-roles``.  Requires the
GUILD_MEMBERS privileged intent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from aethex.database.engine import run_db
from aethex.services import link_service

if TYPE_CHECKING:
    from aethex.bot.core import AethexBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Applies the member's primary arm role when they join a guild."""

    def __init__(self, bot: AethexBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return

            link = await run_db(link_service.get_link, self.bot.engine, member.id)
            if link is None or not link.primary_arm:
                return

            result = await self.bot.reconciler.reconcile(
                member.guild.id, member.id, link.primary_arm,
            )
            logger.info(
                "Join sync for %s (ID: %d) in %s: %s",
                member.display_name, member.id, member.guild.name, result.outcome,
            )

        except Exception:
            logger.exception(
                "Error syncing arm role for joining member %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )


async def setup(bot: AethexBot) -> None:
    await bot.add_cog(Membership(bot))
