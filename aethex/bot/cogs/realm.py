"""
aethex.bot.cogs.realm — Linking & Realm Slash Commands
=======================================================

Member self-service:
- /verify — issue a code to link Discord to an AeThex account
- /set-realm — choose a primary arm and sync arm roles everywhere
- /refresh-roles — re-run the arm role sync for the current realm
- /verify-role — show the expected and currently held arm roles here
- /profile — show the linked account
- /unlink — disconnect the Discord account from AeThex
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError

from aethex.constants import SELECTABLE_ARMS, arm_label
from aethex.database.engine import run_db
from aethex.services import link_service
from aethex.services.embeds import (
    build_profile_embed,
    build_sync_embed,
    build_verify_embed,
)
from aethex.services.role_sync_service import GuildRole, is_family_role

if TYPE_CHECKING:
    from aethex.bot.core import AethexBot

logger = logging.getLogger(__name__)

NOT_LINKED_MESSAGE = "\U0001f517 Your Discord account is not linked yet. Use `/verify` first."


class Realm(commands.Cog, name="Realm"):
    """Account linking and arm role commands."""

    def __init__(self, bot: AethexBot) -> None:
        self.bot = bot

    def _guild_names(self) -> dict[int, str]:
        return {guild.id: guild.name for guild in self.bot.guilds}

    # -------------------------------------------------------------------
    # /verify
    # -------------------------------------------------------------------
    @app_commands.command(name="verify", description="Link your Discord account to AeThex.")
    async def verify(self, interaction: discord.Interaction) -> None:
        user = interaction.user
        link = await run_db(link_service.get_link, self.bot.engine, user.id)
        if link is not None:
            embed = build_profile_embed(user.display_name, user.display_avatar.url, link)
            await interaction.response.send_message(
                "✅ Your account is already linked.", embed=embed, ephemeral=True,
            )
            return

        ttl = self.bot.cfg.verification_ttl_minutes
        verification = await run_db(
            link_service.create_verification,
            self.bot.engine,
            user.id,
            username=str(user),
            ttl_minutes=ttl,
        )
        await interaction.response.send_message(
            embed=build_verify_embed(verification.verification_code, self.bot.cfg.verify_url, ttl),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /set-realm
    # -------------------------------------------------------------------
    @app_commands.command(
        name="set-realm",
        description="Choose your primary arm/realm (Labs, GameForge, Corp, etc.)",
    )
    @app_commands.describe(realm="Your primary realm")
    @app_commands.choices(
        realm=[
            app_commands.Choice(name=arm_label(arm), value=arm)
            for arm in SELECTABLE_ARMS
        ],
    )
    async def set_realm(self, interaction: discord.Interaction, realm: str) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)

        link = await run_db(link_service.set_primary_arm, self.bot.engine, interaction.user.id, realm)
        if link is None:
            await interaction.followup.send(NOT_LINKED_MESSAGE, ephemeral=True)
            return

        results = await self.bot.role_sync.sync_all(interaction.user.id, realm)
        embed = build_sync_embed(
            realm, results, self._guild_names(),
            title=f"✅ Realm set to {arm_label(realm)}",
        )
        await interaction.followup.send(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /refresh-roles
    # -------------------------------------------------------------------
    @app_commands.command(
        name="refresh-roles",
        description="Re-sync your arm role in every AeThex server.",
    )
    async def refresh_roles(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)

        link = await run_db(link_service.get_link, self.bot.engine, interaction.user.id)
        if link is None:
            await interaction.followup.send(NOT_LINKED_MESSAGE, ephemeral=True)
            return
        if not link.primary_arm:
            await interaction.followup.send(
                "\U0001f9ed You have not chosen a realm yet. Use `/set-realm` first.",
                ephemeral=True,
            )
            return

        results = await self.bot.role_sync.sync_all(interaction.user.id, link.primary_arm)
        await interaction.followup.send(
            embed=build_sync_embed(link.primary_arm, results, self._guild_names()),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /verify-role
    # -------------------------------------------------------------------
    @app_commands.command(name="verify-role", description="Check your assigned arm roles here.")
    @app_commands.guild_only()
    async def verify_role(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        member = interaction.user
        assert guild is not None  # guild_only

        link = await run_db(link_service.get_link, self.bot.engine, member.id)
        if link is None:
            await interaction.response.send_message(NOT_LINKED_MESSAGE, ephemeral=True)
            return

        expected = "No realm chosen"
        if link.primary_arm:
            try:
                mapping = await self.bot.role_mappings.lookup_role(guild.id, link.primary_arm)
            except (ValueError, SQLAlchemyError) as exc:
                logger.warning("Role mapping lookup failed in guild %d: %s", guild.id, exc)
                mapping = None
            expected = mapping.discord_role_name if mapping else "Not configured here"

        try:
            tagged = await self.bot.role_mappings.family_role_refs(guild.id)
        except SQLAlchemyError as exc:
            logger.warning("Arm-family role lookup failed in guild %d: %s", guild.id, exc)
            tagged = set()
        held = [
            role.name for role in getattr(member, "roles", [])
            if not role.is_default()
            and is_family_role(GuildRole(id=role.id, name=role.name), tagged, self.bot.cfg.family_match_by_name)
        ]

        embed = discord.Embed(
            title="✅ Discord Roles",
            color=discord.Color.blurple(),
        )
        embed.add_field(name="Primary realm", value=arm_label(link.primary_arm), inline=True)
        embed.add_field(name="Expected role", value=expected, inline=True)
        embed.add_field(name="Arm roles held", value=", ".join(held) or "None", inline=False)
        embed.set_footer(text="Out of sync? Run /refresh-roles")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /profile
    # -------------------------------------------------------------------
    @app_commands.command(name="profile", description="View your linked AeThex profile.")
    async def profile(self, interaction: discord.Interaction) -> None:
        user = interaction.user
        link = await run_db(link_service.get_link, self.bot.engine, user.id)
        if link is None:
            await interaction.response.send_message(NOT_LINKED_MESSAGE, ephemeral=True)
            return
        await interaction.response.send_message(
            embed=build_profile_embed(user.display_name, user.display_avatar.url, link),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /unlink
    # -------------------------------------------------------------------
    @app_commands.command(name="unlink", description="Disconnect your Discord account from AeThex.")
    async def unlink(self, interaction: discord.Interaction) -> None:
        removed = await run_db(link_service.unlink, self.bot.engine, interaction.user.id)
        if not removed:
            await interaction.response.send_message(NOT_LINKED_MESSAGE, ephemeral=True)
            return
        await interaction.response.send_message(
            f"\U0001f513 **Account Unlinked**\n\n"
            f"Your Discord account (`{interaction.user.id}`) has been disconnected "
            "from AeThex.\n\nTo link again, use `/verify`",
            ephemeral=True,
        )


async def setup(bot: AethexBot) -> None:
    await bot.add_cog(Realm(bot))
