"""
aethex.bot.core — Bot Instance & Cog Loader
============================================

Defines :class:`AethexBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``).
2. Wires the role-sync core: a :class:`DiscordMembershipProvider` over this
   client, a :class:`DatabaseRoleMappingLookup` over the engine, and the
   :class:`ArmRoleReconciler` / :class:`CrossGuildRoleSync` built on them.
3. Loads every cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
"""

from __future__ import annotations

import logging
import os

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy import Engine

from aethex.config import AethexConfig
from aethex.services.embeds import build_error_embed
from aethex.services.role_sync_service import (
    ArmRoleReconciler,
    CrossGuildRoleSync,
    DatabaseRoleMappingLookup,
    DiscordMembershipProvider,
)

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "aethex.bot.cogs.realm",
    "aethex.bot.cogs.membership",
    "aethex.bot.cogs.tasks",
]


class AethexBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`AethexConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: AethexConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.members = True            # Privileged: join events, member fetches
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — realm & role sync",
        )

        self.cfg = cfg
        self.engine = engine

        self.membership = DiscordMembershipProvider(self, timeout=cfg.provider_timeout_seconds)
        self.role_mappings = DatabaseRoleMappingLookup(engine)
        self.reconciler = ArmRoleReconciler(
            self.membership,
            self.role_mappings,
            family_match_by_name=cfg.family_match_by_name,
        )
        self.role_sync = CrossGuildRoleSync(self.membership, self.reconciler)

        self.tree.on_error = self.on_app_command_error

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions; one broken Cog shouldn't take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        logger.info("Listening in %d server(s)", len(self.guilds))

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.listening,
                name="/verify to link your AeThex account",
            )
        )

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        """Last-resort handler: log and tell the user something went wrong."""
        command = interaction.command.name if interaction.command else "?"
        logger.error("Error executing /%s", command, exc_info=error)

        embed = build_error_embed("There was an error while executing this command.")
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)
