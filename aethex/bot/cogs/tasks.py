"""
aethex.bot.cogs.tasks — Periodic Background Tasks
==================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Verification purge** — hourly, deletes ``/verify`` codes past their
  expiry so abandoned codes don't pile up.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from aethex.database.engine import run_db
from aethex.services.link_service import purge_expired_verifications

if TYPE_CHECKING:
    from aethex.bot.core import AethexBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: AethexBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.purge_loop.start()

    async def cog_unload(self) -> None:
        self.purge_loop.cancel()

    @tasks.loop(hours=1)
    async def purge_loop(self):
        try:
            removed = await run_db(purge_expired_verifications, self.bot.engine)
            logger.debug("Verification purge complete: %d removed", removed)
        except Exception:
            logger.exception("Verification purge failed", extra={"task": "verification_purge"})

    @purge_loop.before_loop
    async def _wait_purge(self):
        await self.bot.wait_until_ready()


async def setup(bot: AethexBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
