"""
aethex.bot.__main__ — Entry point for ``python -m aethex.bot``
==============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Create the AethexBot and hand it config + engine.
5. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m aethex.bot
"""

from __future__ import annotations

import logging
import os
import sys

import discord
from dotenv import load_dotenv

from aethex.bot.core import AethexBot
from aethex.config import load_config
from aethex.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("aethex")

_MIN_TOKEN_LENGTH = 20


def main() -> None:
    """Bootstrap and run the AeThex bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)
    if len(token) < _MIN_TOKEN_LENGTH:
        logger.critical("DISCORD_TOKEN looks invalid (length %d).", len(token))
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Bot.
    bot = AethexBot(cfg=cfg, engine=engine)

    # 5. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting AeThex bot…")
    try:
        bot.run(token, log_handler=None)
    except discord.LoginFailure as exc:
        logger.critical("Failed to log in to Discord: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
