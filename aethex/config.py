"""
aethex.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for **infrastructure-only** settings (community
identity, verification link, provider timeouts).  Secrets such as the bot
token and database URL come from the environment (``.env``).

Usage::

    from aethex.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "AeThex"
    print(cfg.verify_url)        # "https://aethex.dev/discord-verify"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_VERIFY_URL = "https://aethex.dev/discord-verify"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AethexConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str

    # Linking
    verify_url: str = DEFAULT_VERIFY_URL
    verification_ttl_minutes: int = 15

    # Role sync
    provider_timeout_seconds: float = 10.0  # Per Discord API call
    family_match_by_name: bool = True       # Legacy substring detection


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AethexConfig:
    """Read *path* and return an :class:`AethexConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return AethexConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        verify_url=str(raw.get("verify_url") or DEFAULT_VERIFY_URL).rstrip("/"),
        verification_ttl_minutes=int(raw.get("verification_ttl_minutes", 15)),
        provider_timeout_seconds=float(raw.get("provider_timeout_seconds", 10.0)),
        family_match_by_name=bool(raw.get("family_match_by_name", True)),
    )
