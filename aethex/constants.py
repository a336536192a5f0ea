"""
aethex.constants — Shared Constants & Helpers
==============================================

Single source of truth for arm presentation and the legacy arm-family
name matching.  Import from here instead of duplicating in cogs and services.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Arm presentation (used by /set-realm choices and embeds)
# ---------------------------------------------------------------------------
ARM_LABELS: dict[str, str] = {
    "labs": "\U0001f52c Labs",
    "gameforge": "\U0001f3ae GameForge",
    "corp": "\U0001f4bc Corp",
    "foundation": "\U0001f91d Foundation",
    "devlink": "\U0001f517 Dev-Link",
    "nexus": "✨ Nexus",
    "staff": "\U0001f6e1️ Staff",
}

# Arms a member may pick for themselves via /set-realm.
SELECTABLE_ARMS: tuple[str, ...] = ("labs", "gameforge", "corp", "foundation", "devlink")


def arm_label(arm: str | None) -> str:
    """Human-readable label for *arm*, falling back to the raw tag."""
    if not arm:
        return "None"
    return ARM_LABELS.get(arm, arm)


# ---------------------------------------------------------------------------
# Legacy arm-family detection by role name
# ---------------------------------------------------------------------------
ARM_FAMILY_SUBSTRINGS: tuple[str, ...] = ("labs", "gameforge", "corp", "foundation", "devlink")

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_role_name(name: str) -> str:
    """Lowercase and strip everything but letters and digits.

    ``"Dev-Link"`` and ``"Game Forge"`` become ``"devlink"`` and ``"gameforge"``.
    """
    return _NON_ALNUM.sub("", name.lower())


def is_family_role_name(name: str) -> bool:
    """True if *name* contains one of the arm-family substrings."""
    normalized = normalize_role_name(name)
    return any(token in normalized for token in ARM_FAMILY_SUBSTRINGS)


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------
VERIFICATION_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
VERIFICATION_CODE_LENGTH = 6
