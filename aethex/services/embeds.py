"""
aethex.services.embeds — Discord embed builders
================================================

All embed construction lives here so cogs only need to supply data.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import discord

from aethex.constants import arm_label
from aethex.database.models import DiscordLink
from aethex.services.role_sync_service import ReconcileResult, RoleSyncOutcome, summarize_sync

OUTCOME_ICONS: dict[RoleSyncOutcome, str] = {
    RoleSyncOutcome.ASSIGNED: "✅",
    RoleSyncOutcome.ALREADY_ASSIGNED: "✔️",
    RoleSyncOutcome.NO_MAPPING: "⚠️",
    RoleSyncOutcome.ROLE_NOT_FOUND: "⚠️",
    RoleSyncOutcome.MEMBER_NOT_FOUND: "➖",
    RoleSyncOutcome.PROVIDER_ERROR: "❌",
}


def describe_outcome(result: ReconcileResult) -> str:
    """One-line, user-facing description of a reconciliation result."""
    role = f"**{result.target_role.name}**" if result.target_role else "your arm role"
    if result.outcome == RoleSyncOutcome.ASSIGNED:
        text = f"Assigned {role}"
    elif result.outcome == RoleSyncOutcome.ALREADY_ASSIGNED:
        text = f"You already have {role}"
    elif result.outcome == RoleSyncOutcome.NO_MAPPING:
        text = "No role is configured for this arm here. Ask an admin to set one up."
    elif result.outcome == RoleSyncOutcome.ROLE_NOT_FOUND:
        text = "The configured role no longer exists. Ask an admin to fix the mapping."
    elif result.outcome == RoleSyncOutcome.MEMBER_NOT_FOUND:
        text = "You are not a member of this server."
    else:
        text = "Discord did not respond. Please try again later."
    if result.removed:
        text += f" (removed {', '.join(r.name for r in result.removed)})"
    if result.failed_removals:
        text += f" (could not remove {', '.join(r.name for r in result.failed_removals)})"
    return text


def build_sync_embed(
    arm: str,
    results: Sequence[ReconcileResult],
    guild_names: Mapping[int, str],
    *,
    title: str = "\U0001f504 Roles Synced",
) -> discord.Embed:
    """Per-guild summary of a cross-guild sync."""
    succeeded, total = summarize_sync(results)
    if total == 0:
        color = discord.Color.light_grey()
    elif succeeded == total:
        color = discord.Color.green()
    elif succeeded:
        color = discord.Color.orange()
    else:
        color = discord.Color.red()

    embed = discord.Embed(
        title=title,
        description=f"Realm: **{arm_label(arm)}**\nSynced in {succeeded} of {total} servers.",
        color=color,
    )
    for result in results[:25]:  # Discord caps embeds at 25 fields
        embed.add_field(
            name=f"{OUTCOME_ICONS[result.outcome]} {guild_names.get(result.guild_id, result.guild_id)}",
            value=describe_outcome(result),
            inline=False,
        )
    if total == 0:
        embed.add_field(
            name="No servers",
            value="You are not in any server the bot can manage.",
            inline=False,
        )
    return embed


def build_verify_embed(code: str, verify_url: str, ttl_minutes: int) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f517 Link your AeThex account",
        description=(
            f"**Verification Code: `{code}`**\n\n"
            f"[Click here to verify your account]({verify_url}?code={code})\n\n"
            f"⏱️ This code expires in {ttl_minutes} minutes."
        ),
        color=discord.Color.blurple(),
    )
    return embed


def build_profile_embed(
    display_name: str,
    avatar_url: str,
    link: DiscordLink,
) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f464 Your AeThex Profile",
        color=discord.Color.blurple(),
    )
    embed.set_thumbnail(url=avatar_url)
    embed.add_field(name="Discord", value=f"{display_name} (`{link.discord_id}`)", inline=False)
    embed.add_field(name="AeThex account", value=f"`{link.user_id}`", inline=False)
    embed.add_field(name="Primary realm", value=arm_label(link.primary_arm), inline=True)
    if link.linked_at:
        embed.add_field(
            name="Linked",
            value=discord.utils.format_dt(link.linked_at, style="R"),
            inline=True,
        )
    embed.set_footer(text="/set-realm to change realm · /unlink to disconnect")
    return embed


def build_error_embed(description: str) -> discord.Embed:
    embed = discord.Embed(
        title="❌ Command Error",
        description=description,
        color=discord.Color.red(),
    )
    embed.set_footer(text="Contact support if this persists")
    return embed
