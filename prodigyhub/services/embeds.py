"""
prodigyhub.services.embeds — Discord embed builders for project channels
=========================================================================

All embed construction lives here so the Discord adapter only needs to
supply data.
"""

from __future__ import annotations

from collections.abc import Sequence

import discord

from prodigyhub.constants import COLOR_COMPLETE, COLOR_PROJECT, DIFFICULTY_EMOJI
from prodigyhub.services.channel_adapter import ProjectSummary


def _mentions(discord_ids: Sequence[str]) -> str:
    return ", ".join(f"<@{did}>" for did in discord_ids) or "—"


def build_project_info_embed(
    summary: ProjectSummary,
    member_discord_ids: Sequence[str],
) -> discord.Embed:
    """Pinned-style welcome card posted when a project channel is created."""
    emoji = DIFFICULTY_EMOJI.get(summary.difficulty, "⚪")
    embed = discord.Embed(
        title=f"\U0001f680 {summary.title}",
        description=summary.description[:4000],
        color=discord.Color(COLOR_PROJECT),
    )
    embed.add_field(
        name="Difficulty",
        value=f"{emoji} {summary.difficulty.title()}",
        inline=True,
    )
    embed.add_field(name="XP Reward", value=f"{summary.xp_reward} XP", inline=True)
    embed.add_field(name="Team", value=_mentions(member_discord_ids), inline=False)
    if summary.tags:
        embed.add_field(name="Tags", value=" ".join(f"`{t}`" for t in summary.tags), inline=False)
    embed.set_footer(text=f"Project #{summary.project_id}")
    return embed


def build_completion_embed(
    summary: ProjectSummary,
    member_discord_ids: Sequence[str],
) -> discord.Embed:
    """Celebration card for a completed project."""
    embed = discord.Embed(
        title="\U0001f389 Project Completed!",
        description=(
            f"**{summary.title}** is done. "
            f"Every participant earned **{summary.xp_reward} XP**."
        ),
        color=discord.Color(COLOR_COMPLETE),
    )
    embed.add_field(name="Team", value=_mentions(member_discord_ids), inline=False)
    embed.set_footer(text="This channel will be archived soon.")
    return embed
