"""Leaderboard display command: /leaderboard <event> [limit]."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..core.errors import RankingError
from ..core.formatting import aggregation_label, format_score, rank_badge
from ..core.models import Event, RankedParticipant
from .common import event_choices, guild_event, reply, report_error

if TYPE_CHECKING:
    from ..core.error_engine import ErrorEngine
    from ..core.ranking_service import RankingService

DEFAULT_LIMIT = 10


def build_leaderboard_embed(
    event: Event,
    rows: List[RankedParticipant],
    stats: dict,
    *,
    public_url: Optional[str] = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"🏆 {event.name}",
        description=event.description or None,
        color=discord.Color.gold() if event.is_active else discord.Color.dark_grey(),
    )
    if rows:
        lines = [
            f"{rank_badge(row.rank)} **{row.display_name}** · "
            f"{format_score(row.calculated_score, event.score_type)} "
            f"({row.entry_count} {'entry' if row.entry_count == 1 else 'entries'})"
            for row in rows
        ]
        embed.add_field(name="Standings", value="\n".join(lines)[:1024], inline=False)
    else:
        embed.add_field(name="Standings", value="No scores recorded yet.", inline=False)

    embed.add_field(name="Aggregation", value=aggregation_label(event.score_aggregation), inline=True)
    embed.add_field(name="Participants", value=str(stats.get("participant_count", 0)), inline=True)
    if not event.is_active:
        embed.add_field(name="Status", value="🔴 Inactive", inline=True)
    footer = f"Event ID {event.id}"
    if public_url:
        footer += f" • {public_url}/public/event/{event.id}"
    embed.set_footer(text=footer)
    return embed


class LeaderboardCog(commands.Cog):
    def __init__(
        self,
        bot: commands.Bot,
        service: Optional["RankingService"] = None,
        error_engine: Optional["ErrorEngine"] = None,
        public_url: Optional[str] = None,
    ) -> None:
        self.bot = bot
        self.service = service or getattr(bot, "ranking_service", None)
        self.error_engine = error_engine
        self.public_url = public_url

    @app_commands.command(name="leaderboard", description="🏆 Show an event leaderboard")
    @app_commands.describe(event="Event to show", limit="How many places to show (1-25)")
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        event: int,
        limit: app_commands.Range[int, 1, 25] = DEFAULT_LIMIT,
    ) -> None:
        try:
            found = await guild_event(self.service, interaction, event)
            detail = await self.service.get_event_detail(found.id, limit=limit)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/leaderboard")
            return
        embed = build_leaderboard_embed(detail.event, detail.leaderboard, detail.stats, public_url=self.public_url)
        await reply(interaction, embed=embed, ephemeral=False)

    @leaderboard.autocomplete("event")
    async def event_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> List[app_commands.Choice[int]]:
        return await event_choices(self.service, interaction, current, active_only=False)


async def setup(bot: commands.Bot) -> None:
    """Standard setup, called by the bot to load the cog."""
    service = getattr(bot, "ranking_service", None)
    error_engine = getattr(bot, "error_engine", None)
    config = getattr(bot, "config", None)
    await bot.add_cog(LeaderboardCog(bot, service, error_engine, getattr(config, "public_base_url", None)))
