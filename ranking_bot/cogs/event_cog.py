"""
Event management commands.

Commands:
- /event create - Create a ranked event (admins)
- /event list   - List this server's events
- /event info   - Show one event with participant stats
- /event toggle - Activate or deactivate an event (admins)
- /event edit   - Change event fields (admins)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..core.errors import RankingError
from ..core.formatting import aggregation_label, score_type_label
from ..core.models import Event
from ..core.permissions import can_manage_events
from .common import event_choices, guild_event, reply, report_error

if TYPE_CHECKING:
    from ..core.error_engine import ErrorEngine
    from ..core.ranking_service import RankingService


SCORE_TYPE_CHOICES = [
    app_commands.Choice(name="Points (higher is better)", value="points"),
    app_commands.Choice(name="Time in seconds (lower is better)", value="time_seconds"),
]
SORT_CHOICES = [
    app_commands.Choice(name="Highest first", value="desc"),
    app_commands.Choice(name="Lowest first", value="asc"),
]
AGGREGATION_CHOICES = [
    app_commands.Choice(name="Sum of all entries", value="sum"),
    app_commands.Choice(name="Average of entries", value="average"),
    app_commands.Choice(name="Best single entry", value="best"),
]


def _value(choice: Optional[app_commands.Choice[str]]) -> Optional[str]:
    return choice.value if choice is not None else None


def build_event_embed(event: Event, stats: Optional[dict] = None) -> discord.Embed:
    color = discord.Color.green() if event.is_active else discord.Color.dark_grey()
    embed = discord.Embed(
        title=f"🏁 {event.name}",
        description=event.description or "No description provided.",
        color=color,
    )
    embed.add_field(name="Score type", value=score_type_label(event.score_type), inline=True)
    embed.add_field(name="Aggregation", value=aggregation_label(event.score_aggregation), inline=True)
    embed.add_field(
        name="Ranking",
        value="Highest first" if event.sort_direction.value == "desc" else "Lowest first",
        inline=True,
    )
    embed.add_field(name="Status", value="🟢 Active" if event.is_active else "🔴 Inactive", inline=True)
    if stats is not None:
        embed.add_field(name="Participants", value=str(stats.get("participant_count", 0)), inline=True)
        embed.add_field(name="Entries", value=str(stats.get("total_entries", 0)), inline=True)
    embed.set_footer(text=f"Event ID {event.id}")
    return embed


class EventCog(commands.Cog):
    """Create and manage ranked events for a server."""

    event = app_commands.Group(name="event", description="🏁 Create and manage ranked events")

    def __init__(
        self,
        bot: commands.Bot,
        service: Optional["RankingService"] = None,
        owners: Optional[Iterable[int]] = None,
        error_engine: Optional["ErrorEngine"] = None,
    ) -> None:
        self.bot = bot
        self.service = service or getattr(bot, "ranking_service", None)
        self.owners = set(owners or [])
        self.error_engine = error_engine

    async def _require_admin(self, interaction: discord.Interaction) -> bool:
        if interaction.guild is None:
            await reply(interaction, "❌ This command can only be used in a server.")
            return False
        if not can_manage_events(interaction.user, interaction.guild, self.owners):
            await reply(interaction, "❌ Only the server owner or an administrator can manage events.")
            return False
        return True

    @event.command(name="create", description="Create a new ranked event")
    @app_commands.describe(
        name="Event name",
        score_type="What a score measures",
        description="Short description shown on the leaderboard",
        sort_direction="Override which end of the board wins",
        aggregation="How multiple entries per member combine",
    )
    @app_commands.choices(
        score_type=SCORE_TYPE_CHOICES,
        sort_direction=SORT_CHOICES,
        aggregation=AGGREGATION_CHOICES,
    )
    async def create(
        self,
        interaction: discord.Interaction,
        name: str,
        score_type: app_commands.Choice[str],
        description: Optional[str] = None,
        sort_direction: Optional[app_commands.Choice[str]] = None,
        aggregation: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        if not await self._require_admin(interaction):
            return
        guild = interaction.guild
        assert guild is not None
        try:
            await self.service.register_guild(guild.id, guild.name, guild.owner_id)
            created = await self.service.create_event(
                guild.id,
                name,
                description,
                score_type.value,
                interaction.user.id,
                sort_direction=_value(sort_direction),
                score_aggregation=_value(aggregation) or "sum",
            )
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/event create")
            return
        await reply(interaction, "✅ Event created!", embed=build_event_embed(created), ephemeral=False)

    @event.command(name="list", description="List this server's events")
    @app_commands.describe(show_inactive="Include inactive events")
    async def list_events(self, interaction: discord.Interaction, show_inactive: bool = False) -> None:
        if interaction.guild is None:
            await reply(interaction, "❌ This command can only be used in a server.")
            return
        try:
            events = await self.service.list_events(interaction.guild.id, active_only=not show_inactive)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/event list")
            return

        if not events:
            await reply(interaction, "📭 No events yet. An admin can start one with `/event create`.")
            return

        lines: List[str] = []
        for item in events[:25]:
            status = "🟢" if item.is_active else "🔴"
            lines.append(f"{status} **{item.name}** · {score_type_label(item.score_type)} · `#{item.id}`")
        embed = discord.Embed(
            title=f"Events in {interaction.guild.name}",
            description="\n".join(lines),
            color=discord.Color.blurple(),
        )
        if len(events) > 25:
            embed.set_footer(text=f"Showing 25 of {len(events)} events")
        await reply(interaction, embed=embed)

    @event.command(name="info", description="Show details for an event")
    @app_commands.describe(event="Event to inspect")
    async def info(self, interaction: discord.Interaction, event: int) -> None:
        try:
            found = await guild_event(self.service, interaction, event)
            detail = await self.service.get_event_detail(found.id)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/event info")
            return
        await reply(interaction, embed=build_event_embed(detail.event, detail.stats))

    @event.command(name="toggle", description="Activate or deactivate an event")
    @app_commands.describe(event="Event to toggle")
    async def toggle(self, interaction: discord.Interaction, event: int) -> None:
        if not await self._require_admin(interaction):
            return
        try:
            await guild_event(self.service, interaction, event)
            updated = await self.service.toggle_event(event)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/event toggle")
            return
        state = "activated" if updated.is_active else "deactivated"
        await reply(interaction, f"✅ **{updated.name}** {state}.")

    @event.command(name="edit", description="Edit an event")
    @app_commands.describe(
        event="Event to edit",
        name="New name",
        description="New description",
        score_type="New score type (only before any scores exist)",
        sort_direction="New ranking order",
        aggregation="New aggregation mode",
    )
    @app_commands.choices(
        score_type=SCORE_TYPE_CHOICES,
        sort_direction=SORT_CHOICES,
        aggregation=AGGREGATION_CHOICES,
    )
    async def edit(
        self,
        interaction: discord.Interaction,
        event: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        score_type: Optional[app_commands.Choice[str]] = None,
        sort_direction: Optional[app_commands.Choice[str]] = None,
        aggregation: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        if not await self._require_admin(interaction):
            return
        try:
            await guild_event(self.service, interaction, event)
            updated = await self.service.update_event(
                event,
                name=name,
                description=description,
                score_type=_value(score_type),
                sort_direction=_value(sort_direction),
                score_aggregation=_value(aggregation),
            )
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/event edit")
            return
        await reply(interaction, "✅ Event updated.", embed=build_event_embed(updated))

    @info.autocomplete("event")
    @toggle.autocomplete("event")
    async def any_event_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> List[app_commands.Choice[int]]:
        return await event_choices(self.service, interaction, current, active_only=False)

    @edit.autocomplete("event")
    async def active_event_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> List[app_commands.Choice[int]]:
        return await event_choices(self.service, interaction, current, active_only=True)


async def setup(bot: commands.Bot) -> None:
    """Standard setup, called by the bot to load the cog."""
    owners = getattr(bot, "owner_ids", set())
    service = getattr(bot, "ranking_service", None)
    error_engine = getattr(bot, "error_engine", None)
    await bot.add_cog(EventCog(bot, service, owners, error_engine))
