"""
Score ledger commands.

Commands:
- /score add     - Record a score for a member (admins)
- /score edit    - Change a recorded entry (admins)
- /score delete  - Remove a recorded entry (admins)
- /score history - Show a member's entries in an event
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..core.errors import NotFoundError, RankingError
from ..core.formatting import format_score
from ..core.member_sync import member_from_discord
from ..core.models import Event, Participant
from ..core.permissions import can_manage_events
from ..core.ranking_engine import calculated_score
from .common import event_choices, guild_event, reply, report_error

if TYPE_CHECKING:
    from ..core.error_engine import ErrorEngine
    from ..core.ranking_service import RankingService

HISTORY_LIMIT = 15


def build_history_embed(event: Event, participant: Participant) -> discord.Embed:
    embed = discord.Embed(
        title=f"📜 {participant.display_name} · {event.name}",
        color=discord.Color.blurple(),
    )
    embed.add_field(
        name="Calculated score",
        value=format_score(calculated_score(event, participant), event.score_type),
        inline=True,
    )
    embed.add_field(name="Entries", value=str(participant.entries_count), inline=True)

    if participant.entries:
        lines = []
        for entry in participant.entries[:HISTORY_LIMIT]:
            stamp = entry.created_at.strftime("%Y-%m-%d %H:%M") if entry.created_at else "?"
            note = f" · {entry.note}" if entry.note else ""
            lines.append(f"`#{entry.id}` {format_score(entry.score, event.score_type)} · {stamp}{note}")
        if len(participant.entries) > HISTORY_LIMIT:
            lines.append(f"…and {len(participant.entries) - HISTORY_LIMIT} older entries")
        embed.add_field(name="History (newest first)", value="\n".join(lines), inline=False)
    else:
        embed.add_field(name="History", value="No entries yet.", inline=False)
    return embed


class ScoreCog(commands.Cog):
    """Record and correct scores in the event ledger."""

    score = app_commands.Group(name="score", description="🏆 Record and manage event scores")

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
            await reply(interaction, "❌ Only the server owner or an administrator can change scores.")
            return False
        return True

    async def _entry_event(self, interaction: discord.Interaction, entry_id: int) -> Event:
        entry = await self.service.get_entry(entry_id)
        participant = await self.service.get_participant(entry.participant_id)
        try:
            return await guild_event(self.service, interaction, participant.event_id)
        except NotFoundError:
            raise NotFoundError("score entry", entry_id) from None

    @score.command(name="add", description="Record a score for a member")
    @app_commands.describe(
        event="Event to score",
        member="Member who achieved the score",
        score="Points, seconds, or a time like 1:05",
        note="Optional note stored with the entry",
    )
    async def add(
        self,
        interaction: discord.Interaction,
        event: int,
        member: discord.Member,
        score: str,
        note: Optional[str] = None,
    ) -> None:
        if not await self._require_admin(interaction):
            return
        cached = member_from_discord(interaction.guild.id, member)
        try:
            found = await guild_event(self.service, interaction, event)
            participant = await self.service.record_entry(
                found.id,
                cached.user_id,
                cached.username,
                score,
                interaction.user.id,
                note=note,
                avatar_url=cached.avatar_url,
            )
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/score add")
            return

        await reply(
            interaction,
            f"✅ Recorded for **{participant.display_name}** in **{found.name}** "
            f"({participant.entries_count} entries so far). Use `/leaderboard` to see the standings.",
            ephemeral=False,
        )

    @score.command(name="edit", description="Change a recorded score entry")
    @app_commands.describe(entry_id="Entry number from /score history", score="Corrected score", note="Replace the note")
    async def edit(
        self,
        interaction: discord.Interaction,
        entry_id: int,
        score: str,
        note: Optional[str] = None,
    ) -> None:
        if not await self._require_admin(interaction):
            return
        try:
            found = await self._entry_event(interaction, entry_id)
            participant = await self.service.edit_entry(entry_id, score, note=note)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/score edit")
            return
        await reply(interaction, f"✅ Entry `#{entry_id}` updated for **{participant.display_name}** in **{found.name}**.")

    @score.command(name="delete", description="Remove a recorded score entry")
    @app_commands.describe(entry_id="Entry number from /score history")
    async def delete(self, interaction: discord.Interaction, entry_id: int) -> None:
        if not await self._require_admin(interaction):
            return
        try:
            found = await self._entry_event(interaction, entry_id)
            participant = await self.service.delete_entry(entry_id)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/score delete")
            return
        await reply(
            interaction,
            f"🗑️ Entry `#{entry_id}` removed from **{participant.display_name}** in **{found.name}**.",
        )

    @score.command(name="history", description="Show a member's entries in an event")
    @app_commands.describe(event="Event to look up", member="Member to inspect (defaults to you)")
    async def history(
        self,
        interaction: discord.Interaction,
        event: int,
        member: Optional[discord.Member] = None,
    ) -> None:
        target = member or interaction.user
        try:
            found = await guild_event(self.service, interaction, event)
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/score history")
            return
        try:
            participant = await self.service.get_participant_history(found.id, target.id)
        except NotFoundError:
            await reply(interaction, f"📭 {getattr(target, 'display_name', target)} has no entries in this event yet.")
            return
        except RankingError as exc:
            await report_error(interaction, exc, error_engine=self.error_engine, context="/score history")
            return
        await reply(interaction, embed=build_history_embed(found, participant))

    @add.autocomplete("event")
    @history.autocomplete("event")
    async def event_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> List[app_commands.Choice[int]]:
        return await event_choices(self.service, interaction, current, active_only=True)


async def setup(bot: commands.Bot) -> None:
    """Standard setup, called by the bot to load the cog."""
    owners = getattr(bot, "owner_ids", set())
    service = getattr(bot, "ranking_service", None)
    error_engine = getattr(bot, "error_engine", None)
    await bot.add_cog(ScoreCog(bot, service, owners, error_engine))
