"""Helpers shared by the ranking cogs."""

from __future__ import annotations

from typing import List, Optional

import discord
from discord import app_commands

from ..core.error_engine import ErrorEngine
from ..core.errors import NotFoundError, RankingError, StorageError, ValidationError
from ..core.logging_utils import get_logger
from ..core.models import Event
from ..core.ranking_service import RankingService

logger = get_logger("cogs")

MAX_CHOICES = 25


async def reply(interaction: discord.Interaction, content: Optional[str] = None, *, embed=None, ephemeral: bool = True) -> None:
    """Send through the initial response, or the followup once that is used."""
    kwargs = {"ephemeral": ephemeral}
    if embed is not None:
        kwargs["embed"] = embed
    if interaction.response.is_done():
        await interaction.followup.send(content, **kwargs)
    else:
        await interaction.response.send_message(content, **kwargs)


async def report_error(
    interaction: discord.Interaction,
    exc: RankingError,
    *,
    error_engine: Optional[ErrorEngine],
    context: str,
) -> None:
    if isinstance(exc, (ValidationError, NotFoundError)):
        await reply(interaction, f"❌ {exc}")
        return
    if isinstance(exc, StorageError):
        if error_engine is not None:
            error_engine.log_exception(exc, context=context)
        else:
            logger.error("%s failed: %s", context, exc)
        await reply(interaction, "⚠️ The leaderboard database is busy. Please try again in a moment.")
        return
    logger.error("%s failed: %s", context, exc)
    await reply(interaction, "⚠️ Something went wrong while handling that command.")


async def guild_event(service: RankingService, interaction: discord.Interaction, event_id: int) -> Event:
    """Load an event, refusing events that belong to a different server."""
    event = await service.get_event(event_id)
    guild = interaction.guild
    if guild is None or event.guild_id != str(guild.id):
        raise NotFoundError("event", event_id)
    return event


async def event_choices(
    service: Optional[RankingService],
    interaction: discord.Interaction,
    current: str,
    *,
    active_only: bool,
) -> List[app_commands.Choice[int]]:
    """Autocomplete choices for an event option, matched on the event name."""
    guild_id = interaction.guild_id or (interaction.guild.id if interaction.guild else None)
    if service is None or not guild_id:
        return []
    try:
        events = await service.list_events(guild_id, active_only=active_only)
    except RankingError as exc:
        logger.warning("Event autocomplete failed for guild %s: %s", guild_id, exc)
        return []

    needle = (current or "").lower()
    matches = [event for event in events if needle in event.name.lower()]
    return [
        app_commands.Choice(name=f"{event.name}{'' if event.is_active else ' (inactive)'}"[:100], value=event.id)
        for event in matches[:MAX_CHOICES]
    ]


__all__ = ["reply", "report_error", "guild_event", "event_choices"]
