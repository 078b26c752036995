"""
Periodic sync of Discord guild members into the local cache.

The cache lets leaderboards show current server nicknames without calling the
Discord API on every read.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from discord.ext import tasks

from .logging_utils import get_logger
from .models import GuildMember
from .storage_engine import RankingStorageEngine

logger = get_logger("member_sync")

DAILY_SYNC_TIME = datetime.time(hour=3, minute=0, tzinfo=datetime.timezone.utc)


class GuildProvider(Protocol):
    """The slice of ``commands.Bot`` the scheduler relies on."""

    @property
    def guilds(self) -> List[Any]: ...

    async def wait_until_ready(self) -> None: ...


def _avatar_url(member: Any) -> Optional[str]:
    avatar = getattr(member, "display_avatar", None) or getattr(member, "avatar", None)
    url = getattr(avatar, "url", None)
    return str(url) if url else None


def member_from_discord(guild_id: Any, member: Any) -> GuildMember:
    return GuildMember(
        guild_id=str(guild_id),
        user_id=str(member.id),
        username=member.name,
        display_name=getattr(member, "display_name", None) or member.name,
        avatar_url=_avatar_url(member),
        is_bot=bool(getattr(member, "bot", False)),
        joined_at=getattr(member, "joined_at", None),
    )


def _batched(items: List[GuildMember], size: int) -> Iterable[List[GuildMember]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class MemberSyncScheduler:
    def __init__(
        self,
        bot: GuildProvider,
        storage: RankingStorageEngine,
        *,
        interval_hours: float = 6.0,
        batch_size: int = 100,
        guild_pause: float = 1.0,
    ) -> None:
        self.bot = bot
        self.storage = storage
        self.interval_hours = interval_hours
        self.batch_size = max(batch_size, 1)
        self.guild_pause = guild_pause
        self.is_syncing = False
        self.last_sync: Optional[datetime.datetime] = None
        self.last_results: Dict[str, int] = {}
        self.sync_loop.change_interval(hours=interval_hours)

    def start(self) -> None:
        if not self.sync_loop.is_running():
            self.sync_loop.start()
        if not self.daily_sync.is_running():
            self.daily_sync.start()
        logger.info("Member sync scheduled every %.1fh and daily at %s UTC", self.interval_hours, DAILY_SYNC_TIME)

    def stop(self) -> None:
        self.sync_loop.cancel()
        self.daily_sync.cancel()

    @tasks.loop(hours=6)
    async def sync_loop(self) -> None:
        await self.sync_all_guilds()

    @tasks.loop(time=DAILY_SYNC_TIME)
    async def daily_sync(self) -> None:
        await self.sync_all_guilds()

    @sync_loop.before_loop
    async def _before_sync_loop(self) -> None:
        await self.bot.wait_until_ready()

    @daily_sync.before_loop
    async def _before_daily_sync(self) -> None:
        await self.bot.wait_until_ready()

    async def _collect_members(self, guild: Any) -> List[Any]:
        try:
            return [member async for member in guild.fetch_members(limit=None)]
        except Exception as exc:
            logger.warning("Fetching members for guild %s failed (%s); using cached members", guild.id, exc)
            return list(getattr(guild, "members", []) or [])

    async def sync_guild(self, guild: Any) -> int:
        """Register the guild and upsert all of its members. Returns the member count."""
        await self.storage.upsert_guild(str(guild.id), guild.name, str(getattr(guild, "owner_id", "") or ""))
        members = [member_from_discord(guild.id, m) for m in await self._collect_members(guild)]

        synced = 0
        for batch in _batched(members, self.batch_size):
            synced += await self.storage.upsert_guild_members(str(guild.id), batch)
        logger.info("Synced %d members for guild %s (%s)", synced, guild.name, guild.id)
        return synced

    async def sync_all_guilds(self) -> Dict[str, int]:
        if self.is_syncing:
            logger.info("Member sync already in progress; skipping")
            return dict(self.last_results)

        self.is_syncing = True
        results: Dict[str, int] = {}
        try:
            guilds = list(self.bot.guilds)
            for index, guild in enumerate(guilds):
                try:
                    results[str(guild.id)] = await self.sync_guild(guild)
                except Exception as exc:
                    logger.error("Member sync failed for guild %s: %s", guild.id, exc)
                    results[str(guild.id)] = -1
                if self.guild_pause and index < len(guilds) - 1:
                    await asyncio.sleep(self.guild_pause)
        finally:
            self.is_syncing = False
            self.last_sync = datetime.datetime.now(datetime.timezone.utc)
            self.last_results = results
        return results

    def status(self) -> Dict[str, Any]:
        next_run = self.sync_loop.next_iteration if self.sync_loop.is_running() else None
        return {
            "running": self.sync_loop.is_running(),
            "is_syncing": self.is_syncing,
            "interval_hours": self.interval_hours,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "next_sync": next_run.isoformat() if next_run else None,
            "guilds_synced": len(self.last_results),
            "members_synced": sum(count for count in self.last_results.values() if count > 0),
        }


__all__ = ["MemberSyncScheduler", "member_from_discord"]
