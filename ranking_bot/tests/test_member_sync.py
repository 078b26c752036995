from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ranking_bot.core.member_sync import MemberSyncScheduler, member_from_discord


def _member(user_id: int, name: str, *, nick=None, bot=False):
    return SimpleNamespace(
        id=user_id,
        name=name,
        display_name=nick or name,
        bot=bot,
        joined_at=None,
        display_avatar=SimpleNamespace(url=f"https://cdn.example/{user_id}.png"),
    )


class FakeGuild:
    def __init__(self, guild_id, name, members, *, fail_fetch=False):
        self.id = guild_id
        self.name = name
        self.owner_id = 1
        self.members = members
        self._fail_fetch = fail_fetch

    async def fetch_members(self, limit=None):
        if self._fail_fetch:
            raise RuntimeError("missing members intent")
        for member in self.members:
            yield member


def test_member_from_discord_maps_fields():
    cached = member_from_discord(100, _member(5, "alice", nick="Alice A."))
    assert cached.guild_id == "100"
    assert cached.user_id == "5"
    assert cached.display_name == "Alice A."
    assert cached.avatar_url == "https://cdn.example/5.png"


@pytest.mark.asyncio
async def test_sync_guild_upserts_in_batches(storage):
    guild = FakeGuild(100, "Guild", [_member(i, f"user{i}") for i in range(7)])
    bot = SimpleNamespace(guilds=[guild], wait_until_ready=AsyncMock())
    scheduler = MemberSyncScheduler(bot, storage, batch_size=3, guild_pause=0)

    calls = []
    original = storage.upsert_guild_members

    async def spy(guild_id, members):
        calls.append(len(members))
        return await original(guild_id, members)

    storage.upsert_guild_members = spy
    assert await scheduler.sync_guild(guild) == 7
    assert calls == [3, 3, 1]
    assert (await storage.get_guild("100")).guild_name == "Guild"
    assert (await storage.get_guild_member("100", "6")).username == "user6"


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_to_cached_members(storage):
    guild = FakeGuild(200, "Cached", [_member(1, "solo")], fail_fetch=True)
    bot = SimpleNamespace(guilds=[guild], wait_until_ready=AsyncMock())
    scheduler = MemberSyncScheduler(bot, storage, guild_pause=0)

    assert await scheduler.sync_guild(guild) == 1
    assert await storage.get_guild_member("200", "1") is not None


@pytest.mark.asyncio
async def test_sync_all_guilds_records_status_and_isolates_failures(storage):
    good = FakeGuild(100, "Good", [_member(1, "a"), _member(2, "b")])
    broken = SimpleNamespace(id=300, name="Broken")  # no owner_id or members
    bot = SimpleNamespace(guilds=[good, broken], wait_until_ready=AsyncMock())
    scheduler = MemberSyncScheduler(bot, storage, interval_hours=2, guild_pause=0)
    scheduler.sync_guild = AsyncMock(side_effect=[2, RuntimeError("boom")])

    results = await scheduler.sync_all_guilds()

    assert results == {"100": 2, "300": -1}
    status = scheduler.status()
    assert status["interval_hours"] == 2
    assert status["guilds_synced"] == 2
    assert status["members_synced"] == 2
    assert status["last_sync"] is not None
    assert status["running"] is False
    assert scheduler.is_syncing is False


@pytest.mark.asyncio
async def test_concurrent_sync_is_skipped(storage):
    bot = SimpleNamespace(guilds=[], wait_until_ready=AsyncMock())
    scheduler = MemberSyncScheduler(bot, storage, guild_pause=0)
    scheduler.is_syncing = True
    scheduler.last_results = {"1": 4}
    assert await scheduler.sync_all_guilds() == {"1": 4}
