"""Async bootstrapper for the event ranking bot."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import discord
import uvicorn
from discord.ext import commands
from dotenv import load_dotenv

from .api.app import create_app
from .cogs.event_cog import EventCog
from .cogs.leaderboard_cog import LeaderboardCog
from .cogs.score_cog import ScoreCog
from .config import RankingBotConfig
from .core.error_engine import ErrorEngine
from .core.errors import RankingError
from .core.logging_utils import configure_library_logging
from .core.member_sync import MemberSyncScheduler, member_from_discord
from .core.ranking_service import RankingService
from .core.storage_engine import RankingStorageEngine


logger = logging.getLogger("ranking_bot.runner")


class RankingBotRunner:
    def __init__(self, config: RankingBotConfig | None = None) -> None:
        load_dotenv()
        self.config = config or RankingBotConfig.from_env()
        self.error_engine = ErrorEngine(self.config.error_log_path)
        self.error_engine.catch_uncaught()

        self.storage = RankingStorageEngine(self.config.db_path, busy_timeout=self.config.db_busy_timeout)
        self.service = RankingService(self.storage)
        self.started_at: Optional[float] = None

        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        self.bot = commands.Bot(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )
        self.scheduler = MemberSyncScheduler(
            self.bot,
            self.storage,
            interval_hours=self.config.member_sync_interval_hours,
            batch_size=self.config.member_sync_batch_size,
        )

        # Shared services live on the bot so cogs and the API status probe can reach them.
        setattr(self.bot, "config", self.config)
        setattr(self.bot, "ranking_service", self.service)
        setattr(self.bot, "ranking_storage", self.storage)
        setattr(self.bot, "member_sync", self.scheduler)
        setattr(self.bot, "error_engine", self.error_engine)
        self.bot.owner_ids = set(self.config.owner_ids)

        self._register_events()

        async def setup_hook() -> None:
            await self.storage.initialize()
            owners = set(self.config.owner_ids)
            await self.bot.add_cog(EventCog(self.bot, self.service, owners, self.error_engine))
            await self.bot.add_cog(ScoreCog(self.bot, self.service, owners, self.error_engine))
            await self.bot.add_cog(
                LeaderboardCog(self.bot, self.service, self.error_engine, self.config.public_base_url)
            )
            self.scheduler.start()
            try:
                if self.config.test_guild_ids:
                    for guild_id in sorted(self.config.test_guild_ids):
                        guild = discord.Object(id=guild_id)
                        self.bot.tree.copy_global_to(guild=guild)
                        await self.bot.tree.sync(guild=guild)
                else:
                    await self.bot.tree.sync()
                logger.info("Ranking bot slash commands synced")
            except discord.DiscordException as exc:
                logger.warning("Ranking bot failed to sync slash commands: %s", exc)

        self.bot.setup_hook = setup_hook  # type: ignore[assignment]

    def _register_events(self) -> None:
        bot = self.bot

        @bot.event  # type: ignore[misc]
        async def on_ready() -> None:
            guild_names = ", ".join(guild.name for guild in bot.guilds)
            bot_user = bot.user
            user_id = bot_user.id if bot_user else "unknown"
            logger.info("Ranking bot connected as %s (%s) in %s", bot_user, user_id, guild_names)
            for guild in bot.guilds:
                try:
                    await self.service.register_guild(guild.id, guild.name, guild.owner_id)
                except RankingError as exc:
                    self.error_engine.log_exception(exc, context=f"register guild {guild.id}")
            await self.scheduler.sync_all_guilds()

        @bot.event  # type: ignore[misc]
        async def on_guild_join(guild: discord.Guild) -> None:
            logger.info("Joined guild %s (%s)", guild.name, guild.id)
            try:
                await self.scheduler.sync_guild(guild)
            except RankingError as exc:
                self.error_engine.log_exception(exc, context=f"guild join {guild.id}")

        @bot.event  # type: ignore[misc]
        async def on_member_join(member: discord.Member) -> None:
            await self._cache_member(member)

        @bot.event  # type: ignore[misc]
        async def on_member_update(_: discord.Member, after: discord.Member) -> None:
            await self._cache_member(after)

        @bot.event  # type: ignore[misc]
        async def on_member_remove(member: discord.Member) -> None:
            try:
                await self.storage.remove_guild_member(str(member.guild.id), str(member.id))
            except RankingError as exc:
                self.error_engine.log_exception(exc, context=f"member remove {member.id}")

    async def _cache_member(self, member: discord.Member) -> None:
        guild = member.guild
        try:
            await self.service.register_guild(guild.id, guild.name, guild.owner_id)
            await self.storage.upsert_guild_members(str(guild.id), [member_from_discord(guild.id, member)])
        except RankingError as exc:
            self.error_engine.log_exception(exc, context=f"member cache {member.id}")

    def status(self) -> Dict[str, Any]:
        """Snapshot served by ``/api/bot/status``."""
        bot_user = self.bot.user
        ready = self.bot.is_ready()
        return {
            "online": ready,
            "user": str(bot_user) if bot_user else None,
            "user_id": str(bot_user.id) if bot_user else None,
            "guilds": len(self.bot.guilds) if ready else 0,
            "latency_ms": round(self.bot.latency * 1000) if ready else None,
            "uptime": round(time.monotonic() - self.started_at) if self.started_at is not None else 0,
            "users": len(self.bot.users),
        }

    async def start(self) -> None:
        logger.info("Starting ranking bot (db=%s)", self.storage.db_path)
        self.started_at = time.monotonic()
        await self.bot.start(self.config.discord_token)

    async def close(self) -> None:
        self.scheduler.stop()
        await self.storage.close()
        await self.bot.close()


def run_ranking_bot() -> None:
    load_dotenv()
    config = RankingBotConfig.from_env()
    configure_library_logging(level=config.log_level)
    runner = RankingBotRunner(config)

    async def _run() -> None:
        try:
            await runner.start()
        finally:
            await runner.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Ranking bot interrupted by user")


def run_ranking_api() -> None:
    """Serve the REST API on its own; the bot runs in a separate process."""
    load_dotenv()
    config = RankingBotConfig.from_env(require_token=False)
    configure_library_logging(level=config.log_level)
    ErrorEngine(config.error_log_path).catch_uncaught()

    app = create_app(config=config)
    logger.info("Serving ranking API on %s:%s", config.api_host, config.api_port)
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())


def run_all() -> None:
    """Run the bot and the API in one event loop so the API can report live bot status."""
    load_dotenv()
    config = RankingBotConfig.from_env()
    configure_library_logging(level=config.log_level)
    runner = RankingBotRunner(config)
    app = create_app(
        runner.service,
        config=config,
        bot_status=runner.status,
        scheduler=runner.scheduler,
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())
    )

    async def _run() -> None:
        try:
            await asyncio.gather(runner.start(), server.serve())
        finally:
            await runner.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Ranking bot interrupted by user")


__all__ = ["RankingBotRunner", "run_ranking_bot", "run_ranking_api", "run_all"]
