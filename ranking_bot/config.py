"""Environment-backed configuration shared by the bot and the API."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Set

DEFAULT_DB_PATH = "data/rankings.sqlite3"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _split_ints(value: str) -> Set[int]:
    ints: Set[int] = set()
    for chunk in (value or "").replace(";", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ints.add(int(chunk))
        except ValueError:
            continue
    return ints


def _split_str(value: str, *, default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class RankingBotConfig:
    discord_token: str = ""
    owner_ids: Set[int] = field(default_factory=set)
    test_guild_ids: Set[int] = field(default_factory=set)
    db_path: str = DEFAULT_DB_PATH
    db_busy_timeout: float = 5.0
    member_sync_interval_hours: float = 6.0
    member_sync_batch_size: int = 100
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    public_base_url: str = "http://localhost:3000"
    log_level: str = "INFO"
    error_log_path: str = "logs/ranking_errors.log"

    @classmethod
    def from_env(cls, *, require_token: bool = True) -> "RankingBotConfig":
        token = os.getenv("DISCORD_TOKEN", "").strip()
        if require_token and not token:
            raise RuntimeError("DISCORD_TOKEN is required to run the bot")

        return cls(
            discord_token=token,
            owner_ids=_split_ints(os.getenv("OWNER_IDS", "")),
            test_guild_ids=_split_ints(os.getenv("TEST_GUILDS", "")),
            db_path=os.getenv("RANKING_DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH,
            db_busy_timeout=_float_env("DB_BUSY_TIMEOUT", 5.0),
            member_sync_interval_hours=_float_env("MEMBER_SYNC_INTERVAL_HOURS", 6.0),
            member_sync_batch_size=max(_int_env("MEMBER_SYNC_BATCH_SIZE", 100), 1),
            api_host=os.getenv("API_HOST", "0.0.0.0").strip() or "0.0.0.0",
            api_port=_int_env("API_PORT", 3001),
            cors_origins=_split_str(os.getenv("CORS_ORIGINS", ""), default=DEFAULT_CORS_ORIGINS),
            public_base_url=(
                os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").strip().rstrip("/")
                or "http://localhost:3000"
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
            error_log_path=os.getenv("ERROR_LOG_PATH", "logs/ranking_errors.log").strip()
            or "logs/ranking_errors.log",
        )


__all__ = ["RankingBotConfig"]
