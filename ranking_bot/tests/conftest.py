from pathlib import Path
import sys

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ranking_bot.config import RankingBotConfig  # noqa: E402
from ranking_bot.core.ranking_service import RankingService  # noqa: E402
from ranking_bot.core.storage_engine import RankingStorageEngine  # noqa: E402


@pytest.fixture()
def sample_config(tmp_path) -> RankingBotConfig:
    return RankingBotConfig(
        discord_token="testing-token",
        owner_ids={1},
        test_guild_ids={2},
        db_path=str(tmp_path / "rankings.sqlite3"),
        cors_origins=["http://localhost:3000"],
        error_log_path=str(tmp_path / "errors.log"),
    )


@pytest_asyncio.fixture()
async def storage(tmp_path):
    engine = RankingStorageEngine(str(tmp_path / "rankings.sqlite3"))
    await engine.initialize()
    yield engine
    await engine.close()


@pytest_asyncio.fixture()
async def service(storage):
    svc = RankingService(storage)
    await svc.register_guild("100", "Test Guild", "1")
    return svc
