import os
import sys
import time

import pytest

import ranking_bot.main as bot_main
import ranking_bot.runner as runner_module
from ranking_bot.runner import RankingBotRunner


@pytest.fixture
def runner(sample_config, monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    built = RankingBotRunner(sample_config)
    yield built
    for handler in list(built.error_engine.logger.handlers):
        handler.close()
        built.error_engine.logger.removeHandler(handler)


@pytest.mark.asyncio
async def test_status_before_login(runner):
    status = runner.status()
    assert status["online"] is False
    assert status["uptime"] == 0
    assert status["users"] == 0
    assert status["guilds"] == 0


@pytest.mark.asyncio
async def test_status_reports_uptime_since_start(runner):
    runner.started_at = time.monotonic() - 90
    assert runner.status()["uptime"] >= 90


def test_package_main_launches_bot_without_touching_profile(monkeypatch):
    monkeypatch.delenv("BOT_PROFILE", raising=False)
    calls = []
    monkeypatch.setattr(runner_module, "run_ranking_bot", lambda: calls.append("bot"))

    bot_main.main()

    assert calls == ["bot"]
    assert "BOT_PROFILE" not in os.environ
