"""Root entry point: BOT_PROFILE selects the bot, the API, or both in one process."""

from __future__ import annotations

import os

from dotenv import load_dotenv


def main() -> None:
    load_dotenv()
    profile = os.getenv("BOT_PROFILE", "bot").lower()
    if profile == "bot":
        from ranking_bot.runner import run_ranking_bot

        run_ranking_bot()
    elif profile == "api":
        from ranking_bot.runner import run_ranking_api

        run_ranking_api()
    elif profile == "all":
        from ranking_bot.runner import run_all

        run_all()
    else:
        raise SystemExit(f"Unsupported BOT_PROFILE '{profile}' (expected bot, api or all)")


if __name__ == "__main__":
    main()
