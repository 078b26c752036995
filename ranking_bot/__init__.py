"""Event ranking bot: Discord commands, score ledger and leaderboard API."""
