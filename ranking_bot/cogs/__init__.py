"""Discord cogs for events, scores and leaderboards."""
