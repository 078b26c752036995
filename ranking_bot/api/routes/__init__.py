"""
API routes, organized by resource:
- health: health check, bot and scheduler status
- guilds: guilds, guild events and member lookup
- events: event management, leaderboards and score recording
- scores: participant history and score entries
- public: read-only public leaderboard views
- logs: client log sink
"""

from .events import router as events_router
from .guilds import router as guilds_router
from .health import router as health_router
from .logs import router as logs_router
from .public import router as public_router
from .scores import router as scores_router

__all__ = [
    "events_router",
    "guilds_router",
    "health_router",
    "logs_router",
    "public_router",
    "scores_router",
]
