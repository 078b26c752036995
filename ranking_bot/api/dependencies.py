"""Dependency injection for the ranking API routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request

from ..core.member_sync import MemberSyncScheduler
from ..core.ranking_service import RankingService


def get_service(request: Request) -> RankingService:
    return request.app.state.service


def get_scheduler(request: Request) -> Optional[MemberSyncScheduler]:
    return getattr(request.app.state, "scheduler", None)


def get_bot_status(request: Request) -> Dict[str, Any]:
    """Status of the Discord client sharing this process, if any."""
    probe = getattr(request.app.state, "bot_status", None)
    if probe is None:
        return {"online": False, "detail": "bot is not running in this process"}
    return probe()
