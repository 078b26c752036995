"""Health and runtime status endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ...core.member_sync import MemberSyncScheduler
from ...core.ranking_service import RankingService
from ..dependencies import get_bot_status, get_scheduler, get_service
from ..schemas import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(service: RankingService = Depends(get_service)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=service.storage.is_open,
    )


@router.get("/bot/status")
async def bot_status(status: Dict[str, Any] = Depends(get_bot_status)) -> Dict[str, Any]:
    return status


@router.get("/scheduler/status")
async def scheduler_status(
    scheduler: Optional[MemberSyncScheduler] = Depends(get_scheduler),
) -> Dict[str, Any]:
    if scheduler is None:
        return {"running": False, "detail": "member sync runs with the bot process"}
    return scheduler.status()
