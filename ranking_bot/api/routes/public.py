"""Read-only views for the public leaderboard pages."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from ...core.ranking_service import RankingService
from ..dependencies import get_service
from ..schemas import LeaderboardStats, PublicEventDetail, PublicEventOut, PublicLeaderboardRow

router = APIRouter(prefix="/api/public", tags=["public"])

PUBLIC_LEADERBOARD_SIZE = 50


@router.get("/events", response_model=List[PublicEventOut])
async def public_events(
    limit: int = Query(20, ge=1, le=100),
    service: RankingService = Depends(get_service),
) -> List[PublicEventOut]:
    rows = await service.list_public_events(limit)
    return [
        PublicEventOut.from_domain(
            row["event"],
            guild_name=row["guild_name"],
            participant_count=row["participant_count"],
        )
        for row in rows
    ]


@router.get("/event/{event_id}", response_model=PublicEventDetail)
async def public_event(event_id: int, service: RankingService = Depends(get_service)) -> PublicEventDetail:
    detail = await service.get_event_detail(event_id, limit=PUBLIC_LEADERBOARD_SIZE)
    return PublicEventDetail(
        event=PublicEventOut.from_domain(detail.event, participant_count=detail.stats["participant_count"]),
        leaderboard=[PublicLeaderboardRow.from_domain(row) for row in detail.leaderboard],
        stats=LeaderboardStats(**detail.stats),
    )
