"""Event management, leaderboard and score recording endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...core.ranking_service import RankingService
from ..dependencies import get_service
from ..schemas import (
    EventDetailOut,
    EventOut,
    EventUpdate,
    LeaderboardRow,
    ParticipantOut,
    ScoreCreate,
)

router = APIRouter(prefix="/api", tags=["events"])


@router.get("/events/{event_id}", response_model=EventOut)
async def get_event(event_id: int, service: RankingService = Depends(get_service)) -> EventOut:
    return EventOut.from_domain(await service.get_event(event_id))


@router.patch("/events/{event_id}", response_model=EventOut)
async def update_event(
    event_id: int,
    body: EventUpdate,
    service: RankingService = Depends(get_service),
) -> EventOut:
    event = await service.update_event(event_id, **body.model_dump(exclude_none=True))
    return EventOut.from_domain(event)


@router.delete("/events/{event_id}")
async def delete_event(event_id: int, service: RankingService = Depends(get_service)) -> Dict[str, Any]:
    await service.delete_event(event_id)
    return {"deleted": True, "id": event_id}


@router.post("/events/{event_id}/toggle", response_model=EventOut)
async def toggle_event(event_id: int, service: RankingService = Depends(get_service)) -> EventOut:
    return EventOut.from_domain(await service.toggle_event(event_id))


@router.post(
    "/events/{event_id}/scores",
    response_model=ParticipantOut,
    status_code=status.HTTP_201_CREATED,
)
async def record_score(
    event_id: int,
    body: ScoreCreate,
    service: RankingService = Depends(get_service),
) -> ParticipantOut:
    participant = await service.record_entry(
        event_id,
        body.user_id,
        body.username,
        body.score,
        body.added_by,
        note=body.note,
        avatar_url=body.avatar_url,
    )
    return ParticipantOut.from_domain(participant)


@router.get("/leaderboard/{event_id}", response_model=List[LeaderboardRow])
async def get_leaderboard(
    event_id: int,
    limit: int = Query(10, ge=1, le=500),
    service: RankingService = Depends(get_service),
) -> List[LeaderboardRow]:
    rows = await service.get_leaderboard(event_id, limit=limit)
    return [LeaderboardRow.from_domain(row) for row in rows]


@router.get("/event-detail/{event_id}/full", response_model=EventDetailOut)
async def get_event_detail(
    event_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: RankingService = Depends(get_service),
) -> EventDetailOut:
    return EventDetailOut.from_domain(await service.get_event_detail(event_id, limit=limit))
