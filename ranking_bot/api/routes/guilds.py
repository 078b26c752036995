"""Guild, guild event and member lookup endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...core.ranking_service import RankingService
from ..dependencies import get_service
from ..schemas import EventCreate, EventOut, GuildOut, MemberOut

router = APIRouter(prefix="/api/guilds", tags=["guilds"])


@router.get("", response_model=List[GuildOut])
async def list_guilds(service: RankingService = Depends(get_service)) -> List[GuildOut]:
    return [GuildOut.from_domain(guild) for guild in await service.list_guilds()]


@router.get("/{guild_id}", response_model=GuildOut)
async def get_guild(guild_id: str, service: RankingService = Depends(get_service)) -> GuildOut:
    return GuildOut.from_domain(await service.get_guild(guild_id))


@router.get("/{guild_id}/events", response_model=List[EventOut])
async def list_guild_events(
    guild_id: str,
    active_only: bool = Query(False),
    service: RankingService = Depends(get_service),
) -> List[EventOut]:
    events = await service.list_events(guild_id, active_only=active_only)
    return [EventOut.from_domain(event) for event in events]


@router.post("/{guild_id}/events", response_model=EventOut, status_code=status.HTTP_201_CREATED)
async def create_guild_event(
    guild_id: str,
    body: EventCreate,
    service: RankingService = Depends(get_service),
) -> EventOut:
    event = await service.create_event(
        guild_id,
        body.name,
        body.description,
        body.score_type,
        body.created_by,
        sort_direction=body.sort_direction,
        score_aggregation=body.score_aggregation,
    )
    return EventOut.from_domain(event)


@router.get("/{guild_id}/members", response_model=List[MemberOut])
async def search_members(
    guild_id: str,
    search: str = Query(""),
    limit: int = Query(25, ge=1, le=100),
    service: RankingService = Depends(get_service),
) -> List[MemberOut]:
    members = await service.search_members(guild_id, search, limit)
    return [MemberOut.from_domain(member) for member in members]
