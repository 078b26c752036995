"""Participant history and score entry endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...core.ranking_service import RankingService
from ..dependencies import get_service
from ..schemas import EntryOut, EntryUpdate, ParticipantOut, ParticipantScoreCreate

router = APIRouter(prefix="/api", tags=["scores"])


@router.get("/participants/history", response_model=ParticipantOut)
async def participant_history(
    event_id: int = Query(..., alias="eventId"),
    user_id: str = Query(..., alias="userId"),
    service: RankingService = Depends(get_service),
) -> ParticipantOut:
    participant = await service.get_participant_history(event_id, user_id)
    return ParticipantOut.from_domain(participant)


@router.post(
    "/participants/{participant_id}/score",
    response_model=ParticipantOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant_score(
    participant_id: int,
    body: ParticipantScoreCreate,
    service: RankingService = Depends(get_service),
) -> ParticipantOut:
    participant = await service.record_entry_for_participant(
        participant_id,
        body.score,
        body.added_by,
        note=body.note,
    )
    return ParticipantOut.from_domain(participant)


@router.get("/score-entries/{entry_id}", response_model=EntryOut)
async def get_score_entry(entry_id: int, service: RankingService = Depends(get_service)) -> EntryOut:
    return EntryOut.from_domain(await service.get_entry(entry_id))


@router.put("/score-entries/{entry_id}", response_model=ParticipantOut)
async def edit_score_entry(
    entry_id: int,
    body: EntryUpdate,
    service: RankingService = Depends(get_service),
) -> ParticipantOut:
    participant = await service.edit_entry(entry_id, body.score, note=body.note)
    return ParticipantOut.from_domain(participant)


@router.delete("/score-entries/{entry_id}", response_model=ParticipantOut)
async def delete_score_entry(entry_id: int, service: RankingService = Depends(get_service)) -> ParticipantOut:
    participant = await service.delete_entry(entry_id)
    return ParticipantOut.from_domain(participant)
