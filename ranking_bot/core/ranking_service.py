"""
Application service shared by the Discord cogs and the REST API.

The service owns input validation and error mapping; the storage engine owns
atomicity and the ranking engine owns ordering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from .errors import NotFoundError, ValidationError
from .logging_utils import get_logger
from .models import (
    Event,
    Guild,
    GuildMember,
    Participant,
    RankedParticipant,
    ScoreAggregation,
    ScoreEntry,
    ScoreType,
    SortDirection,
    default_sort_direction,
)
from .ranking_engine import build_leaderboard, leaderboard_stats
from .storage_engine import RankingStorageEngine

logger = get_logger("service")

MAX_EVENT_NAME = 255
MAX_NOTE = 500
SCORE_LIMIT = Decimal("100000000")
TWO_PLACES = Decimal("0.01")

E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}'. Expected one of: {allowed}.") from None


def _parse_clock(text: str) -> Decimal:
    """``M:SS`` or ``H:MM:SS`` to seconds. The last part may carry a fraction."""
    parts = [part.strip() for part in text.split(":")]
    if len(parts) not in (2, 3) or any(not part for part in parts):
        raise ValidationError(f"'{text}' is not a valid time. Use seconds, M:SS or H:MM:SS.")
    *whole, last = parts
    if not all(part.isdigit() for part in whole):
        raise ValidationError(f"'{text}' is not a valid time. Use seconds, M:SS or H:MM:SS.")
    try:
        seconds = Decimal(last)
    except InvalidOperation:
        raise ValidationError(f"'{text}' is not a valid time. Use seconds, M:SS or H:MM:SS.") from None
    if not seconds.is_finite() or seconds < 0 or seconds >= 60:
        raise ValidationError(f"'{text}' is not a valid time: seconds must be between 0 and 59.")

    if len(whole) == 2:
        hours, minutes = int(whole[0]), int(whole[1])
        if minutes >= 60:
            raise ValidationError(f"'{text}' is not a valid time: minutes must be between 0 and 59.")
    else:
        hours, minutes = 0, int(whole[0])
    return Decimal(hours * 3600 + minutes * 60) + seconds


def parse_score(value: Union[Decimal, int, float, str], score_type: ScoreType = ScoreType.POINTS) -> Decimal:
    """Validate a raw score and return it quantized to two decimals.

    Raises:
        ValidationError: non-numeric, non-finite or out of range input, or a
            time that is not greater than zero.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("A numeric score is required.")

    if isinstance(value, Decimal):
        score = value
    elif isinstance(value, (int, float)):
        try:
            score = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"'{value}' is not a valid score.") from None
    else:
        text = str(value).strip()
        if not text:
            raise ValidationError("A numeric score is required.")
        if score_type is ScoreType.TIME_SECONDS and ":" in text:
            score = _parse_clock(text)
        else:
            try:
                score = Decimal(text)
            except InvalidOperation:
                raise ValidationError(f"'{text}' is not a valid score.") from None

    if not score.is_finite():
        raise ValidationError("Scores must be finite numbers.")

    score = score.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if abs(score) >= SCORE_LIMIT:
        raise ValidationError("Scores must be smaller than 100,000,000.")
    if score_type is ScoreType.TIME_SECONDS and score <= 0:
        raise ValidationError("Times must be greater than zero seconds.")
    return score


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = note.strip()
    if len(note) > MAX_NOTE:
        raise ValidationError(f"Notes are limited to {MAX_NOTE} characters.")
    return note or None


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Event name is required.")
    if len(cleaned) > MAX_EVENT_NAME:
        raise ValidationError(f"Event names are limited to {MAX_EVENT_NAME} characters.")
    return cleaned


@dataclass
class EventDetail:
    event: Event
    leaderboard: List[RankedParticipant] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)


class RankingService:
    """Validated operations over events, participants and the score ledger."""

    def __init__(self, storage: RankingStorageEngine) -> None:
        self._storage = storage

    @property
    def storage(self) -> RankingStorageEngine:
        return self._storage

    async def start(self) -> None:
        await self._storage.initialize()

    async def close(self) -> None:
        await self._storage.close()

    # ------------------------------------------------------------------
    # Guilds and members
    # ------------------------------------------------------------------
    async def register_guild(self, guild_id: Union[int, str], name: str, owner_id: Union[int, str]) -> Guild:
        guild = await self._storage.upsert_guild(str(guild_id), name, str(owner_id))
        logger.debug("Registered guild %s (%s)", guild.guild_id, guild.guild_name)
        return guild

    async def get_guild(self, guild_id: Union[int, str]) -> Guild:
        guild = await self._storage.get_guild(str(guild_id))
        if guild is None:
            raise NotFoundError("guild", guild_id)
        return guild

    async def list_guilds(self) -> List[Guild]:
        return await self._storage.list_guilds()

    async def search_members(self, guild_id: Union[int, str], query: str = "", limit: int = 25) -> List[GuildMember]:
        limit = max(1, min(limit, 100))
        query = (query or "").strip()
        if not query:
            return await self._storage.list_guild_members(str(guild_id), limit)
        return await self._storage.search_guild_members(str(guild_id), query, limit)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    async def create_event(
        self,
        guild_id: Union[int, str],
        name: str,
        description: Optional[str],
        score_type: Union[ScoreType, str],
        created_by: Union[int, str],
        sort_direction: Union[SortDirection, str, None] = None,
        score_aggregation: Union[ScoreAggregation, str] = ScoreAggregation.SUM,
    ) -> Event:
        kind = _coerce_enum(ScoreType, score_type, "score type")
        direction = (
            default_sort_direction(kind)
            if sort_direction is None
            else _coerce_enum(SortDirection, sort_direction, "sort direction")
        )
        aggregation = _coerce_enum(ScoreAggregation, score_aggregation, "score aggregation")

        event = await self._storage.create_event(
            guild_id=str(guild_id),
            name=_clean_name(name),
            description=(description or "").strip(),
            score_type=kind,
            sort_direction=direction,
            score_aggregation=aggregation,
            created_by=str(created_by),
        )
        logger.info(
            "Event %s '%s' created in guild %s (%s, %s, %s)",
            event.id,
            event.name,
            event.guild_id,
            kind.value,
            direction.value,
            aggregation.value,
        )
        return event

    async def get_event(self, event_id: int) -> Event:
        event = await self._storage.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        return event

    async def list_events(self, guild_id: Union[int, str], *, active_only: bool = False) -> List[Event]:
        return await self._storage.list_events(str(guild_id), active_only=active_only)

    async def list_public_events(self, limit: int = 20) -> List[Dict[str, Any]]:
        return await self._storage.list_public_events(max(1, min(limit, 100)))

    async def update_event(self, event_id: int, **changes: Any) -> Event:
        """Change event fields.

        Accepted keys: ``name``, ``description``, ``score_type``,
        ``sort_direction``, ``score_aggregation`` and ``is_active``. ``None``
        values are ignored.
        """
        cleaned: Dict[str, Any] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key == "name":
                cleaned[key] = _clean_name(value)
            elif key == "description":
                cleaned[key] = str(value).strip()
            elif key == "score_type":
                cleaned[key] = _coerce_enum(ScoreType, value, "score type")
            elif key == "sort_direction":
                cleaned[key] = _coerce_enum(SortDirection, value, "sort direction")
            elif key == "score_aggregation":
                cleaned[key] = _coerce_enum(ScoreAggregation, value, "score aggregation")
            elif key == "is_active":
                cleaned[key] = bool(value)
            else:
                raise ValidationError(f"Unknown event field '{key}'.")

        event = await self._storage.update_event(event_id, cleaned)
        if event is None:
            raise NotFoundError("event", event_id)
        if cleaned:
            logger.info("Event %s updated: %s", event_id, ", ".join(sorted(cleaned)))
        return event

    async def set_event_active(self, event_id: int, is_active: bool) -> Event:
        event = await self._storage.set_event_active(event_id, is_active)
        if event is None:
            raise NotFoundError("event", event_id)
        logger.info("Event %s is now %s", event_id, "active" if event.is_active else "inactive")
        return event

    async def toggle_event(self, event_id: int) -> Event:
        event = await self.get_event(event_id)
        return await self.set_event_active(event_id, not event.is_active)

    async def delete_event(self, event_id: int) -> None:
        if not await self._storage.delete_event(event_id):
            raise NotFoundError("event", event_id)
        logger.info("Event %s deleted", event_id)

    # ------------------------------------------------------------------
    # Score ledger
    # ------------------------------------------------------------------
    async def record_entry(
        self,
        event_id: int,
        user_id: Union[int, str],
        username: str,
        score: Union[Decimal, int, float, str],
        added_by: Union[int, str],
        note: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Participant:
        """Enroll the user when needed and append one score entry."""
        event = await self.get_event(event_id)
        if not event.is_active:
            raise ValidationError("This event is inactive; new scores cannot be added.")
        value = parse_score(score, event.score_type)
        if not (username or "").strip():
            raise ValidationError("A username is required.")

        participant = await self._storage.record_entry_for_user(
            event_id,
            str(user_id),
            username.strip(),
            value,
            str(added_by),
            _clean_note(note),
            avatar_url,
        )
        logger.info(
            "Recorded %s for user %s in event %s (entries=%d)",
            value,
            participant.user_id,
            event_id,
            participant.entries_count,
        )
        return participant

    async def record_entry_for_participant(
        self,
        participant_id: int,
        score: Union[Decimal, int, float, str],
        added_by: Union[int, str],
        note: Optional[str] = None,
    ) -> Participant:
        current = await self.get_participant(participant_id)
        event = await self.get_event(current.event_id)
        value = parse_score(score, event.score_type)
        participant = await self._storage.record_entry(participant_id, value, str(added_by), _clean_note(note))
        logger.info("Recorded %s for participant %s in event %s", value, participant_id, event.id)
        return participant

    async def edit_entry(
        self,
        entry_id: int,
        new_score: Union[Decimal, int, float, str],
        note: Optional[str] = None,
    ) -> Participant:
        entry = await self.get_entry(entry_id)
        participant = await self.get_participant(entry.participant_id)
        event = await self.get_event(participant.event_id)
        value = parse_score(new_score, event.score_type)
        updated = await self._storage.edit_entry(entry_id, value, _clean_note(note))
        logger.info("Score entry %s edited: %s -> %s", entry_id, entry.score, value)
        return updated

    async def delete_entry(self, entry_id: int) -> Participant:
        participant = await self._storage.delete_entry(entry_id)
        logger.info("Score entry %s deleted (participant %s)", entry_id, participant.id)
        return participant

    async def get_entry(self, entry_id: int) -> ScoreEntry:
        entry = await self._storage.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("score entry", entry_id)
        return entry

    async def get_participant(self, participant_id: int, *, with_entries: bool = False) -> Participant:
        participant = await self._storage.get_participant(participant_id, with_entries=with_entries)
        if participant is None:
            raise NotFoundError("participant", participant_id)
        return participant

    async def get_participant_history(self, event_id: int, user_id: Union[int, str]) -> Participant:
        participant = await self._storage.get_participant_by_user(event_id, str(user_id), with_entries=True)
        if participant is None:
            raise NotFoundError("participant", user_id)
        return participant

    # ------------------------------------------------------------------
    # Leaderboards
    # ------------------------------------------------------------------
    async def _ranked(self, event: Event) -> List[RankedParticipant]:
        participants = await self._storage.list_participants(
            event.id,
            with_entries=event.score_aggregation is ScoreAggregation.BEST,
        )
        return build_leaderboard(event, participants)

    async def get_leaderboard(self, event_id: int, limit: Optional[int] = None) -> List[RankedParticipant]:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be a positive integer.")
        event = await self.get_event(event_id)
        ranked = await self._ranked(event)
        return ranked if limit is None else ranked[:limit]

    async def get_event_detail(self, event_id: int, limit: Optional[int] = None) -> EventDetail:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be a positive integer.")
        event = await self.get_event(event_id)
        ranked = await self._ranked(event)
        return EventDetail(
            event=event,
            leaderboard=ranked if limit is None else ranked[:limit],
            stats=leaderboard_stats(ranked),
        )


__all__ = ["RankingService", "EventDetail", "parse_score"]
