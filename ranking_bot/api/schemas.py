"""
Pydantic schemas for API request/response validation.

Scores leave the API as JSON numbers; the store keeps them as exact
hundredths, so two decimal places always survive the float conversion.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.models import Event, Guild, GuildMember, Participant, RankedParticipant, ScoreEntry
from ..core.ranking_service import EventDetail

ScoreValue = Union[int, float, str]


# =============================================================================
# Meta
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: bool


class ErrorResponse(BaseModel):
    error: str
    code: str


# =============================================================================
# Guilds & members
# =============================================================================

class GuildOut(BaseModel):
    guild_id: str
    guild_name: str
    owner_id: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, guild: Guild) -> "GuildOut":
        return cls(
            guild_id=guild.guild_id,
            guild_name=guild.guild_name,
            owner_id=guild.owner_id,
            settings=guild.settings,
            created_at=guild.created_at,
        )


class MemberOut(BaseModel):
    user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None

    @classmethod
    def from_domain(cls, member: GuildMember) -> "MemberOut":
        return cls(
            user_id=member.user_id,
            username=member.username,
            display_name=member.display_name,
            avatar_url=member.avatar_url,
        )


# =============================================================================
# Events
# =============================================================================

class EventCreate(BaseModel):
    """Request to create a new event."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    score_type: str = "points"
    sort_direction: Optional[str] = Field(None, description="Defaults to asc for time events, desc otherwise")
    score_aggregation: str = "sum"
    created_by: str = Field(..., description="Discord user id of the creator")


class EventUpdate(BaseModel):
    """Partial event update. Omitted fields stay unchanged."""
    name: Optional[str] = None
    description: Optional[str] = None
    score_type: Optional[str] = None
    sort_direction: Optional[str] = None
    score_aggregation: Optional[str] = None
    is_active: Optional[bool] = None


class EventOut(BaseModel):
    id: int
    guild_id: str
    name: str
    description: str
    score_type: str
    sort_direction: str
    score_aggregation: str
    is_active: bool
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, event: Event) -> "EventOut":
        return cls(
            id=event.id,
            guild_id=event.guild_id,
            name=event.name,
            description=event.description,
            score_type=event.score_type.value,
            sort_direction=event.sort_direction.value,
            score_aggregation=event.score_aggregation.value,
            is_active=event.is_active,
            created_by=event.created_by,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )


# =============================================================================
# Ledger
# =============================================================================

class ScoreCreate(BaseModel):
    """Record a score for a user, enrolling them in the event if needed."""
    user_id: str
    username: str = Field(..., min_length=1)
    score: ScoreValue
    added_by: str
    note: Optional[str] = None
    avatar_url: Optional[str] = None


class ParticipantScoreCreate(BaseModel):
    score: ScoreValue
    added_by: str
    note: Optional[str] = None


class EntryUpdate(BaseModel):
    score: ScoreValue
    note: Optional[str] = None


class EntryOut(BaseModel):
    id: int
    participant_id: int
    score: float
    added_by: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, entry: ScoreEntry) -> "EntryOut":
        return cls(
            id=entry.id,
            participant_id=entry.participant_id,
            score=float(entry.score),
            added_by=entry.added_by,
            note=entry.note,
            created_at=entry.created_at,
        )


class ParticipantOut(BaseModel):
    id: int
    event_id: int
    user_id: str
    username: str
    display_name: str
    total_score: float
    entries_count: int
    avatar_url: Optional[str] = None
    entries: List[EntryOut] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, participant: Participant) -> "ParticipantOut":
        return cls(
            id=participant.id,
            event_id=participant.event_id,
            user_id=participant.user_id,
            username=participant.username,
            display_name=participant.display_name,
            total_score=float(participant.total_score),
            entries_count=participant.entries_count,
            avatar_url=participant.avatar_url,
            entries=[EntryOut.from_domain(entry) for entry in participant.entries],
        )


# =============================================================================
# Leaderboards
# =============================================================================

class LeaderboardRow(BaseModel):
    rank: int
    participant_id: int
    user_id: str
    display_name: str
    calculated_score: float
    entry_count: int
    total_score: Optional[float] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_domain(cls, row: RankedParticipant) -> "LeaderboardRow":
        return cls(
            rank=row.rank,
            participant_id=row.participant_id,
            user_id=row.user_id,
            display_name=row.display_name,
            calculated_score=float(row.calculated_score),
            entry_count=row.entry_count,
            total_score=float(row.total_score) if row.total_score is not None else None,
            avatar_url=row.avatar_url,
        )


class LeaderboardStats(BaseModel):
    participant_count: int = 0
    total_entries: int = 0


class EventDetailOut(BaseModel):
    event: EventOut
    leaderboard: List[LeaderboardRow]
    stats: LeaderboardStats

    @classmethod
    def from_domain(cls, detail: EventDetail) -> "EventDetailOut":
        return cls(
            event=EventOut.from_domain(detail.event),
            leaderboard=[LeaderboardRow.from_domain(row) for row in detail.leaderboard],
            stats=LeaderboardStats(**detail.stats),
        )


# =============================================================================
# Public (unauthenticated) views
# =============================================================================

class PublicEventOut(BaseModel):
    id: int
    name: str
    description: str
    score_type: str
    sort_direction: str
    score_aggregation: str
    is_active: bool
    guild_name: Optional[str] = None
    participant_count: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(
        cls,
        event: Event,
        *,
        guild_name: Optional[str] = None,
        participant_count: Optional[int] = None,
    ) -> "PublicEventOut":
        return cls(
            id=event.id,
            name=event.name,
            description=event.description,
            score_type=event.score_type.value,
            sort_direction=event.sort_direction.value,
            score_aggregation=event.score_aggregation.value,
            is_active=event.is_active,
            guild_name=guild_name,
            participant_count=participant_count,
            created_at=event.created_at,
        )


class PublicLeaderboardRow(BaseModel):
    rank: int
    display_name: str
    calculated_score: float
    entry_count: int
    avatar_url: Optional[str] = None

    @classmethod
    def from_domain(cls, row: RankedParticipant) -> "PublicLeaderboardRow":
        return cls(
            rank=row.rank,
            display_name=row.display_name,
            calculated_score=float(row.calculated_score),
            entry_count=row.entry_count,
            avatar_url=row.avatar_url,
        )


class PublicEventDetail(BaseModel):
    event: PublicEventOut
    leaderboard: List[PublicLeaderboardRow]
    stats: LeaderboardStats


# =============================================================================
# Client logs
# =============================================================================

class ClientLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: Literal["debug", "info", "warn", "warning", "error"] = "info"
    message: str = Field(..., max_length=4000)
    context: Optional[Dict[str, Any]] = None
    user_agent: Optional[str] = Field(None, alias="userAgent", max_length=512)
    url: Optional[str] = Field(None, max_length=2048)
    timestamp: Optional[str] = None

    def log_context(self) -> Dict[str, Any]:
        """Context plus the browser details the dashboard attaches."""
        details: Dict[str, Any] = dict(self.context or {})
        for key, value in (("userAgent", self.user_agent), ("url", self.url), ("timestamp", self.timestamp)):
            if value is not None:
                details[key] = value
        return details
