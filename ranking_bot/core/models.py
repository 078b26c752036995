"""Domain models for events, participants and the score ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class ScoreType(Enum):
    """How a score is displayed. Never affects aggregation or sorting."""

    POINTS = "points"
    TIME_SECONDS = "time_seconds"


class SortDirection(Enum):
    """Whether higher (``desc``) or lower (``asc``) raw values rank better."""

    ASC = "asc"
    DESC = "desc"


class ScoreAggregation(Enum):
    """Rule that collapses a participant's entries into one comparable value."""

    SUM = "sum"
    AVERAGE = "average"
    BEST = "best"


def default_sort_direction(score_type: ScoreType) -> SortDirection:
    """Time based events rank the lowest value first, everything else the highest."""
    if score_type.value.startswith("time_"):
        return SortDirection.ASC
    return SortDirection.DESC


@dataclass
class Guild:
    guild_id: str
    guild_name: str
    owner_id: str
    settings: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class GuildMember:
    """Cached copy of a Discord member, used to resolve display names."""

    guild_id: str
    user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    is_bot: bool = False
    joined_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None


@dataclass
class Event:
    """A single ranked competition scoped to one Discord server."""

    id: int
    guild_id: str
    name: str
    description: str
    score_type: ScoreType
    sort_direction: SortDirection
    score_aggregation: ScoreAggregation
    is_active: bool = True
    created_by: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ScoreEntry:
    id: int
    participant_id: int
    score: Decimal
    added_by: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Participant:
    """A user's enrollment in one event.

    ``total_score`` and ``entries_count`` are a cache of the ledger that every
    ledger mutation refreshes inside its own transaction. ``total_score`` is
    only meaningful for ``sum`` and ``average`` events; ``best`` events rank
    from ``entries`` instead.
    """

    id: int
    event_id: int
    user_id: str
    username: str
    display_name: str
    total_score: Decimal = Decimal("0")
    entries_count: int = 0
    avatar_url: Optional[str] = None
    entries: List[ScoreEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RankedParticipant:
    """One leaderboard row as handed to the embed and web renderers."""

    rank: int
    participant_id: int
    user_id: str
    display_name: str
    calculated_score: Decimal
    entry_count: int
    # None for best events, whose cached total means nothing
    total_score: Optional[Decimal] = Decimal("0")
    avatar_url: Optional[str] = None


__all__ = [
    "ScoreType",
    "SortDirection",
    "ScoreAggregation",
    "default_sort_direction",
    "Guild",
    "GuildMember",
    "Event",
    "ScoreEntry",
    "Participant",
    "RankedParticipant",
]
