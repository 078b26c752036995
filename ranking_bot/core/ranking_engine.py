"""
Score aggregation and leaderboard ranking.

Everything here works on plain in-memory data so the rules can be tested
without a database. The storage engine calls :func:`apply_entry_change`
inside its transactions to keep the participant aggregate in step with the
ledger, and the service calls :func:`build_leaderboard` on every read.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .models import (
    Event,
    Participant,
    RankedParticipant,
    ScoreAggregation,
    SortDirection,
)

ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def _as_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def compute_effective_score(
    aggregation: ScoreAggregation,
    scores: Iterable[Number],
    sort_direction: SortDirection = SortDirection.DESC,
) -> Decimal:
    """Collapse a participant's entry scores into one comparable value.

    Args:
        aggregation: ``sum``, ``average`` or ``best``
        scores: raw entry scores, in any order
        sort_direction: decides whether ``best`` means the highest or lowest value

    Returns:
        The calculated score. An empty entry set always yields 0.
    """
    values = [_as_decimal(score) for score in scores]
    if not values:
        return ZERO

    if aggregation is ScoreAggregation.SUM:
        return sum(values, ZERO)
    if aggregation is ScoreAggregation.AVERAGE:
        return sum(values, ZERO) / len(values)
    if aggregation is ScoreAggregation.BEST:
        if sort_direction is SortDirection.DESC:
            return max(values)
        return min(values)
    raise ValueError(f"Unsupported aggregation: {aggregation!r}")


def effective_score_from_aggregate(
    aggregation: ScoreAggregation,
    total_score: Number,
    entries_count: int,
) -> Decimal:
    """Read the calculated score from a participant's cached aggregate.

    Only valid for ``sum`` and ``average``; ``best`` has to be derived from
    the ledger because the cached total is not maintained for it.
    """
    total = _as_decimal(total_score)
    if aggregation is ScoreAggregation.SUM:
        return total
    if aggregation is ScoreAggregation.AVERAGE:
        if entries_count <= 0:
            return ZERO
        return total / entries_count
    raise ValueError("best aggregation must be computed from the score ledger")


def calculated_score(event: Event, participant: Participant) -> Decimal:
    if event.score_aggregation is ScoreAggregation.BEST:
        return compute_effective_score(
            event.score_aggregation,
            (entry.score for entry in participant.entries),
            event.sort_direction,
        )
    return effective_score_from_aggregate(
        event.score_aggregation,
        participant.total_score,
        participant.entries_count,
    )


def _order_key(
    item: Tuple[Participant, Decimal],
    sort_direction: SortDirection,
) -> Tuple[Decimal, str, int]:
    participant, score = item
    primary = -score if sort_direction is SortDirection.DESC else score
    # participant id keeps identical display names in a stable order
    return (primary, participant.display_name, participant.id)


def rank(
    scored: Iterable[Tuple[Participant, Decimal]],
    sort_direction: SortDirection,
) -> List[RankedParticipant]:
    """Assign strictly sequential 1-based ranks.

    Ties on the calculated score resolve by display name, so two
    participants never share a rank.
    """
    ordered = sorted(scored, key=lambda item: _order_key(item, sort_direction))
    return [
        RankedParticipant(
            rank=position,
            participant_id=participant.id,
            user_id=participant.user_id,
            display_name=participant.display_name,
            calculated_score=score,
            entry_count=participant.entries_count,
            total_score=participant.total_score,
            avatar_url=participant.avatar_url,
        )
        for position, (participant, score) in enumerate(ordered, start=1)
    ]


def build_leaderboard(
    event: Event,
    participants: Sequence[Participant],
    limit: Optional[int] = None,
) -> List[RankedParticipant]:
    """Rank every participant of ``event`` and return the top ``limit`` rows.

    Ranks are assigned over the full field before the limit is applied.
    """
    scored = [(participant, calculated_score(event, participant)) for participant in participants]
    ranked = rank(scored, event.sort_direction)
    if event.score_aggregation is ScoreAggregation.BEST:
        ranked = [replace(row, total_score=None) for row in ranked]
    if limit is not None:
        return ranked[: max(limit, 0)]
    return ranked


def apply_entry_change(
    aggregation: ScoreAggregation,
    total_score: Decimal,
    entries_count: int,
    old_score: Optional[Decimal],
    new_score: Optional[Decimal],
) -> Tuple[Decimal, int]:
    """Return the participant aggregate after one ledger mutation.

    ``old_score=None`` records a new entry, ``new_score=None`` deletes one and
    passing both edits an entry in place. For ``best`` events only the count
    moves; the cached total is left alone.
    """
    if old_score is None and new_score is None:
        raise ValueError("a ledger change needs an old score, a new score, or both")

    count = entries_count
    if old_score is None:
        count += 1
    elif new_score is None:
        count -= 1
    if count < 0:
        raise ValueError("entries_count would drop below zero")

    if aggregation is ScoreAggregation.BEST:
        return total_score, count

    total = total_score
    if old_score is not None:
        total -= old_score
    if new_score is not None:
        total += new_score
    return total, count


def leaderboard_stats(leaderboard: Sequence[RankedParticipant]) -> Dict[str, int]:
    return {
        "participant_count": len(leaderboard),
        "total_entries": sum(row.entry_count for row in leaderboard),
    }


__all__ = [
    "compute_effective_score",
    "effective_score_from_aggregate",
    "calculated_score",
    "rank",
    "build_leaderboard",
    "apply_entry_change",
    "leaderboard_stats",
]
