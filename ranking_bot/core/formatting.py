"""Display helpers for scores. Ranking never looks at these strings."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from .models import ScoreAggregation, ScoreType

TWO_PLACES = Decimal("0.01")

SCORE_TYPE_LABELS = {
    ScoreType.POINTS: "📈 Points",
    ScoreType.TIME_SECONDS: "⏱️ Time (seconds)",
}

AGGREGATION_LABELS = {
    ScoreAggregation.SUM: "🔢 Sum",
    ScoreAggregation.AVERAGE: "📊 Average",
    ScoreAggregation.BEST: "🏆 Best",
}

RANK_BADGES = {1: "🥇", 2: "🥈", 3: "🥉"}


def _trimmed(value: Decimal) -> str:
    text = format(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP).normalize(), "f")
    return "0" if text in ("-0", "") else text


def format_duration(seconds: Union[Decimal, int, float]) -> str:
    """Render a number of seconds as ``45s``, ``2m 5s`` or ``1h 3m``."""
    total = int(Decimal(str(seconds)).to_integral_value(rounding=ROUND_HALF_UP))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"

    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = [f"{hours}h"]
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_score(score: Union[Decimal, int, float], score_type: ScoreType) -> str:
    if score_type is ScoreType.TIME_SECONDS:
        return format_duration(score)
    return f"{_trimmed(Decimal(str(score)))} pts"


def rank_badge(rank: int) -> str:
    return RANK_BADGES.get(rank, f"#{rank}")


def score_type_label(score_type: ScoreType) -> str:
    return SCORE_TYPE_LABELS.get(score_type, SCORE_TYPE_LABELS[ScoreType.POINTS])


def aggregation_label(aggregation: ScoreAggregation) -> str:
    return AGGREGATION_LABELS.get(aggregation, AGGREGATION_LABELS[ScoreAggregation.SUM])


__all__ = [
    "format_duration",
    "format_score",
    "rank_badge",
    "score_type_label",
    "aggregation_label",
]
