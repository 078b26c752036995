from decimal import Decimal

import pytest

from ranking_bot.core.formatting import (
    aggregation_label,
    format_duration,
    format_score,
    rank_badge,
    score_type_label,
)
from ranking_bot.core.models import ScoreAggregation, ScoreType


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s"),
        (45, "45s"),
        (Decimal("59.5"), "1m"),
        (60, "1m"),
        (125, "2m 5s"),
        (3600, "1h"),
        (3780, "1h 3m"),
        (3605, "1h 5s"),
        (3725, "1h 2m 5s"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_points_trim_trailing_zeros():
    assert format_score(Decimal("30.00"), ScoreType.POINTS) == "30 pts"
    assert format_score(Decimal("12.50"), ScoreType.POINTS) == "12.5 pts"
    assert format_score(Decimal("0"), ScoreType.POINTS) == "0 pts"
    assert format_score(Decimal("1200"), ScoreType.POINTS) == "1200 pts"


def test_time_scores_use_duration():
    assert format_score(Decimal("90"), ScoreType.TIME_SECONDS) == "1m 30s"


def test_rank_badges():
    assert [rank_badge(i) for i in (1, 2, 3, 4)] == ["🥇", "🥈", "🥉", "#4"]


def test_labels():
    assert "Time" in score_type_label(ScoreType.TIME_SECONDS)
    assert "Best" in aggregation_label(ScoreAggregation.BEST)
