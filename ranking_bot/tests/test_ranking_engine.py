from decimal import Decimal
import itertools
import random

import pytest

from ranking_bot.core.models import (
    Event,
    Participant,
    ScoreAggregation,
    ScoreEntry,
    ScoreType,
    SortDirection,
)
from ranking_bot.core.ranking_engine import (
    apply_entry_change,
    build_leaderboard,
    calculated_score,
    compute_effective_score,
    effective_score_from_aggregate,
    leaderboard_stats,
    rank,
)


def _event(aggregation=ScoreAggregation.SUM, direction=SortDirection.DESC, score_type=ScoreType.POINTS) -> Event:
    return Event(
        id=1,
        guild_id="100",
        name="Test",
        description="",
        score_type=score_type,
        sort_direction=direction,
        score_aggregation=aggregation,
    )


def _participant(pid: int, name: str, scores, aggregation=ScoreAggregation.SUM) -> Participant:
    values = [Decimal(str(s)) for s in scores]
    total = Decimal("0")
    if aggregation is not ScoreAggregation.BEST:
        total = sum(values, Decimal("0"))
    return Participant(
        id=pid,
        event_id=1,
        user_id=str(pid * 10),
        username=name.lower(),
        display_name=name,
        total_score=total,
        entries_count=len(values),
        entries=[ScoreEntry(id=pid * 100 + i, participant_id=pid, score=v, added_by="1") for i, v in enumerate(values)],
    )


def test_sum_of_entries_and_empty_is_zero():
    assert compute_effective_score(ScoreAggregation.SUM, [10, 20, "0.5"]) == Decimal("30.5")
    assert compute_effective_score(ScoreAggregation.SUM, []) == 0


def test_average_never_divides_by_zero():
    assert compute_effective_score(ScoreAggregation.AVERAGE, [10, 20]) == 15
    assert compute_effective_score(ScoreAggregation.AVERAGE, []) == 0
    assert effective_score_from_aggregate(ScoreAggregation.AVERAGE, Decimal("0"), 0) == 0


def test_best_follows_sort_direction():
    assert compute_effective_score(ScoreAggregation.BEST, [120, 90, 95], SortDirection.DESC) == 120
    assert compute_effective_score(ScoreAggregation.BEST, [120, 90, 95], SortDirection.ASC) == 90
    assert compute_effective_score(ScoreAggregation.BEST, [], SortDirection.ASC) == 0


def test_floats_are_read_through_their_decimal_text():
    assert compute_effective_score(ScoreAggregation.SUM, [0.1, 0.2]) == Decimal("0.3")


def test_aggregate_shortcut_refuses_best():
    with pytest.raises(ValueError):
        effective_score_from_aggregate(ScoreAggregation.BEST, Decimal("10"), 2)


def test_scenario_sum_descending():
    event = _event(ScoreAggregation.SUM, SortDirection.DESC)
    board = build_leaderboard(event, [_participant(1, "A", [10, 20]), _participant(2, "B", [25])])
    assert [(row.display_name, row.rank, row.calculated_score) for row in board] == [
        ("A", 1, Decimal("30")),
        ("B", 2, Decimal("25")),
    ]


def test_scenario_average_descending():
    event = _event(ScoreAggregation.AVERAGE, SortDirection.DESC)
    board = build_leaderboard(
        event,
        [
            _participant(1, "A", [10, 20], ScoreAggregation.AVERAGE),
            _participant(2, "B", [25], ScoreAggregation.AVERAGE),
        ],
    )
    assert [(row.display_name, row.rank, row.calculated_score) for row in board] == [
        ("B", 1, Decimal("25")),
        ("A", 2, Decimal("15")),
    ]


def test_scenario_best_ascending_race_times():
    event = _event(ScoreAggregation.BEST, SortDirection.ASC, ScoreType.TIME_SECONDS)
    board = build_leaderboard(
        event,
        [
            _participant(1, "A", [120, 90], ScoreAggregation.BEST),
            _participant(2, "B", [95], ScoreAggregation.BEST),
        ],
    )
    assert [(row.display_name, row.rank, row.calculated_score) for row in board] == [
        ("A", 1, Decimal("90")),
        ("B", 2, Decimal("95")),
    ]


def test_best_ignores_cached_total():
    event = _event(ScoreAggregation.BEST, SortDirection.DESC)
    participant = _participant(1, "A", [5, 7], ScoreAggregation.BEST)
    participant.total_score = Decimal("999")
    assert calculated_score(event, participant) == 7


def test_best_rows_carry_no_cached_total():
    participant = _participant(1, "A", [5, 7], ScoreAggregation.BEST)
    participant.total_score = Decimal("12")
    best_board = build_leaderboard(_event(ScoreAggregation.BEST, SortDirection.DESC), [participant])
    assert best_board[0].total_score is None

    sum_board = build_leaderboard(_event(), [_participant(1, "A", [5, 7])])
    assert sum_board[0].total_score == Decimal("12")


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_tie_breaks_by_display_name_regardless_of_input_order(order):
    people = [
        _participant(1, "Bob", [50]),
        _participant(2, "Alice", [50]),
        _participant(3, "Carol", [10]),
    ]
    shuffled = [people[i] for i in order]
    board = build_leaderboard(_event(), shuffled)
    assert [row.display_name for row in board] == ["Alice", "Bob", "Carol"]
    assert [row.rank for row in board] == [1, 2, 3]


def test_identical_names_fall_back_to_participant_id():
    board = build_leaderboard(_event(), [_participant(7, "Sam", [1]), _participant(3, "Sam", [1])])
    assert [row.participant_id for row in board] == [3, 7]


def test_ranks_are_sequential_without_gaps_for_many_ties():
    rng = random.Random(42)
    people = [_participant(i, f"P{i:03d}", [rng.choice([1, 2, 3])]) for i in range(1, 60)]
    board = build_leaderboard(_event(), people)
    assert [row.rank for row in board] == list(range(1, 60))
    scores = [row.calculated_score for row in board]
    assert scores == sorted(scores, reverse=True)


def test_zero_entry_participants_rank_with_zero():
    board = build_leaderboard(_event(), [_participant(1, "Empty", []), _participant(2, "Scored", [-5])])
    assert [(row.display_name, row.calculated_score) for row in board] == [
        ("Empty", Decimal("0")),
        ("Scored", Decimal("-5")),
    ]


def test_ranking_is_idempotent():
    event = _event(ScoreAggregation.AVERAGE)
    people = [_participant(i, f"P{i}", [i, i * 2], ScoreAggregation.AVERAGE) for i in range(1, 8)]
    assert build_leaderboard(event, people) == build_leaderboard(event, list(reversed(people)))


def test_limit_is_applied_after_ranking():
    event = _event(ScoreAggregation.SUM, SortDirection.ASC)
    people = [_participant(i, f"P{i}", [100 - i]) for i in range(1, 6)]
    board = build_leaderboard(event, people, limit=2)
    assert [(row.rank, row.display_name) for row in board] == [(1, "P5"), (2, "P4")]


def test_rank_accepts_prescored_pairs():
    a = _participant(1, "A", [])
    b = _participant(2, "B", [])
    rows = rank([(a, Decimal("1")), (b, Decimal("2"))], SortDirection.ASC)
    assert [row.display_name for row in rows] == ["A", "B"]


def test_edit_applies_delta_once():
    total, count = apply_entry_change(ScoreAggregation.SUM, Decimal("40"), 3, Decimal("10"), Decimal("30"))
    assert (total, count) == (Decimal("60"), 3)


@pytest.mark.parametrize("aggregation", [ScoreAggregation.SUM, ScoreAggregation.AVERAGE])
def test_record_then_delete_restores_aggregate(aggregation):
    start = (Decimal("12.34"), 4)
    after_record = apply_entry_change(aggregation, *start, None, Decimal("0.07"))
    assert after_record == (Decimal("12.41"), 5)
    assert apply_entry_change(aggregation, *after_record, Decimal("0.07"), None) == start


def test_best_only_moves_the_count():
    total, count = apply_entry_change(ScoreAggregation.BEST, Decimal("0"), 2, None, Decimal("50"))
    assert (total, count) == (Decimal("0"), 3)
    assert apply_entry_change(ScoreAggregation.BEST, total, count, Decimal("50"), Decimal("60")) == (Decimal("0"), 3)
    assert apply_entry_change(ScoreAggregation.BEST, total, count, Decimal("50"), None) == (Decimal("0"), 2)


def test_apply_entry_change_rejects_impossible_changes():
    with pytest.raises(ValueError):
        apply_entry_change(ScoreAggregation.SUM, Decimal("0"), 0, None, None)
    with pytest.raises(ValueError):
        apply_entry_change(ScoreAggregation.SUM, Decimal("0"), 0, Decimal("1"), None)


def test_leaderboard_stats_counts_entries():
    board = build_leaderboard(_event(), [_participant(1, "A", [1, 2]), _participant(2, "B", [3])])
    assert leaderboard_stats(board) == {"participant_count": 2, "total_entries": 3}
