from datetime import date

import pytest

from habitmomentum.core.errors import ValidationError
from habitmomentum.features.habits.service import habit_service
from habitmomentum.features.momentum.history import MomentumHistoryBuilder
from habitmomentum.features.momentum.service import momentum_service
from habitmomentum.features.records.store import record_store


def _series(points):
    return [(p.date, p.momentum) for p in points]


def _track_daily(habit_id, pattern):
    for day, done in pattern:
        momentum_service.track_daily("u1", habit_id, done, day)


def test_daily_history_is_cumulative_and_carries_forward(make_habit):
    habit = make_habit("daily")
    _track_daily(
        habit.id,
        [("2024-01-01", True), ("2024-01-02", True), ("2024-01-04", False), ("2024-01-05", False)],
    )

    points = MomentumHistoryBuilder().build("u1", days=7, today=date(2024, 1, 6))
    assert _series(points) == [
        ("2023-12-31", 0),
        ("2024-01-01", 1),
        ("2024-01-02", 3),
        ("2024-01-03", 3),
        ("2024-01-04", 3),
        ("2024-01-05", 2),
        ("2024-01-06", 2),
    ]


def test_records_before_window_count_toward_baseline(make_habit):
    habit = make_habit("daily")
    _track_daily(
        habit.id,
        [("2024-01-01", True), ("2024-01-02", True), ("2024-01-04", False), ("2024-01-05", False)],
    )

    points = MomentumHistoryBuilder().build("u1", days=2, today="2024-01-05")
    assert _series(points) == [("2024-01-04", 3), ("2024-01-05", 2)]


def test_weekly_value_covers_every_day_of_its_week(make_habit):
    habit = make_habit("weekly", target_count=2)
    momentum_service.toggle_weekly("u1", habit.id, "2024-01-02")
    momentum_service.toggle_weekly("u1", habit.id, "2024-01-03")

    builder = MomentumHistoryBuilder()
    assert _series(builder.build("u1", days=2, today="2024-01-02")) == [
        ("2024-01-01", 12),
        ("2024-01-02", 12),
    ]
    assert _series(builder.build("u1", days=3, today="2024-01-09")) == [
        ("2024-01-07", 12),
        ("2024-01-08", 12),
        ("2024-01-09", 12),
    ]


def test_daily_and_weekly_contributions_are_summed(make_habit):
    daily = make_habit("daily")
    weekly = make_habit("weekly", target_count=2)
    _track_daily(daily.id, [("2024-01-01", True), ("2024-01-02", True)])
    momentum_service.toggle_weekly("u1", weekly.id, "2024-01-01")
    momentum_service.toggle_weekly("u1", weekly.id, "2024-01-02")

    points = MomentumHistoryBuilder().build("u1", days=2, today="2024-01-02")
    assert _series(points) == [("2024-01-01", 13), ("2024-01-02", 15)]
    assert points[-1].momentum == momentum_service.total_momentum("u1")


def test_history_is_idempotent_and_read_only(make_habit):
    habit = make_habit("daily")
    _track_daily(habit.id, [("2024-01-01", True), ("2024-01-03", False)])
    before = record_store.get_habit(habit.id)

    builder = MomentumHistoryBuilder()
    first = builder.build("u1", days=10, today="2024-01-05")
    second = builder.build("u1", days=10, today="2024-01-05")

    assert first == second
    assert record_store.get_habit(habit.id) == before


def test_archived_habits_are_excluded(make_habit):
    habit = make_habit("daily")
    _track_daily(habit.id, [("2024-01-01", True)])
    habit_service.archive_habit("u1", habit.id)

    points = MomentumHistoryBuilder().build("u1", days=3, today="2024-01-02")
    assert all(p.momentum == 0 for p in points)


def test_other_users_records_are_not_included(make_habit):
    mine = make_habit("daily", user_id="u1")
    theirs = make_habit("daily", user_id="u2")
    _track_daily(mine.id, [("2024-01-01", True)])
    momentum_service.track_daily("u2", theirs.id, True, "2024-01-01")

    points = MomentumHistoryBuilder().build("u1", days=1, today="2024-01-01")
    assert _series(points) == [("2024-01-01", 1)]


@pytest.mark.parametrize("days", [0, -1, 366, True])
def test_days_out_of_range_rejected(days):
    with pytest.raises(ValidationError):
        MomentumHistoryBuilder().build("u1", days=days, today="2024-01-01")


def test_full_year_window_is_allowed():
    points = MomentumHistoryBuilder().build("u1", days=365, today="2024-12-31")
    assert len(points) == 365
    assert points[0].date == "2024-01-02"
    assert points[-1].date == "2024-12-31"


def test_replay_matches_tracked_daily_records(make_habit):
    habit = make_habit("daily")
    _track_daily(
        habit.id,
        [("2024-01-01", True), ("2024-01-02", False), ("2024-01-03", False), ("2024-01-05", True)],
    )
    records = record_store.get_records_in_range(habit.id, "2024-01-01", "2024-01-31")
    replayed = MomentumHistoryBuilder.replay_daily(records)

    assert [r.momentum for r in replayed] == [r.momentum for r in records]
    assert MomentumHistoryBuilder.accumulated_total(habit, records) == sum(r.momentum for r in records)


def test_replay_weekly_rebuilds_week_values():
    from habitmomentum.models.habit import HabitRecord

    def rec(day, completed):
        return HabitRecord(id=day, habit_id="w", user_id="u1", date=day, completed=completed)

    records = [
        rec("2024-01-01", 2), rec("2024-01-03", 2),  # 4 -> 14
        rec("2024-01-08", 4),                        # 4, target met again -> 24
        rec("2024-01-15", 2),                        # miss #1 -> 2
        rec("2024-01-22", 2),                        # miss #2 -> -8
    ]
    replayed = MomentumHistoryBuilder.replay_weekly(records, 3)
    assert [(monday.isoformat(), o.momentum) for monday, o in replayed] == [
        ("2024-01-01", 14),
        ("2024-01-08", 24),
        ("2024-01-15", 2),
        ("2024-01-22", -8),
    ]


def test_replay_weekly_scores_the_week_in_progress_at_face_value():
    from habitmomentum.models.habit import HabitRecord

    records = [
        HabitRecord(id="a", habit_id="w", user_id="u1", date="2024-01-01", completed=0),
        HabitRecord(id="b", habit_id="w", user_id="u1", date="2024-01-08", completed=1),
    ]
    replayed = MomentumHistoryBuilder.replay_weekly(records, 2, today="2024-01-10")
    assert [o.momentum for _, o in replayed] == [0, 1]
    assert [o.momentum for _, o in MomentumHistoryBuilder.replay_weekly(records, 2)] == [0, -9]


def test_habit_history_daily_values_carry_forward(make_habit):
    habit = make_habit("daily")
    _track_daily(habit.id, [("2024-01-01", True), ("2024-01-02", True), ("2024-01-04", False)])

    builder = MomentumHistoryBuilder()
    assert _series(builder.build_for_habit(habit, today="2024-01-05")) == [
        ("2023-12-30", None),
        ("2023-12-31", None),
        ("2024-01-01", 1),
        ("2024-01-02", 2),
        ("2024-01-03", 2),
        ("2024-01-04", 0),
        ("2024-01-05", 0),
    ]
    # A value from before the window seeds the first point
    assert _series(builder.build_for_habit(habit, periods=2, today="2024-01-04")) == [
        ("2024-01-03", 2),
        ("2024-01-04", 0),
    ]


def test_habit_history_weekly_has_one_point_per_week(make_habit):
    habit = make_habit("weekly", target_count=2)
    momentum_service.toggle_weekly("u1", habit.id, "2024-01-01")
    momentum_service.toggle_weekly("u1", habit.id, "2024-01-02")
    momentum_service.toggle_weekly("u1", habit.id, "2024-01-15")

    builder = MomentumHistoryBuilder()
    assert _series(builder.build_for_habit(habit, periods=4, today="2024-01-17")) == [
        ("2023-12-25", None),
        ("2024-01-01", 12),
        ("2024-01-08", 12),
        ("2024-01-15", 1),
    ]
    assert len(builder.build_for_habit(habit, today="2024-01-17")) == 8


@pytest.mark.parametrize("kind,periods", [("daily", 0), ("daily", 366), ("weekly", 53), ("weekly", True)])
def test_habit_history_periods_out_of_range_rejected(make_habit, kind, periods):
    habit = make_habit(kind)
    with pytest.raises(ValidationError):
        MomentumHistoryBuilder().build_for_habit(habit, periods=periods, today="2024-01-01")


def test_habit_history_requires_ownership(make_habit):
    from habitmomentum.core.errors import OwnershipError

    habit = make_habit("daily", user_id="u1")
    with pytest.raises(OwnershipError):
        momentum_service.habit_momentum_history("u2", habit.id, today="2024-01-01")
    assert len(momentum_service.habit_momentum_history("u1", habit.id, today="2024-01-01")) == 7
