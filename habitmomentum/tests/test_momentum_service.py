from datetime import date, timedelta

import pytest

from habitmomentum.core.errors import ConflictError, OwnershipError, ValidationError
from habitmomentum.features.habits.service import habit_service
from habitmomentum.features.momentum.service import MomentumService
from habitmomentum.features.records.store import record_store


@pytest.fixture
def service():
    return MomentumService()


def _day(n):
    return date(2024, 1, 1) + timedelta(days=n)


def test_daily_scenario_persists_and_accumulates(service, make_habit):
    habit = make_habit("daily")
    pattern = [True, True, True, False, False, True]
    momenta = [service.track_daily("u1", habit.id, done, _day(i)).momentum for i, done in enumerate(pattern)]

    assert momenta == [1, 2, 3, 0, -1, 1]
    stored = record_store.get_habit(habit.id)
    assert stored.accumulated_momentum == sum(momenta)
    assert stored.consecutive_misses == 0


def test_daily_miss_streak_is_mirrored_on_habit(service, make_habit):
    habit = make_habit("daily")
    service.track_daily("u1", habit.id, True, _day(0))
    service.track_daily("u1", habit.id, False, _day(1))
    service.track_daily("u1", habit.id, False, _day(2))

    assert record_store.get_habit(habit.id).consecutive_misses == 2
    assert record_store.get_record(habit.id, _day(2)).miss_streak == 2


def test_retracking_a_day_applies_only_the_delta(service, make_habit):
    habit = make_habit("daily")
    service.track_daily("u1", habit.id, True, _day(0))
    service.track_daily("u1", habit.id, True, _day(0))
    assert record_store.get_habit(habit.id).accumulated_momentum == 1

    service.track_daily("u1", habit.id, False, _day(0))
    assert record_store.get_habit(habit.id).accumulated_momentum == 0
    records = record_store.get_records_in_range(habit.id, _day(0), _day(0))
    assert len(records) == 1
    assert records[0].completed == 0


def test_weekly_toggle_twice_restores_accumulated(service, make_habit):
    habit = make_habit("weekly", target_count=2)
    first = service.toggle_weekly("u1", habit.id, "2024-01-03")
    assert first.completed == 1
    assert record_store.get_habit(habit.id).accumulated_momentum == 1

    second = service.toggle_weekly("u1", habit.id, "2024-01-03")
    assert second.completed == 0
    assert record_store.get_habit(habit.id).accumulated_momentum == 0


def test_weekly_toggle_aligns_week_records(service, make_habit):
    habit = make_habit("weekly", target_count=2)
    service.toggle_weekly("u1", habit.id, "2024-01-01")
    service.toggle_weekly("u1", habit.id, "2024-01-02")

    records = record_store.get_records_in_range(habit.id, "2024-01-01", "2024-01-07")
    assert [r.momentum for r in records] == [12, 12]
    assert record_store.get_habit(habit.id).accumulated_momentum == 12


def test_weekly_four_week_scenario(service, make_habit):
    habit = make_habit("weekly", target_count=3)
    weeks = {
        date(2024, 1, 1): 4,
        date(2024, 1, 8): 4,
        date(2024, 1, 15): 2,
        date(2024, 1, 22): 2,
    }
    values = []
    for monday, completions in weeks.items():
        record = None
        for i in range(completions):
            record = service.toggle_weekly("u1", habit.id, monday + timedelta(days=i))
        values.append(record.momentum)

    assert values == [14, 24, 2, -8]
    stored = record_store.get_habit(habit.id)
    assert stored.accumulated_momentum == sum(values)
    assert stored.consecutive_misses == 2


def test_foreign_and_missing_habits_look_the_same(service, make_habit):
    habit = make_habit("daily", user_id="alice")

    with pytest.raises(OwnershipError) as foreign:
        service.track_daily("bob", habit.id, True, _day(0))
    with pytest.raises(OwnershipError) as missing:
        service.track_daily("bob", "does-not-exist", True, _day(0))

    assert foreign.value.message == missing.value.message
    assert record_store.get_records_in_range(habit.id, _day(0), _day(10)) == []


def test_invalid_tracking_requests_rejected(service, make_habit):
    daily = make_habit("daily")
    weekly = make_habit("weekly")

    with pytest.raises(ValidationError):
        service.toggle_weekly("u1", daily.id, _day(0))
    with pytest.raises(ValidationError):
        service.track_daily("u1", weekly.id, True, _day(0))
    with pytest.raises(ValidationError):
        service.track_daily("u1", daily.id, True, "2024-02-30")
    with pytest.raises(ValidationError):
        service.track_daily("u1", daily.id, True, date.today() + timedelta(days=2))

    habit_service.archive_habit("u1", daily.id)
    with pytest.raises(ValidationError):
        service.track_daily("u1", daily.id, True, _day(0))


def test_track_dispatches_on_kind(service, make_habit):
    daily = make_habit("daily")
    weekly = make_habit("weekly")

    assert service.track("u1", weekly.id, on_date="2024-01-02").completed == 1
    assert service.track("u1", daily.id, completed=True, on_date="2024-01-02").momentum == 1
    with pytest.raises(ValidationError):
        service.track("u1", daily.id, on_date="2024-01-03")


def test_conflict_is_retried(service, make_habit, monkeypatch):
    habit = make_habit("daily")
    original = record_store.upsert_record
    calls = {"n": 0}

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConflictError("simulated concurrent insert")
        return original(*args, **kwargs)

    monkeypatch.setattr(record_store, "upsert_record", flaky)
    record = service.track_daily("u1", habit.id, True, _day(0))

    assert calls["n"] == 2
    assert record.momentum == 1
    assert record_store.get_habit(habit.id).accumulated_momentum == 1


def test_conflict_surfaces_after_retries_without_partial_writes(service, make_habit, monkeypatch):
    habit = make_habit("daily")

    def always_conflict(*args, **kwargs):
        raise ConflictError("simulated concurrent insert")

    monkeypatch.setattr(record_store, "upsert_record", always_conflict)
    with pytest.raises(ConflictError):
        service.track_daily("u1", habit.id, True, _day(0))

    assert record_store.get_habit(habit.id).accumulated_momentum == 0


def test_total_momentum_ignores_archived_habits(service, make_habit):
    kept = make_habit("daily")
    archived = make_habit("daily")
    service.track_daily("u1", kept.id, True, _day(0))
    service.track_daily("u1", kept.id, True, _day(1))
    service.track_daily("u1", archived.id, True, _day(0))
    assert service.total_momentum("u1") == 4

    habit_service.archive_habit("u1", archived.id)
    assert service.total_momentum("u1") == 3


def test_current_momentum_daily(service, make_habit):
    habit = make_habit("daily")
    service.track_daily("u1", habit.id, True, _day(0))
    service.track_daily("u1", habit.id, True, _day(1))
    habit = record_store.get_habit(habit.id)

    # Today's record wins
    assert service.current_momentum(habit, _day(1)) == 2
    # Completed yesterday keeps the streak on display
    assert service.current_momentum(habit, _day(2)) == 2
    # Older completion: preview of today's miss
    assert service.current_momentum(habit, _day(4)) == 0

    service.track_daily("u1", habit.id, False, _day(3))
    assert service.current_momentum(habit, _day(4)) == -1


def test_current_momentum_weekly(service, make_habit):
    habit = make_habit("weekly", target_count=2)
    assert service.current_momentum(habit, "2024-01-03") == 0

    service.toggle_weekly("u1", habit.id, "2024-01-01")
    service.toggle_weekly("u1", habit.id, "2024-01-02")
    assert service.current_momentum(habit, "2024-01-05") == 12
    # Nothing yet in the next week: zero completions after a target week
    assert service.current_momentum(habit, "2024-01-09") == 0


def test_repair_restores_corrupted_cache(service, make_habit):
    habit = make_habit("daily")
    for i in range(3):
        service.track_daily("u1", habit.id, True, _day(i))
    record_store.set_accumulated_momentum(habit.id, 999)

    old, new = service.repair_accumulated_momentum(habit.id)
    assert (old, new) == (999, 6)
    assert record_store.get_habit(habit.id).accumulated_momentum == 6

    assert service.repair_accumulated_momentum(habit.id) == (6, 6)


def test_current_momentum_weekly_after_a_missed_week_is_not_penalised(service, make_habit):
    from habitmomentum.features.sweep.service import MissedHabitSweep

    habit = make_habit("weekly", target_count=2)
    MissedHabitSweep().run_weekly(today="2024-01-08")

    # Week of 01-08 has no records yet and is still in progress
    assert service.current_momentum(record_store.get_habit(habit.id), "2024-01-10") == 0
