from datetime import date, timedelta

import pytest

from habitmomentum.core.errors import ValidationError
from habitmomentum.features.momentum.daily import DailyMomentumCalculator
from habitmomentum.models.habit import HabitRecord

START = date(2024, 1, 1)


def _record(day, completed, outcome):
    return HabitRecord(
        id=f"r-{day.isoformat()}",
        habit_id="h1",
        user_id="u1",
        date=day.isoformat(),
        completed=1 if completed else 0,
        momentum=outcome.momentum,
        miss_streak=outcome.miss_streak,
    )


def _play(pattern, start=START):
    """Score consecutive days; returns the momentum of each."""
    prior = None
    momenta = []
    for offset, completed in enumerate(pattern):
        day = start + timedelta(days=offset)
        outcome = DailyMomentumCalculator.calculate(prior, completed, day)
        momenta.append(outcome.momentum)
        prior = _record(day, completed, outcome)
    return momenta


def test_streak_then_misses_then_recovery():
    assert _play([True, True, True, False, False, True]) == [1, 2, 3, 0, -1, 1]


def test_streak_caps_at_seven():
    momenta = _play([True] * 12)
    assert momenta[:7] == [1, 2, 3, 4, 5, 6, 7]
    assert all(m == 7 for m in momenta[6:])


def test_penalty_floors_at_minus_three():
    momenta = _play([True] + [False] * 7)
    assert momenta == [1, 0, -1, -2, -3, -3, -3, -3]


def test_recovery_is_always_one():
    for misses in range(1, 8):
        assert _play([False] * misses + [True])[-1] == 1


def test_first_ever_miss_is_neutral():
    outcome = DailyMomentumCalculator.calculate(None, False, START)
    assert outcome.momentum == 0
    assert outcome.miss_streak == 1


def test_completion_after_gap_restarts_streak():
    prior = HabitRecord(id="r", habit_id="h1", user_id="u1", date="2024-01-01", completed=1, momentum=5)
    outcome = DailyMomentumCalculator.calculate(prior, True, "2024-01-04")
    assert outcome.momentum == 1
    assert outcome.miss_streak == 0


def test_gap_applies_single_penalty_step():
    prior = HabitRecord(
        id="r", habit_id="h1", user_id="u1", date="2024-01-01", completed=0, momentum=-1, miss_streak=2
    )
    outcome = DailyMomentumCalculator.calculate(prior, False, "2024-01-10")
    assert outcome.momentum == -2
    assert outcome.miss_streak == 3


def test_record_without_miss_streak_rebuilds_count_from_momentum():
    prior = HabitRecord(id="r", habit_id="h1", user_id="u1", date="2024-01-01", completed=0, momentum=-2)
    outcome = DailyMomentumCalculator.calculate(prior, False, "2024-01-02")
    assert outcome.momentum == -3
    assert outcome.miss_streak == 4


@pytest.mark.parametrize("bad", ["2024-13-01", "2024/01/01", "01-02-2024", "", "2024-1-1"])
def test_malformed_date_rejected(bad):
    with pytest.raises(ValidationError):
        DailyMomentumCalculator.calculate(None, True, bad)


def test_prior_record_must_precede_day():
    prior = HabitRecord(id="r", habit_id="h1", user_id="u1", date="2024-01-05", completed=1, momentum=1)
    with pytest.raises(ValidationError):
        DailyMomentumCalculator.calculate(prior, True, "2024-01-05")
