"""
Momentum history builder.

Pure read path over stored records: the dashboard series is a per-day running
total, cumulative from each habit's first record, so the last point always
agrees with the habits' accumulated momentum.

- Daily habits contribute each record's momentum on its date.
- Weekly habits contribute one value per Monday-Sunday week (the momentum of
  the week's latest-dated record); every day of a week shows the running
  total including that week.
- Days without a record carry the last value forward.

The per-habit series is not cumulative: one point per day (daily habits) or
per week (weekly habits) holding that period's own momentum, carried forward
over periods without a record and empty before the first one.
"""

from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from habitmomentum.core.config import settings
from habitmomentum.core.dates import format_day, iter_days, parse_day, today_utc, week_bounds
from habitmomentum.core.errors import ValidationError
from habitmomentum.features.momentum.daily import DailyMomentumCalculator
from habitmomentum.features.momentum.weekly import WeeklyMomentumCalculator
from habitmomentum.features.records.store import RecordStore, record_store
from habitmomentum.models.habit import Habit, HabitRecord
from habitmomentum.models.momentum import MomentumPoint, WeeklyOutcome


def week_values(records: Sequence[HabitRecord]) -> List[Tuple[date, int]]:
    """(week_start, value) per week with records, oldest first."""
    latest: Dict[date, HabitRecord] = {}
    for record in records:
        monday, _ = week_bounds(record.date)
        current = latest.get(monday)
        if current is None or record.date >= current.date:
            latest[monday] = record
    return [(monday, latest[monday].momentum) for monday in sorted(latest)]


def _increments(habit: Habit, records: Sequence[HabitRecord]) -> List[Tuple[date, int]]:
    if habit.kind == "weekly":
        return week_values(records)
    return sorted((r.day, r.momentum) for r in records)


class MomentumHistoryBuilder:
    """Builds the per-day cumulative momentum series for a user."""

    DAILY_PERIODS = 7
    WEEKLY_PERIODS = 8

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or record_store

    def build(self, user_id: str, days: int = 30, today=None) -> List[MomentumPoint]:
        """
        One point per day, oldest first, ending on ``today``.

        Raises:
            ValidationError: ``days`` outside 1..MOMENTUM_HISTORY_MAX_DAYS
        """
        max_days = settings.MOMENTUM_HISTORY_MAX_DAYS
        if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= max_days:
            raise ValidationError(f"days must be between 1 and {max_days}")

        end = parse_day(today) if today is not None else today_utc()
        window = list(iter_days(end - timedelta(days=days - 1), end))

        habits = self.store.get_habits_by_type(user_id=user_id, kind=None, exclude_archived=True)
        records = self.store.get_records_for_habits([h.id for h in habits], end=end)

        totals = [0] * days
        for habit in habits:
            increments = _increments(habit, records.get(habit.id, []))
            weekly = habit.kind == "weekly"
            running, idx = 0, 0
            for i, day in enumerate(window):
                bucket = week_bounds(day)[0] if weekly else day
                while idx < len(increments) and increments[idx][0] <= bucket:
                    running += increments[idx][1]
                    idx += 1
                totals[i] += running

        return [MomentumPoint(date=format_day(day), momentum=total) for day, total in zip(window, totals)]

    def build_for_habit(self, habit: Habit, periods: Optional[int] = None, today=None) -> List[MomentumPoint]:
        """
        One habit's own momentum per period, oldest first, ending with the
        period that contains ``today``.

        Daily habits get ``periods`` days (default 7), weekly habits get
        ``periods`` weeks keyed by Monday (default 8). Before the habit's
        first record a point's momentum is None.
        """
        weekly = habit.kind == "weekly"
        max_days = settings.MOMENTUM_HISTORY_MAX_DAYS
        limit = max(max_days // 7, 1) if weekly else max_days
        count = periods if periods is not None else (self.WEEKLY_PERIODS if weekly else self.DAILY_PERIODS)
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= limit:
            raise ValidationError(f"periods must be between 1 and {limit}")

        end = parse_day(today) if today is not None else today_utc()
        records = self.store.get_records_in_range(habit.id, date.min, end)
        if weekly:
            last_monday, _ = week_bounds(end)
            slots = [last_monday - timedelta(weeks=n) for n in range(count - 1, -1, -1)]
            values = dict(week_values(records))
        else:
            slots = list(iter_days(end - timedelta(days=count - 1), end))
            values = {r.day: r.momentum for r in records}

        earlier = [key for key in values if key < slots[0]]
        current = values[max(earlier)] if earlier else None
        points = []
        for slot in slots:
            current = values.get(slot, current)
            points.append(MomentumPoint(date=format_day(slot), momentum=current))
        return points

    @staticmethod
    def accumulated_total(habit: Habit, records: Sequence[HabitRecord]) -> int:
        """History-derived value of ``habit.accumulated_momentum``."""
        return sum(value for _, value in _increments(habit, records))

    @staticmethod
    def replay_daily(records: Sequence[HabitRecord]) -> List[HabitRecord]:
        """Re-score a daily habit's records from their raw completions, oldest first."""
        replayed: List[HabitRecord] = []
        prior = None
        for record in sorted(records, key=lambda r: r.date):
            outcome = DailyMomentumCalculator.calculate(prior, record.is_completed, record.date)
            prior = replace(record, momentum=outcome.momentum, miss_streak=outcome.miss_streak)
            replayed.append(prior)
        return replayed

    @staticmethod
    def replay_weekly(
        records: Sequence[HabitRecord], target_count: Optional[int], today=None
    ) -> List[Tuple[date, WeeklyOutcome]]:
        """Re-score every week that has records, oldest first.

        With ``today`` given, a week not yet over is scored as in progress.

        Weeks without any record are not scored (the sweep writes a record
        for every missed week, so a gap means the habit did not exist yet).
        """
        by_week: Dict[date, int] = {}
        for record in records:
            monday, _ = week_bounds(record.date)
            by_week[monday] = by_week.get(monday, 0) + record.completed

        results: List[Tuple[date, WeeklyOutcome]] = []
        previous: Optional[Tuple[date, WeeklyOutcome]] = None
        for monday in sorted(by_week):
            previous_reached = False
            prior_miss_streak = 0
            if previous is not None:
                prior_miss_streak = previous[1].miss_streak
                previous_reached = (
                    previous[0] == monday - timedelta(days=7) and previous[1].target_reached
                )
            outcome = WeeklyMomentumCalculator.calculate(
                target_count,
                by_week[monday],
                previous_reached,
                prior_miss_streak,
                closed=today is None or WeeklyMomentumCalculator.is_closed(monday, today),
            )
            previous = (monday, outcome)
            results.append(previous)
        return results


# Module-level builder bound to the shared store
momentum_history_builder = MomentumHistoryBuilder()
