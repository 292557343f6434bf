"""
Momentum service: user actions and dashboard reads.

Each user action is one transaction: lock the habit row, read its records,
score with the calculators, upsert, then add the momentum delta to the
habit's accumulated total. A (habit_id, date) conflict replays the whole
read-modify-write.
"""

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple, TypeVar

from habitmomentum.core.dates import DayLike, parse_day, previous_week_bounds, today_utc, week_bounds
from habitmomentum.core.errors import ConflictError, ValidationError
from habitmomentum.core.logging import log_event
from habitmomentum.core.metrics import habit_record_writes_total
from habitmomentum.features.habits.service import HabitService, habit_service
from habitmomentum.features.momentum.daily import DailyMomentumCalculator
from habitmomentum.features.momentum.history import MomentumHistoryBuilder
from habitmomentum.features.momentum.weekly import WeeklyMomentumCalculator
from habitmomentum.features.records.store import RecordStore, record_store
from habitmomentum.models.habit import Habit, HabitRecord
from habitmomentum.models.momentum import MomentumPoint

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MomentumService:
    MAX_ATTEMPTS = 3

    def __init__(self, store: Optional[RecordStore] = None, habits: Optional[HabitService] = None):
        self.store = store or record_store
        self.habits = habits or habit_service
        self.history = MomentumHistoryBuilder(self.store)

    # ============ Writes ============

    def _run_with_retry(self, action: str, habit_id: str, work: Callable[..., T]) -> T:
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with self.store.transaction() as session:
                    return work(session)
            except ConflictError:
                if attempt == self.MAX_ATTEMPTS:
                    log_event(
                        "error",
                        f"{action}.conflict_exhausted",
                        habit_id=habit_id,
                        event_type=action,
                        error_code="conflict",
                        extra={"attempts": attempt},
                    )
                    raise
                log_event(
                    "warning",
                    f"{action}.conflict_retry",
                    habit_id=habit_id,
                    event_type=action,
                    extra={"attempt": attempt},
                )
        raise ConflictError(f"{action} did not complete")

    def _resolve_day(self, on_date: Optional[DayLike]) -> date:
        today = today_utc()
        day = parse_day(on_date) if on_date is not None else today
        if day > today:
            raise ValidationError("cannot track a future date")
        return day

    def _trackable_habit(self, user_id: str, habit_id: str, kind: str) -> Habit:
        habit = self.habits.require_owned_habit(user_id, habit_id)
        if habit.is_archived:
            raise ValidationError("archived habits cannot be tracked")
        if habit.kind != kind:
            raise ValidationError(f"habit is {habit.kind}, not {kind}")
        return habit

    def _mirror_misses(self, habit_id: str, through: date, miss_streak: int, session) -> None:
        """Copy the miss streak onto the habit when ``through`` is its latest period."""
        latest = self.store.get_latest_record_date(habit_id, session=session)
        if latest is None or latest <= through.isoformat():
            self.store.set_consecutive_misses(habit_id, miss_streak, session=session)

    def track_daily(
        self,
        user_id: str,
        habit_id: str,
        completed: bool,
        on_date: Optional[DayLike] = None,
    ) -> HabitRecord:
        """
        Record a daily habit as done (or not) on ``on_date`` (default today).

        Raises:
            OwnershipError: habit missing or not owned by user_id
            ValidationError: wrong kind, archived habit, bad or future date
            ConflictError: concurrent writers still colliding after retries
        """
        day = self._resolve_day(on_date)
        self._trackable_habit(user_id, habit_id, "daily")

        def work(session) -> Tuple[HabitRecord, int]:
            self.store.lock_habit(habit_id, session)
            existing = self.store.get_record(habit_id, day, session=session)
            prior = self.store.get_most_recent_record_before(habit_id, day, session=session)
            outcome = DailyMomentumCalculator.calculate(prior, completed, day)

            record = self.store.upsert_record(
                habit_id,
                user_id,
                day,
                completed=1 if completed else 0,
                momentum=outcome.momentum,
                miss_streak=outcome.miss_streak,
                session=session,
            )
            delta = outcome.momentum - (existing.momentum if existing else 0)
            self.store.adjust_accumulated_momentum(habit_id, delta, session=session)
            self._mirror_misses(habit_id, day, outcome.miss_streak, session)
            return record, delta

        record, delta = self._run_with_retry("momentum.track_daily", habit_id, work)
        habit_record_writes_total.inc({"kind": "daily", "source": "user"})
        log_event(
            "info",
            "momentum.track_daily",
            user_id=user_id,
            habit_id=habit_id,
            event_type="momentum.track_daily",
            extra={"date": record.date, "completed": record.completed, "momentum": record.momentum, "delta": delta},
        )
        return record

    def toggle_weekly(self, user_id: str, habit_id: str, on_date: Optional[DayLike] = None) -> HabitRecord:
        """
        Flip the completion for ``on_date`` (default today) and re-score its week.

        The week in progress is scored without the miss penalty; the sweep
        applies it once the week has closed. Edits to past weeks score them
        as closed.

        All records of the week are aligned to the new week value so that any
        one of them reports the week's momentum.
        """
        day = self._resolve_day(on_date)
        habit = self._trackable_habit(user_id, habit_id, "weekly")
        week_start, week_end = week_bounds(day)
        closed = WeeklyMomentumCalculator.is_closed(week_start, today_utc())
        prev_start, _ = previous_week_bounds(day)
        day_str = day.isoformat()

        def work(session) -> Tuple[HabitRecord, int]:
            self.store.lock_habit(habit_id, session)
            window = self.store.get_records_in_range(habit_id, prev_start, week_end, session=session)
            current = [r for r in window if r.date >= week_start.isoformat()]
            old_value = current[-1].momentum if current else 0

            existing = next((r for r in current if r.date == day_str), None)
            new_completed = 0 if existing is not None and existing.is_completed else 1

            scored = [r for r in window if r.date != day_str]
            scored.append(HabitRecord(id="", habit_id=habit_id, user_id=user_id, date=day_str, completed=new_completed))
            prior = self.store.get_most_recent_record_before(habit_id, week_start, session=session)
            outcome = WeeklyMomentumCalculator.evaluate(habit, scored, week_start, prior, closed=closed)

            record = self.store.upsert_record(
                habit_id,
                user_id,
                day,
                completed=new_completed,
                momentum=outcome.momentum,
                miss_streak=outcome.miss_streak,
                session=session,
            )
            self.store.set_week_momentum(
                habit_id, week_start, week_end, outcome.momentum, outcome.miss_streak, session=session
            )
            delta = outcome.momentum - old_value
            self.store.adjust_accumulated_momentum(habit_id, delta, session=session)
            self._mirror_misses(habit_id, week_end, outcome.miss_streak, session)
            return record, delta

        record, delta = self._run_with_retry("momentum.toggle_weekly", habit_id, work)
        habit_record_writes_total.inc({"kind": "weekly", "source": "user"})
        log_event(
            "info",
            "momentum.toggle_weekly",
            user_id=user_id,
            habit_id=habit_id,
            event_type="momentum.toggle_weekly",
            extra={"date": record.date, "completed": record.completed, "momentum": record.momentum, "delta": delta},
        )
        return record

    def track(self, user_id: str, habit_id: str, completed: Optional[bool] = None, on_date: Optional[DayLike] = None) -> HabitRecord:
        """Dispatch on habit kind: daily sets ``completed``, weekly toggles."""
        habit = self.habits.require_owned_habit(user_id, habit_id)
        if habit.kind == "weekly":
            return self.toggle_weekly(user_id, habit_id, on_date)
        if completed is None:
            raise ValidationError("completed is required for daily habits")
        return self.track_daily(user_id, habit_id, completed, on_date)

    # ============ Reads ============

    def total_momentum(self, user_id: str) -> int:
        """Sum of accumulated momentum over the user's active habits."""
        habits = self.store.get_habits_by_type(user_id=user_id, kind=None, exclude_archived=True)
        return sum(h.accumulated_momentum for h in habits)

    def momentum_history(self, user_id: str, days: int = 30, today: Optional[DayLike] = None) -> List[MomentumPoint]:
        return self.history.build(user_id, days, today)

    def current_momentum(self, habit: Habit, today: Optional[DayLike] = None) -> int:
        """
        Momentum to show for a habit right now.

        Daily: today's record; else a completed yesterday keeps its streak
        value on display; else a preview of today's not-completed score.
        Weekly: the current week's stored value; else the week in progress
        scored from its records so far (no miss penalty yet).
        """
        day = parse_day(today) if today is not None else today_utc()

        if habit.kind == "daily":
            record = self.store.get_record(habit.id, day)
            if record is not None:
                return record.momentum
            yesterday = self.store.get_record(habit.id, day - timedelta(days=1))
            if yesterday is not None and yesterday.is_completed:
                return yesterday.momentum
            prior = self.store.get_most_recent_record_before(habit.id, day)
            return DailyMomentumCalculator.calculate(prior, False, day).momentum

        week_start, week_end = week_bounds(day)
        prev_start, _ = previous_week_bounds(day)
        window = self.store.get_records_in_range(habit.id, prev_start, week_end)
        current = [r for r in window if r.date >= week_start.isoformat()]
        if current:
            return current[-1].momentum
        prior = self.store.get_most_recent_record_before(habit.id, week_start)
        return WeeklyMomentumCalculator.evaluate(habit, window, week_start, prior, closed=False).momentum

    def habit_momentum(self, user_id: str, habit_id: str, today: Optional[DayLike] = None) -> dict:
        habit = self.habits.require_owned_habit(user_id, habit_id)
        return {
            "habitId": habit.id,
            "kind": habit.kind,
            "currentMomentum": self.current_momentum(habit, today),
            "accumulatedMomentum": habit.accumulated_momentum,
            "consecutiveMisses": habit.consecutive_misses,
        }

    def habit_momentum_history(
        self,
        user_id: str,
        habit_id: str,
        periods: Optional[int] = None,
        today: Optional[DayLike] = None,
    ) -> List[MomentumPoint]:
        """Per-day (daily) or per-week (weekly) momentum of one owned habit."""
        habit = self.habits.require_owned_habit(user_id, habit_id)
        return self.history.build_for_habit(habit, periods, today)

    # ============ Maintenance ============

    def repair_accumulated_momentum(self, habit_id: str) -> Tuple[int, int]:
        """Recompute a habit's cached total from its records. Returns (old, new)."""
        def work(session) -> Tuple[int, int]:
            habit = self.store.lock_habit(habit_id, session)
            records = self.store.get_records_in_range(habit_id, date.min, date.max, session=session)
            new_total = MomentumHistoryBuilder.accumulated_total(habit, records)
            if new_total != habit.accumulated_momentum:
                self.store.set_accumulated_momentum(habit_id, new_total, session=session)
            return habit.accumulated_momentum, new_total

        old, new = self._run_with_retry("momentum.repair", habit_id, work)
        if old != new:
            log_event(
                "warning",
                "momentum.repaired",
                habit_id=habit_id,
                event_type="momentum.repair",
                extra={"old": old, "new": new},
            )
        return old, new


# Singleton instance
momentum_service = MomentumService()
