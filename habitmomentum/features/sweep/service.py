"""
Missed-habit sweep.

Scheduled pass that closes out periods nobody tracked:

- daily pass: every active daily habit without a record for yesterday gets a
  completed=0 record scored by the daily not-completed branch. Records
  already written after that day are re-scored against it.
- weekly pass: every active weekly habit that missed its target in the last
  full Monday-Sunday week gets that week scored and written on its Sunday.

Habits are independent units of work. A failure on one habit is logged and
counted; the pass keeps going. Failing to enumerate habits aborts the pass.
"""

import logging
import time
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from habitmomentum.core.config import settings
from habitmomentum.core.dates import DayLike, last_completed_week, parse_day, today_utc
from habitmomentum.core.logging import log_event
from habitmomentum.core.metrics import (
    habit_record_writes_total,
    sweep_habit_errors_total,
    sweep_habits_processed_total,
    mark_sweep_finished,
    sweep_slow_habits_total,
)
from habitmomentum.features.momentum.daily import DailyMomentumCalculator
from habitmomentum.features.momentum.weekly import WeeklyMomentumCalculator
from habitmomentum.features.records.store import RecordStore, record_store
from habitmomentum.models.habit import Habit, HabitRecord
from habitmomentum.models.momentum import SweepResult

logger = logging.getLogger(__name__)


class MissedHabitSweep:
    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or record_store

    # ============ Per-habit work ============

    def _apply_daily(self, habit: Habit, day: date) -> bool:
        """Write a missed record for ``day``. False when the day is already recorded."""
        with self.store.transaction() as session:
            self.store.lock_habit(habit.id, session)
            if self.store.get_record(habit.id, day, session=session) is not None:
                return False

            prior = self.store.get_most_recent_record_before(habit.id, day, session=session)
            outcome = DailyMomentumCalculator.calculate(prior, False, day)
            inserted = self.store.upsert_record(
                habit.id,
                habit.user_id,
                day,
                completed=0,
                momentum=outcome.momentum,
                miss_streak=outcome.miss_streak,
                session=session,
            )
            self.store.adjust_accumulated_momentum(habit.id, outcome.momentum, session=session)
            latest = self._rescore_following(habit, inserted, session)
            self.store.set_consecutive_misses(habit.id, latest.miss_streak, session=session)
        return True

    def _rescore_following(self, habit: Habit, filled: HabitRecord, session) -> HabitRecord:
        """
        Re-score records dated after a backfilled day, in order.

        A record tracked for today before the sweep closed yesterday was
        scored against an older prior. Returns the habit's latest record.
        """
        later = self.store.get_records_in_range(
            habit.id, filled.day + timedelta(days=1), date.max, session=session
        )
        prior = filled
        for record in later:
            outcome = DailyMomentumCalculator.calculate(prior, record.is_completed, record.date)
            if (outcome.momentum, outcome.miss_streak) != (record.momentum, record.miss_streak):
                self.store.upsert_record(
                    habit.id,
                    habit.user_id,
                    record.date,
                    completed=record.completed,
                    momentum=outcome.momentum,
                    miss_streak=outcome.miss_streak,
                    session=session,
                )
                self.store.adjust_accumulated_momentum(
                    habit.id, outcome.momentum - record.momentum, session=session
                )
            prior = replace(record, momentum=outcome.momentum, miss_streak=outcome.miss_streak)
        return prior

    def _apply_weekly(self, habit: Habit, week_start: date, week_end: date) -> bool:
        """Score a missed week onto its Sunday. False when nothing needed writing."""
        with self.store.transaction() as session:
            self.store.lock_habit(habit.id, session)
            window = self.store.get_records_in_range(
                habit.id, week_start - timedelta(days=7), week_end, session=session
            )
            prior = self.store.get_most_recent_record_before(habit.id, week_start, session=session)
            outcome = WeeklyMomentumCalculator.evaluate(habit, window, week_start, prior)
            if outcome.target_reached:
                return False

            current = [r for r in window if r.date >= week_start.isoformat()]
            closing = next((r for r in current if r.date == week_end.isoformat()), None)
            if closing is not None and all(
                r.momentum == outcome.momentum and r.miss_streak == outcome.miss_streak for r in current
            ):
                return False

            old_value = current[-1].momentum if current else 0
            self.store.upsert_record(
                habit.id,
                habit.user_id,
                week_end,
                completed=closing.completed if closing is not None else 0,
                momentum=outcome.momentum,
                miss_streak=outcome.miss_streak,
                session=session,
            )
            self.store.set_week_momentum(
                habit.id, week_start, week_end, outcome.momentum, outcome.miss_streak, session=session
            )
            self.store.adjust_accumulated_momentum(habit.id, outcome.momentum - old_value, session=session)
            latest = self.store.get_latest_record_date(habit.id, session=session)
            if latest is None or latest <= week_end.isoformat():
                self.store.set_consecutive_misses(habit.id, outcome.miss_streak, session=session)
        return True

    # ============ Passes ============

    def _sweep(self, pass_name: str, kind: str, period_end: date, apply, period: str) -> SweepResult:
        result = SweepResult(period=period)
        labels = {"pass": pass_name}
        soft_timeout_ms = settings.SWEEP_HABIT_SOFT_TIMEOUT_MS

        # Enumeration failures propagate to the caller
        habits = self.store.get_habits_by_type(user_id=None, kind=kind, exclude_archived=True)
        logger.info(f"[sweep] {pass_name} pass for {period}: {len(habits)} candidate habits")

        for habit in habits:
            if habit.created_on is not None and habit.created_on > period_end:
                result.skipped += 1
                continue

            started = time.monotonic()
            try:
                if apply(habit):
                    result.processed += 1
                    sweep_habits_processed_total.inc(labels)
                    habit_record_writes_total.inc({"kind": kind, "source": "sweep"})
                else:
                    result.skipped += 1
            except Exception as e:
                result.errors += 1
                sweep_habit_errors_total.inc(labels)
                log_event(
                    "error",
                    f"sweep.{pass_name}.habit_failed",
                    user_id=habit.user_id,
                    habit_id=habit.id,
                    event_type=f"sweep.{pass_name}",
                    error_code=getattr(e, "code", e.__class__.__name__),
                    extra={"period": period, "error": e},
                )
            finally:
                elapsed_ms = (time.monotonic() - started) * 1000
                if elapsed_ms > soft_timeout_ms:
                    sweep_slow_habits_total.inc(labels)
                    log_event(
                        "warning",
                        f"sweep.{pass_name}.habit_slow",
                        habit_id=habit.id,
                        event_type=f"sweep.{pass_name}",
                        extra={"elapsed_ms": round(elapsed_ms, 1), "soft_timeout_ms": soft_timeout_ms},
                    )

        mark_sweep_finished(pass_name)
        log_event(
            "info",
            f"sweep.{pass_name}.complete",
            event_type=f"sweep.{pass_name}",
            extra={
                "period": period,
                "processed": result.processed,
                "errors": result.errors,
                "skipped": result.skipped,
            },
        )
        return result

    def run_daily(self, today: Optional[DayLike] = None) -> SweepResult:
        """Close out yesterday for every active daily habit."""
        current = parse_day(today) if today is not None else today_utc()
        yesterday = current - timedelta(days=1)
        return self._sweep(
            "daily",
            "daily",
            yesterday,
            lambda habit: self._apply_daily(habit, yesterday),
            yesterday.isoformat(),
        )

    def run_weekly(self, today: Optional[DayLike] = None) -> SweepResult:
        """Close out the last full week before ``today``'s week."""
        current = parse_day(today) if today is not None else today_utc()
        week_start, week_end = last_completed_week(current)
        return self._sweep(
            "weekly",
            "weekly",
            week_end,
            lambda habit: self._apply_weekly(habit, week_start, week_end),
            f"{week_start.isoformat()}..{week_end.isoformat()}",
        )

    def run(self, today: Optional[DayLike] = None, force_weekly: bool = False) -> Dict[str, Any]:
        """
        Scheduler entry point: daily pass always, weekly pass on the
        configured week-start day or when forced.
        """
        current = parse_day(today) if today is not None else today_utc()
        started_at = datetime.now(timezone.utc)

        daily = self.run_daily(current)
        run_weekly = force_weekly or current.weekday() == settings.WEEKLY_SWEEP_WEEKDAY
        weekly = self.run_weekly(current) if run_weekly else None

        return {
            "date": current.isoformat(),
            "daily": daily.to_dict(),
            "weekly": weekly.to_dict() if weekly is not None else None,
            "weeklySkipped": not run_weekly,
            "startedAt": started_at.isoformat(),
        }


# Singleton instance
missed_habit_sweep = MissedHabitSweep()
