"""
Daily momentum calculator.

Pure and deterministic: the outcome depends only on the most recent prior
record and whether the habit was completed on the day being scored.

Ladder:
- completed, prior day completed: streak continues, +1 up to 7
- completed otherwise: fresh start at 1
- missed after a completion (or with no history): 0
- further consecutive misses: -1, -2, -3, floor at -3

A gap of several days between records is scored as a single step from the
last known record.
"""

from datetime import timedelta
from typing import Optional

from habitmomentum.core.dates import DayLike, parse_day
from habitmomentum.core.errors import ValidationError
from habitmomentum.models.habit import HabitRecord
from habitmomentum.models.momentum import DailyOutcome


class DailyMomentumCalculator:
    """Pure deterministic daily scoring."""

    STREAK_CAP = 7
    PENALTY_FLOOR = -3

    @staticmethod
    def calculate(
        prior_record: Optional[HabitRecord],
        completed: bool,
        on_date: DayLike,
    ) -> DailyOutcome:
        """
        Score one day of a daily habit.

        Args:
            prior_record: most recent record strictly before ``on_date`` (or None)
            completed: whether the habit was done on ``on_date``
            on_date: the day being scored (date or YYYY-MM-DD)

        Returns:
            DailyOutcome with the day's momentum and its miss streak

        Raises:
            ValidationError: malformed date, or a prior record not before ``on_date``
        """
        day = parse_day(on_date)
        if prior_record is not None and parse_day(prior_record.date) >= day:
            raise ValidationError(
                f"prior record {prior_record.date} is not before {day.isoformat()}"
            )

        if completed:
            if (
                prior_record is not None
                and prior_record.is_completed
                and parse_day(prior_record.date) == day - timedelta(days=1)
            ):
                momentum = min(prior_record.momentum + 1, DailyMomentumCalculator.STREAK_CAP)
            else:
                momentum = 1
            return DailyOutcome(momentum=momentum, miss_streak=0)

        if prior_record is None or prior_record.is_completed:
            return DailyOutcome(momentum=0, miss_streak=1)

        miss_streak = DailyMomentumCalculator._prior_misses(prior_record) + 1
        momentum = max(-(miss_streak - 1), DailyMomentumCalculator.PENALTY_FLOOR)
        return DailyOutcome(momentum=momentum, miss_streak=miss_streak)

    @staticmethod
    def _prior_misses(prior_record: HabitRecord) -> int:
        # Rows written before miss_streak existed carry 0; rebuild from the ladder
        if prior_record.miss_streak > 0:
            return prior_record.miss_streak
        return 1 - min(prior_record.momentum, 0)
