"""
Weekly momentum calculator.

Weeks run Monday through Sunday. A week's value is its completion count plus
a bonus when the target is reached, or plus a miss penalty when it is not:

    target reached:               completions + 10
    target reached twice running: completions + 20, capped at 40
    target missed (#1, #2, #3, #4+): completions + 0 / -10 / -20 / -30

The miss penalty belongs to a closed week. A week still in progress that has
not reached its target is worth its completions at face value and carries
the miss count of the weeks before it.

The miss count is carried explicitly on each record (``miss_streak``) rather
than inferred from stored momentum values.
"""

from datetime import timedelta
from typing import Iterable, Optional, Union

from habitmomentum.core.dates import DayLike, parse_day, week_bounds
from habitmomentum.core.errors import ValidationError
from habitmomentum.models.habit import DEFAULT_WEEKLY_TARGET, Habit, HabitRecord
from habitmomentum.models.momentum import WeeklyOutcome


class WeeklyMomentumCalculator:
    """Pure deterministic weekly scoring."""

    TARGET_BONUS = 10
    CONSECUTIVE_BONUS = 10
    BONUS_CAP = 40
    MISS_LADDER = (0, -10, -20, -30)

    @staticmethod
    def miss_penalty(miss_streak: int) -> int:
        """Penalty for the ``miss_streak``-th consecutive missed week."""
        if miss_streak <= 0:
            return 0
        ladder = WeeklyMomentumCalculator.MISS_LADDER
        return ladder[min(miss_streak, len(ladder)) - 1]

    @staticmethod
    def calculate(
        target_count: Optional[int],
        completions: int,
        previous_week_target_reached: bool,
        prior_miss_streak: int = 0,
        closed: bool = True,
    ) -> WeeklyOutcome:
        """
        Score one week.

        Args:
            target_count: completions needed for the bonus (None -> 2)
            completions: sum of raw completion counts in the week
            previous_week_target_reached: whether the week before met its target
            prior_miss_streak: consecutive missed weeks ending with the week before
            closed: False while the week is still in progress

        Returns:
            WeeklyOutcome
        """
        if completions < 0:
            raise ValidationError("completions must be non-negative")
        if prior_miss_streak < 0:
            raise ValidationError("prior_miss_streak must be non-negative")

        target = target_count or DEFAULT_WEEKLY_TARGET
        calc = WeeklyMomentumCalculator

        if completions >= target:
            momentum = completions + calc.TARGET_BONUS
            if previous_week_target_reached:
                momentum = min(momentum + calc.CONSECUTIVE_BONUS, calc.BONUS_CAP)
            return WeeklyOutcome(
                momentum=momentum,
                completions=completions,
                target_reached=True,
                miss_streak=0,
            )

        if not closed:
            return WeeklyOutcome(
                momentum=completions,
                completions=completions,
                target_reached=False,
                miss_streak=0 if previous_week_target_reached else prior_miss_streak,
            )

        miss_streak = 1 if previous_week_target_reached else prior_miss_streak + 1
        return WeeklyOutcome(
            momentum=completions + calc.miss_penalty(miss_streak),
            completions=completions,
            target_reached=False,
            miss_streak=miss_streak,
        )

    @staticmethod
    def completions_between(records: Iterable[HabitRecord], start: DayLike, end: DayLike) -> int:
        """Sum of raw ``completed`` values for records dated in [start, end]."""
        lo, hi = parse_day(start).isoformat(), parse_day(end).isoformat()
        return sum(r.completed for r in records if lo <= r.date <= hi)

    @staticmethod
    def evaluate(
        habit_or_target: Union[Habit, int, None],
        records: Iterable[HabitRecord],
        week_start: DayLike,
        prior_record: Optional[HabitRecord] = None,
        closed: bool = True,
    ) -> WeeklyOutcome:
        """
        Score the week containing ``week_start`` from raw records.

        ``records`` must cover that week and the week before it; anything
        outside the two weeks is ignored. ``prior_record`` is the most recent
        record before the week and supplies the carried miss count. Pass
        ``closed=False`` for the week in progress.
        """
        if isinstance(habit_or_target, Habit):
            target = habit_or_target.effective_target
        else:
            target = habit_or_target or DEFAULT_WEEKLY_TARGET

        records = list(records)
        start, end = week_bounds(week_start)
        prev_start, prev_end = start - timedelta(days=7), start - timedelta(days=1)

        calc = WeeklyMomentumCalculator
        completions = calc.completions_between(records, start, end)
        previous_reached = calc.completions_between(records, prev_start, prev_end) >= target

        prior_miss_streak = 0
        if prior_record is not None:
            if prior_record.date >= start.isoformat():
                raise ValidationError(
                    f"prior record {prior_record.date} is not before week {start.isoformat()}"
                )
            prior_miss_streak = prior_record.miss_streak

        return calc.calculate(target, completions, previous_reached, prior_miss_streak, closed=closed)

    @staticmethod
    def is_closed(week_start: DayLike, today: DayLike) -> bool:
        """A week is closed once ``today`` is past its Sunday."""
        _, sunday = week_bounds(week_start)
        return parse_day(today) > sunday
