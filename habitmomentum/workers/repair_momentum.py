"""
Accumulated-momentum repair job.

Recomputes each habit's cached total from its stored records and, with
--verify, reports records whose stored momentum disagrees with a replay of
their raw completions.
"""
import argparse
import logging
from datetime import date
from typing import List, Optional

from habitmomentum.core.config import settings
from habitmomentum.core.dates import today_utc
from habitmomentum.core.logging import configure_logging
from habitmomentum.features.momentum.history import MomentumHistoryBuilder, week_values
from habitmomentum.features.momentum.service import momentum_service
from habitmomentum.features.records.store import record_store
from habitmomentum.models.habit import Habit

logger = logging.getLogger("habitmomentum.workers.repair_momentum")


def replay_drift(habit: Habit) -> int:
    """Number of stored periods whose momentum differs from a full replay."""
    records = record_store.get_records_in_range(habit.id, date.min, date.max)
    if habit.kind == "daily":
        replayed = MomentumHistoryBuilder.replay_daily(records)
        return sum(1 for stored, fresh in zip(records, replayed) if stored.momentum != fresh.momentum)

    stored = dict(week_values(records))
    replayed = MomentumHistoryBuilder.replay_weekly(records, habit.target_count, today_utc())
    return sum(1 for monday, outcome in replayed if stored.get(monday) != outcome.momentum)


def repair_momentum(*, habit_id: Optional[str] = None, verify: bool = False) -> dict:
    if habit_id:
        habits: List[Habit] = [record_store.get_habit(habit_id)]
    else:
        habits = record_store.get_habits_by_type(user_id=None, kind=None, exclude_archived=False)

    repaired = 0
    drifted = 0
    errors = 0
    for habit in habits:
        try:
            old, new = momentum_service.repair_accumulated_momentum(habit.id)
            if old != new:
                repaired += 1
            if verify and replay_drift(habit):
                drifted += 1
                logger.warning("[repair] stored momentum differs from replay", extra={"habit_id": habit.id})
        except Exception as e:
            errors += 1
            logger.error(f"[repair] habit {habit.id} failed: {e}", extra={"habit_id": habit.id})

    stats = {"checked": len(habits), "repaired": repaired, "errors": errors}
    if verify:
        stats["drifted"] = drifted
    logger.info("[repair] accumulated momentum repair finished", extra=stats)
    return stats


def main(argv=None) -> dict:
    parser = argparse.ArgumentParser(description="Recompute cached accumulated momentum from records")
    parser.add_argument("--habit-id", default=None)
    parser.add_argument("--verify", action="store_true", help="Also replay raw completions and report drift")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    return repair_momentum(habit_id=args.habit_id, verify=args.verify)


if __name__ == "__main__":
    print(main())
