"""Scheduled missed-habit sweep (intended around 01:00 UTC daily)."""
import argparse
import logging

from habitmomentum.core.config import settings
from habitmomentum.core.dates import parse_day
from habitmomentum.core.logging import configure_logging
from habitmomentum.features.sweep.service import missed_habit_sweep

logger = logging.getLogger("habitmomentum.workers.missed_habits")


def run_missed_habits(*, today=None, force_weekly: bool = False) -> dict:
    result = missed_habit_sweep.run(today=today, force_weekly=force_weekly)
    logger.info(
        "[sweep] missed-habit run finished",
        extra={
            "date": result["date"],
            "daily": result["daily"],
            "weekly": result["weekly"],
            "weekly_skipped": result["weeklySkipped"],
        },
    )
    return result


def main(argv=None) -> dict:
    parser = argparse.ArgumentParser(description="Penalize habits with no record for the period that just ended")
    parser.add_argument("--date", help="Run as if today were this date (YYYY-MM-DD)")
    parser.add_argument("--force-weekly", action="store_true", help="Run the weekly pass regardless of weekday")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    today = parse_day(args.date) if args.date else None
    return run_missed_habits(today=today, force_weekly=args.force_weekly)


if __name__ == "__main__":
    print(main())
