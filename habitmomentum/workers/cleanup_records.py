"""Retention cleanup for old habit records."""
import argparse
import logging
from datetime import timedelta

from habitmomentum.core.config import settings
from habitmomentum.core.dates import today_utc
from habitmomentum.core.logging import configure_logging
from habitmomentum.features.records.store import record_store

logger = logging.getLogger("habitmomentum.cleanup.records")


def cleanup_old_records(
    *,
    retention_days: int | None = None,
    dry_run: bool | None = None,
    today=None,
) -> dict:
    """Delete records older than the retention window.

    Deleting records does not touch accumulated momentum; totals keep the
    contribution of pruned history.
    """
    days = retention_days if retention_days is not None else int(settings.RECORD_RETENTION_DAYS)
    dry = dry_run if dry_run is not None else bool(settings.RECORD_CLEANUP_DRY_RUN)
    cutoff = (today or today_utc()) - timedelta(days=days)

    candidates, deleted = record_store.delete_records_before(cutoff, dry_run=dry)

    logger.info(
        "[cleanup] habit record retention",
        extra={"retention_days": days, "dry_run": dry, "candidates": candidates, "deleted": deleted},
    )
    return {
        "retention_days": days,
        "dry_run": dry,
        "cutoff": cutoff.isoformat(),
        "candidates": candidates,
        "deleted": deleted,
    }


def main(argv=None) -> dict:
    parser = argparse.ArgumentParser(description="Prune habit records past the retention window")
    parser.add_argument("--retention-days", type=int, default=None)
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", dest="dry_run", action="store_true", default=None)
    mode.add_argument("--apply", dest="dry_run", action="store_false")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    return cleanup_old_records(retention_days=args.retention_days, dry_run=args.dry_run)


if __name__ == "__main__":
    print(main())
