"""Scheduler trigger for the missed-habit sweep."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from habitmomentum.core.auth import require_cron_secret
from habitmomentum.core.dates import parse_day
from habitmomentum.features.sweep.service import missed_habit_sweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cron", tags=["cron"])


@router.post("/missed-habits", dependencies=[Depends(require_cron_secret)])
def run_missed_habits(
    force_weekly: bool = Query(False),
    date: Optional[str] = Query(None, description="Run as if today were this date (YYYY-MM-DD)"),
):
    today = parse_day(date) if date else None
    result = missed_habit_sweep.run(today=today, force_weekly=force_weekly)
    logger.info(f"[cron] missed-habits sweep finished: {result}")
    return {"success": True, **result}
