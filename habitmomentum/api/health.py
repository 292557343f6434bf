"""
Health endpoints for operational monitoring. No secrets are exposed.
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from habitmomentum.core.database import check_connection, get_engine
from habitmomentum.core.logging import latency_bucket_ms

logger = logging.getLogger("habitmomentum")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = ["users", "habits", "habit_records"]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    start = time.perf_counter()
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    try:
        inspector = inspect(get_engine())
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    except Exception as e:
        logger.error(f"[readyz] table probe failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    latency_ms = (time.perf_counter() - start) * 1000
    return {"status": "ok", "latency_bucket": latency_bucket_ms(latency_ms)}
