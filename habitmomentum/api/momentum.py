from fastapi import APIRouter, Depends, Query

from habitmomentum.core.auth import get_current_user_id
from habitmomentum.core.dates import today_utc
from habitmomentum.features.momentum.service import momentum_service

router = APIRouter(prefix="/v1/momentum", tags=["momentum"])


@router.get("/total")
def get_total_momentum(user_id: str = Depends(get_current_user_id)):
    """Sum of accumulated momentum across the user's active habits."""
    return {"userId": user_id, "totalMomentum": momentum_service.total_momentum(user_id)}


@router.get("/history")
def get_momentum_history(
    days: int = Query(30, description="Number of days, 1..MOMENTUM_HISTORY_MAX_DAYS"),
    user_id: str = Depends(get_current_user_id),
):
    """Per-day cumulative momentum, oldest first."""
    today = today_utc()
    points = momentum_service.momentum_history(user_id, days=days, today=today)
    return {
        "userId": user_id,
        "days": days,
        "through": today.isoformat(),
        "history": [p.to_dict() for p in points],
    }
