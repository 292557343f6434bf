from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from habitmomentum.core.auth import get_current_user_id
from habitmomentum.core.dates import today_utc
from habitmomentum.features.habits.service import habit_service
from habitmomentum.features.momentum.service import momentum_service

router = APIRouter(prefix="/v1/habits", tags=["habits"])


class CreateHabitRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    kind: Literal["daily", "weekly"]
    target_count: Optional[int] = Field(None, ge=1)
    description: Optional[str] = Field(None, max_length=2000)


class TrackRequest(BaseModel):
    completed: Optional[bool] = None
    date: Optional[str] = Field(None, description="YYYY-MM-DD, defaults to today (UTC)")


@router.post("", status_code=201)
def create_habit(body: CreateHabitRequest, user_id: str = Depends(get_current_user_id)):
    habit = habit_service.create_habit(
        user_id=user_id,
        name=body.name,
        kind=body.kind,
        target_count=body.target_count,
        description=body.description,
    )
    return {"habit": habit.to_dict()}


@router.get("")
def list_habits(
    kind: Optional[Literal["daily", "weekly"]] = Query(None),
    user_id: str = Depends(get_current_user_id),
):
    """Active habits with the momentum currently shown for each."""
    habits = habit_service.list_habits(user_id, kind=kind)
    items = []
    for habit in habits:
        item = habit.to_dict()
        item["currentMomentum"] = momentum_service.current_momentum(habit)
        items.append(item)
    return {"habits": items}


@router.post("/{habit_id}/archive")
def archive_habit(habit_id: str, user_id: str = Depends(get_current_user_id)):
    habit = habit_service.archive_habit(user_id, habit_id)
    return {"habit": habit.to_dict()}


@router.post("/{habit_id}/track")
def track_habit(
    habit_id: str,
    body: Optional[TrackRequest] = None,
    user_id: str = Depends(get_current_user_id),
):
    """Daily habits set ``completed`` for the date; weekly habits toggle it."""
    body = body or TrackRequest()
    record = momentum_service.track(user_id, habit_id, completed=body.completed, on_date=body.date)
    habit = habit_service.require_owned_habit(user_id, habit_id)
    return {"record": record.to_dict(), "habit": habit.to_dict()}


@router.get("/{habit_id}/momentum")
def get_habit_momentum(habit_id: str, user_id: str = Depends(get_current_user_id)):
    return momentum_service.habit_momentum(user_id, habit_id)


@router.get("/{habit_id}/momentum/history")
def get_habit_momentum_history(
    habit_id: str,
    periods: Optional[int] = Query(None, description="Days (daily, default 7) or weeks (weekly, default 8)"),
    user_id: str = Depends(get_current_user_id),
):
    """The habit's own momentum per period, oldest first."""
    today = today_utc()
    points = momentum_service.habit_momentum_history(user_id, habit_id, periods=periods, today=today)
    return {
        "habitId": habit_id,
        "through": today.isoformat(),
        "history": [p.to_dict() for p in points],
    }
