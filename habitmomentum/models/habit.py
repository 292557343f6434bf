"""
Habit domain models.

A habit belongs to exactly one user and is scored either per day or per
Monday-Sunday week. Records are keyed by (habit_id, date).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional

HabitKind = Literal["daily", "weekly"]

HABIT_KINDS = ("daily", "weekly")
DEFAULT_WEEKLY_TARGET = 2
MIN_WEEKLY_TARGET = 2


@dataclass
class Habit:
    id: str
    user_id: str
    name: str
    kind: HabitKind
    target_count: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    accumulated_momentum: int = 0
    consecutive_misses: int = 0

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def effective_target(self) -> int:
        """Weekly completions needed for the target bonus (1 for daily habits)."""
        if self.kind == "daily":
            return 1
        return self.target_count or DEFAULT_WEEKLY_TARGET

    @property
    def created_on(self) -> Optional[date]:
        return self.created_at.date() if self.created_at else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind,
            "targetCount": self.effective_target,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "archivedAt": self.archived_at.isoformat() if self.archived_at else None,
            "accumulatedMomentum": self.accumulated_momentum,
            "consecutiveMisses": self.consecutive_misses,
        }


@dataclass
class HabitRecord:
    """
    One day's tracking state for a habit.

    Attributes:
        date: ISO date YYYY-MM-DD (no time component)
        completed: completions on that date (daily habits use 0/1)
        momentum: value computed for the day, or for the week the date belongs to
        miss_streak: consecutive missed periods ending with this record
    """

    id: str
    habit_id: str
    user_id: str
    date: str
    completed: int = 0
    momentum: int = 0
    miss_streak: int = 0
    created_at: Optional[datetime] = None

    @property
    def day(self) -> date:
        return date.fromisoformat(self.date)

    @property
    def is_completed(self) -> bool:
        return self.completed > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "habitId": self.habit_id,
            "date": self.date,
            "completed": self.completed,
            "momentum": self.momentum,
            "missStreak": self.miss_streak,
        }
