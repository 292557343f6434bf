"""
Habit service: habit lifecycle and ownership.

Every user-triggered path resolves habits through ``require_owned_habit`` so
a missing habit and someone else's habit are indistinguishable to the caller.
"""

import logging
from datetime import datetime
from typing import List, Optional

from habitmomentum.core.errors import NotFoundError, OwnershipError, ValidationError
from habitmomentum.core.logging import log_event
from habitmomentum.features.records.store import RecordStore, record_store
from habitmomentum.models.habit import HABIT_KINDS, MIN_WEEKLY_TARGET, DEFAULT_WEEKLY_TARGET, Habit

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
ACCESS_DENIED = "Habit not found or access denied"


class HabitService:
    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or record_store

    def ensure_user(self, user_id: str, display_name: Optional[str] = None) -> None:
        """Provision the user row on first sight. Idempotent."""
        self.store.ensure_user(user_id, display_name=display_name)

    def create_habit(
        self,
        user_id: str,
        name: str,
        kind: str,
        target_count: Optional[int] = None,
        description: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Habit:
        """
        Create a habit for ``user_id``.

        Daily habits always store a target of 1; weekly habits default to 2
        and may not go below it.

        Raises:
            ValidationError: blank/oversized name, unknown kind, weekly target < 2
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("name is required")
        if len(clean_name) > MAX_NAME_LENGTH:
            raise ValidationError(f"name must be at most {MAX_NAME_LENGTH} characters")
        if kind not in HABIT_KINDS:
            raise ValidationError(f"kind must be one of {', '.join(HABIT_KINDS)}")

        if kind == "daily":
            target = 1
        else:
            target = DEFAULT_WEEKLY_TARGET if target_count is None else target_count
            if target < MIN_WEEKLY_TARGET:
                raise ValidationError(f"weekly target must be at least {MIN_WEEKLY_TARGET}")

        self.store.ensure_user(user_id)
        habit = self.store.create_habit(
            user_id=user_id,
            name=clean_name,
            kind=kind,
            target_count=target,
            description=(description or "").strip() or None,
            created_at=created_at,
        )
        log_event(
            "info",
            "habit.created",
            user_id=user_id,
            habit_id=habit.id,
            event_type="habit.created",
            extra={"kind": kind, "target_count": target},
        )
        return habit

    def list_habits(self, user_id: str, kind: Optional[str] = None) -> List[Habit]:
        """Active habits for a user, oldest first."""
        if kind is not None and kind not in HABIT_KINDS:
            raise ValidationError(f"kind must be one of {', '.join(HABIT_KINDS)}")
        return self.store.get_habits_by_type(user_id=user_id, kind=kind, exclude_archived=True)

    def require_owned_habit(self, user_id: str, habit_id: str) -> Habit:
        """
        Resolve a habit for ``user_id``.

        Raises:
            OwnershipError: habit missing or owned by someone else (same message)
        """
        try:
            habit = self.store.get_habit(habit_id)
        except NotFoundError:
            raise OwnershipError(ACCESS_DENIED)
        if habit.user_id != user_id:
            logger.warning(f"[habits] user {user_id} denied access to habit {habit_id}")
            raise OwnershipError(ACCESS_DENIED)
        return habit

    def archive_habit(self, user_id: str, habit_id: str) -> Habit:
        """Stop a habit from accruing. Archiving twice is a no-op."""
        habit = self.require_owned_habit(user_id, habit_id)
        if not habit.is_archived:
            self.store.archive_habit(habit_id)
            log_event("info", "habit.archived", user_id=user_id, habit_id=habit_id, event_type="habit.archived")
        return self.store.get_habit(habit_id)


# Singleton instance
habit_service = HabitService()
