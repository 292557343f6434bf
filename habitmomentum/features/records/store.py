"""
Record store adapter.

Named, parameterized operations over the users / habits / habit_records
tables. Every method accepts an optional ``session`` so callers can compose
several operations into one transaction; without one, each call runs in its
own short transaction.

SQLAlchemy failures surface as ``StoreError``; a violated natural key
(habit_id, date) surfaces as ``ConflictError`` so callers can retry.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from habitmomentum.core.database import get_db_session, habit_records, habits, users
from habitmomentum.core.dates import DayLike, format_day
from habitmomentum.core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from habitmomentum.models.habit import Habit, HabitKind, HabitRecord


def _habit_from_row(row) -> Habit:
    return Habit(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        kind=row.kind,
        target_count=row.target_count,
        description=row.description,
        created_at=row.created_at,
        archived_at=row.archived_at,
        accumulated_momentum=row.accumulated_momentum or 0,
        consecutive_misses=row.consecutive_misses or 0,
    )


def _record_from_row(row) -> HabitRecord:
    return HabitRecord(
        id=row.id,
        habit_id=row.habit_id,
        user_id=row.user_id,
        date=row.date,
        completed=row.completed,
        momentum=row.momentum,
        miss_streak=row.miss_streak or 0,
        created_at=row.created_at,
    )


class RecordStore:
    """Persistence adapter consumed by the momentum engine and the sweep."""

    @contextmanager
    def _scope(self, session=None):
        try:
            if session is not None:
                yield session
            else:
                with get_db_session() as owned:
                    yield owned
        except IntegrityError as e:
            raise ConflictError(f"habit record conflict: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"record store unavailable: {e.__class__.__name__}") from e

    @contextmanager
    def transaction(self):
        """One unit of work; commit-time failures are translated like any other."""
        with self._scope() as session:
            yield session

    # ============ Users ============

    def ensure_user(self, user_id: str, display_name: Optional[str] = None, session=None) -> None:
        with self._scope(session) as s:
            exists = s.execute(select(users.c.user_id).where(users.c.user_id == user_id)).first()
            if exists:
                return
            s.execute(
                insert(users).values(
                    user_id=user_id,
                    display_name=display_name,
                    created_at=datetime.now(timezone.utc),
                )
            )

    # ============ Habits ============

    def create_habit(
        self,
        *,
        user_id: str,
        name: str,
        kind: HabitKind,
        target_count: Optional[int],
        description: Optional[str] = None,
        created_at: Optional[datetime] = None,
        session=None,
    ) -> Habit:
        row = {
            "id": uuid4().hex,
            "user_id": user_id,
            "name": name,
            "description": description,
            "kind": kind,
            "target_count": target_count,
            "created_at": created_at or datetime.now(timezone.utc),
            "archived_at": None,
            "accumulated_momentum": 0,
            "consecutive_misses": 0,
        }
        with self._scope(session) as s:
            s.execute(insert(habits).values(**row))
        return Habit(**row)

    def get_habit(self, habit_id: str, session=None) -> Habit:
        """Fetch a habit by primary key, archived or not."""
        with self._scope(session) as s:
            row = s.execute(select(habits).where(habits.c.id == habit_id)).first()
        if not row:
            raise NotFoundError(f"habit {habit_id} not found")
        return _habit_from_row(row)

    def lock_habit(self, habit_id: str, session) -> Habit:
        """Fetch a habit and hold its row lock for the rest of the transaction.

        Serializes concurrent writers of the same habit on databases that
        support SELECT ... FOR UPDATE; a plain read elsewhere.
        """
        with self._scope(session) as s:
            row = s.execute(
                select(habits).where(habits.c.id == habit_id).with_for_update()
            ).first()
        if not row:
            raise NotFoundError(f"habit {habit_id} not found")
        return _habit_from_row(row)

    def get_habits_by_type(
        self,
        user_id: Optional[str] = None,
        kind: Optional[HabitKind] = None,
        exclude_archived: bool = True,
        session=None,
    ) -> List[Habit]:
        """Habits filtered by owner and kind, oldest first.

        ``user_id=None`` scans every user (sweep enumeration).
        """
        conditions = []
        if user_id is not None:
            conditions.append(habits.c.user_id == user_id)
        if kind is not None:
            conditions.append(habits.c.kind == kind)
        if exclude_archived:
            conditions.append(habits.c.archived_at.is_(None))

        stmt = select(habits).order_by(habits.c.created_at, habits.c.id)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        with self._scope(session) as s:
            rows = s.execute(stmt).all()
        return [_habit_from_row(row) for row in rows]

    def archive_habit(self, habit_id: str, archived_at: Optional[datetime] = None, session=None) -> None:
        with self._scope(session) as s:
            s.execute(
                update(habits)
                .where(and_(habits.c.id == habit_id, habits.c.archived_at.is_(None)))
                .values(archived_at=archived_at or datetime.now(timezone.utc))
            )

    def adjust_accumulated_momentum(self, habit_id: str, delta: int, session=None) -> None:
        """Atomically add ``delta`` to the habit's cached running total."""
        if delta == 0:
            return
        with self._scope(session) as s:
            result = s.execute(
                update(habits)
                .where(habits.c.id == habit_id)
                .values(accumulated_momentum=habits.c.accumulated_momentum + delta)
            )
            if not result.rowcount:
                raise NotFoundError(f"habit {habit_id} not found")

    def set_accumulated_momentum(self, habit_id: str, value: int, session=None) -> None:
        with self._scope(session) as s:
            s.execute(update(habits).where(habits.c.id == habit_id).values(accumulated_momentum=value))

    def set_consecutive_misses(self, habit_id: str, value: int, session=None) -> None:
        with self._scope(session) as s:
            s.execute(update(habits).where(habits.c.id == habit_id).values(consecutive_misses=value))

    # ============ Records ============

    def get_record(self, habit_id: str, day: DayLike, session=None) -> Optional[HabitRecord]:
        day_str = format_day(day)
        with self._scope(session) as s:
            row = s.execute(
                select(habit_records).where(
                    and_(habit_records.c.habit_id == habit_id, habit_records.c.date == day_str)
                )
            ).first()
        return _record_from_row(row) if row else None

    def get_records_in_range(self, habit_id: str, start: DayLike, end: DayLike, session=None) -> List[HabitRecord]:
        """Records with start <= date <= end, oldest first."""
        with self._scope(session) as s:
            rows = s.execute(
                select(habit_records)
                .where(
                    and_(
                        habit_records.c.habit_id == habit_id,
                        habit_records.c.date >= format_day(start),
                        habit_records.c.date <= format_day(end),
                    )
                )
                .order_by(habit_records.c.date)
            ).all()
        return [_record_from_row(row) for row in rows]

    def get_most_recent_record_before(self, habit_id: str, day: DayLike, session=None) -> Optional[HabitRecord]:
        """Latest record strictly before ``day``, skipping any gap."""
        with self._scope(session) as s:
            row = s.execute(
                select(habit_records)
                .where(
                    and_(
                        habit_records.c.habit_id == habit_id,
                        habit_records.c.date < format_day(day),
                    )
                )
                .order_by(habit_records.c.date.desc())
                .limit(1)
            ).first()
        return _record_from_row(row) if row else None

    def get_records_for_habits(
        self,
        habit_ids: Iterable[str],
        end: DayLike,
        start: Optional[DayLike] = None,
        session=None,
    ) -> Dict[str, List[HabitRecord]]:
        """Records for several habits up to ``end`` (optionally from ``start``), grouped by habit."""
        ids = list(habit_ids)
        grouped: Dict[str, List[HabitRecord]] = {habit_id: [] for habit_id in ids}
        if not ids:
            return grouped

        conditions = [habit_records.c.habit_id.in_(ids), habit_records.c.date <= format_day(end)]
        if start is not None:
            conditions.append(habit_records.c.date >= format_day(start))
        with self._scope(session) as s:
            rows = s.execute(
                select(habit_records).where(and_(*conditions)).order_by(habit_records.c.date)
            ).all()
        for row in rows:
            grouped[row.habit_id].append(_record_from_row(row))
        return grouped

    def upsert_record(
        self,
        habit_id: str,
        user_id: str,
        day: DayLike,
        completed: int,
        momentum: int,
        miss_streak: int = 0,
        session=None,
    ) -> HabitRecord:
        """Create or update the record for (habit_id, day). Last write wins."""
        if completed < 0:
            raise ValidationError("completed must be non-negative")
        day_str = format_day(day)
        with self._scope(session) as s:
            existing = s.execute(
                select(habit_records.c.id, habit_records.c.created_at).where(
                    and_(habit_records.c.habit_id == habit_id, habit_records.c.date == day_str)
                )
            ).first()
            if existing:
                s.execute(
                    update(habit_records)
                    .where(habit_records.c.id == existing.id)
                    .values(completed=completed, momentum=momentum, miss_streak=miss_streak)
                )
                record_id, created_at = existing.id, existing.created_at
            else:
                record_id, created_at = uuid4().hex, datetime.now(timezone.utc)
                s.execute(
                    insert(habit_records).values(
                        id=record_id,
                        habit_id=habit_id,
                        user_id=user_id,
                        date=day_str,
                        completed=completed,
                        momentum=momentum,
                        miss_streak=miss_streak,
                        created_at=created_at,
                    )
                )
        return HabitRecord(
            id=record_id,
            habit_id=habit_id,
            user_id=user_id,
            date=day_str,
            completed=completed,
            momentum=momentum,
            miss_streak=miss_streak,
            created_at=created_at,
        )

    def set_week_momentum(
        self,
        habit_id: str,
        start: DayLike,
        end: DayLike,
        momentum: int,
        miss_streak: int,
        session=None,
    ) -> int:
        """Align every record of one week to the week's value. Returns rows touched."""
        with self._scope(session) as s:
            result = s.execute(
                update(habit_records)
                .where(
                    and_(
                        habit_records.c.habit_id == habit_id,
                        habit_records.c.date >= format_day(start),
                        habit_records.c.date <= format_day(end),
                    )
                )
                .values(momentum=momentum, miss_streak=miss_streak)
            )
            return result.rowcount or 0

    def get_latest_record_date(self, habit_id: str, session=None) -> Optional[str]:
        with self._scope(session) as s:
            return s.execute(
                select(func.max(habit_records.c.date)).where(habit_records.c.habit_id == habit_id)
            ).scalar()

    def delete_records_before(self, cutoff: date, dry_run: bool = True, session=None) -> Tuple[int, int]:
        """Retention cleanup. Returns (candidates, deleted)."""
        cutoff_str = format_day(cutoff)
        with self._scope(session) as s:
            candidates = s.execute(
                select(func.count()).select_from(habit_records).where(habit_records.c.date < cutoff_str)
            ).scalar() or 0
            deleted = 0
            if not dry_run and candidates:
                result = s.execute(delete(habit_records).where(habit_records.c.date < cutoff_str))
                deleted = result.rowcount or 0
        return candidates, deleted


# Singleton adapter used by services and routes
record_store = RecordStore()
