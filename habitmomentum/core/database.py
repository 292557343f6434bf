"""
Engine, sessions and the three tables the service owns.

PostgreSQL in production, SQLite for tests and local runs. Dates on
``habit_records`` are stored as ``YYYY-MM-DD`` strings so range queries can
compare them lexically on both backends.
"""
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from habitmomentum.core.config import settings

logger = logging.getLogger("habitmomentum.database")

metadata = MetaData()

POOL_OPTIONS = {
    "poolclass": QueuePool,
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins over DATABASE_URL when both are set."""
    return os.getenv("TEST_DATABASE_URL") or settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None) -> Engine:
    """(Re)build the process engine and session factory."""
    global _engine, _session_factory

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured (set it in the environment or .env)")

    if url.startswith("sqlite"):
        # StaticPool: an in-memory database lives as long as its one connection
        _engine = create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(url, **POOL_OPTIONS)

    _session_factory = sessionmaker(bind=_engine, autoflush=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


@contextmanager
def get_db_session() -> Iterator[Session]:
    """One unit of work: commit when the block exits cleanly, roll back otherwise."""
    if _session_factory is None:
        init_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# (table, column, DDL) added after the first schema revision
LATE_COLUMNS = [
    ("habits", "accumulated_momentum", "INTEGER NOT NULL DEFAULT 0"),
    ("habits", "consecutive_misses", "INTEGER NOT NULL DEFAULT 0"),
    ("habit_records", "miss_streak", "INTEGER NOT NULL DEFAULT 0"),
]


def apply_schema_upgrades(engine: Optional[Engine] = None) -> int:
    """Add any missing late column. Returns how many were added."""
    eng = engine or get_engine()
    inspector = inspect(eng)
    added = 0
    with eng.begin() as conn:
        for table_name, column_name, ddl in LATE_COLUMNS:
            if not inspector.has_table(table_name):
                continue
            if column_name in {c["name"] for c in inspector.get_columns(table_name)}:
                continue
            logger.info(f"[schema] adding {table_name}.{column_name}")
            conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {ddl}"))
            added += 1
    return added


def create_all_tables() -> None:
    engine = get_engine()
    metadata.create_all(bind=engine)
    apply_schema_upgrades(engine)


def drop_all_tables() -> None:
    """Tests only."""
    metadata.drop_all(bind=get_engine())


def check_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.exec_driver_sql("SELECT 1")
    except Exception as e:
        logger.warning(f"[db] connection check failed: {e}")
        return False
    return True


users = Table(
    "users",
    metadata,
    Column("user_id", String(100), primary_key=True),
    Column("display_name", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

habits = Table(
    "habits",
    metadata,
    Column("id", String(100), primary_key=True),
    Column("user_id", String(100), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False),
    Column("name", Text, nullable=False),
    Column("description", Text, nullable=True),
    Column("kind", String(20), nullable=False),
    Column("target_count", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("archived_at", DateTime(timezone=True), nullable=True),
    Column("accumulated_momentum", Integer, nullable=False, server_default="0"),
    Column("consecutive_misses", Integer, nullable=False, server_default="0"),
    CheckConstraint("kind IN ('daily', 'weekly')", name="ck_habits_kind"),
    Index("idx_habits_user_kind", "user_id", "kind"),
    Index("idx_habits_kind_archived", "kind", "archived_at"),
)

habit_records = Table(
    "habit_records",
    metadata,
    Column("id", String(100), primary_key=True),
    Column("habit_id", String(100), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False),
    Column("user_id", String(100), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False),
    Column("date", String(10), nullable=False),
    Column("completed", Integer, nullable=False, server_default="0"),
    Column("momentum", Integer, nullable=False, server_default="0"),
    Column("miss_streak", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("habit_id", "date", name="uq_habit_records_habit_date"),
    Index("idx_habit_records_user_date", "user_id", "date"),
    Index("idx_habit_records_date", "date"),
)
