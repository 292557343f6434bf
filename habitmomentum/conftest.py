# habitmomentum/conftest.py
import os
from datetime import date, datetime, timezone

# Test configuration must be in place before habitmomentum settings load
os.environ["ENV"] = "test"
os.environ["TEST_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.pop("CRON_SECRET", None)

import pytest

from habitmomentum.core.database import create_all_tables, drop_all_tables, init_engine
from habitmomentum.core.metrics import METRICS


@pytest.fixture(scope="function", autouse=True)
def fresh_db():
    """
    Give every test its own empty in-memory database.

    init_engine builds a new engine, and with it a new SQLite memory database.
    """
    init_engine("sqlite://")
    create_all_tables()
    METRICS.reset()
    yield
    drop_all_tables()


@pytest.fixture
def make_habit():
    """Factory for habits with a controllable creation date."""
    from habitmomentum.features.habits.service import habit_service

    def _make(kind="daily", target_count=None, user_id="u1", name=None, created=date(2024, 1, 1)):
        created_at = datetime(created.year, created.month, created.day, tzinfo=timezone.utc)
        return habit_service.create_habit(
            user_id=user_id,
            name=name or f"{kind} habit",
            kind=kind,
            target_count=target_count,
            created_at=created_at,
        )

    return _make
