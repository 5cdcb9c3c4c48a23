"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a virtual clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Asia/Jerusalem")

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

TZ = ZoneInfo("Asia/Jerusalem")


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_tasks.db")


@pytest.fixture
def task_db(tmp_db_path):
    """Return a TaskDB instance backed by a temp file."""
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def recipient_db(tmp_db_path):
    """Return a RecipientDB sharing the temp file with task_db."""
    from src.data.db import RecipientDB
    return RecipientDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """Virtual clock at 2025-02-06 09:00:00 Asia/Jerusalem."""
    from src.core.clock import ManualClock
    return ManualClock(datetime(2025, 2, 6, 9, 0, 0, tzinfo=TZ))


@pytest.fixture
def make_task():
    """Factory for in-memory Task objects with sensible defaults."""
    from src.data.models import Duration, Role, Task, TaskStatus

    counter = {"id": 0}

    def _make(**overrides):
        counter["id"] += 1
        fields = dict(
            id=counter["id"],
            title=f"Task {counter['id']}",
            details="details",
            role=Role.WAITERS,
            duration=Duration.DAILY,
            status=TaskStatus.IN_PROGRESS,
            creation_date="2025-02-06 08:00:00",
            task_number=counter["id"],
        )
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture
def make_new_task():
    """Factory for NewTask insert payloads."""
    from src.data.models import Duration, NewTask, Role

    def _make(**overrides):
        fields = dict(
            title="Wipe tables",
            details="All of the terrace",
            role=Role.WAITERS,
            duration=Duration.DAILY,
            creation_date="2025-02-06 08:00:00",
        )
        fields.update(overrides)
        return NewTask(**fields)

    return _make
