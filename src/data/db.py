"""
Shift Tasks Notifier — Task Database.

SQLite-backed task and recipient storage. Every sqlite3 failure surfaces as
RepositoryError so the scheduler can log it per task and carry on.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from pathlib import Path

from src.data.models import (
    Duration,
    FirstMessageMethod,
    NewTask,
    NotifyMethod,
    Role,
    Task,
    TaskStatus,
)
from src.ports.task_port import RepositoryError

logger = logging.getLogger(__name__)

# Wait this long for another writer's lock before failing
_BUSY_TIMEOUT_SECONDS = 5.0

_UPDATABLE_COLUMNS = frozenset({
    "title",
    "details",
    "status",
    "role",
    "duration",
    "first_message_method",
    "first_message_time",
    "first_message_sent",
    "notify_method",
    "notice_interval",
    "notice_time",
    "next_notification_time",
    "should_add_image",
})


@contextmanager
def _repository_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise RepositoryError(f"{action} failed: {exc}") from exc


def _to_db(value: object) -> object:
    """Serialize model values to SQLite column values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


class TaskDB:
    """SQLite-backed storage for shift tasks."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self, autocommit: bool = False) -> sqlite3.Connection:
        if autocommit:
            conn = sqlite3.connect(
                self._db_path, timeout=_BUSY_TIMEOUT_SECONDS, isolation_level=None,
            )
        else:
            conn = sqlite3.connect(self._db_path, timeout=_BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the tasks table if it doesn't exist, and migrate schema."""
        with _repository_errors("tasks schema init"), self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
                    title                  TEXT    NOT NULL,
                    details                TEXT    NOT NULL DEFAULT '',
                    status                 TEXT    NOT NULL DEFAULT 'In Progress',
                    role                   TEXT    NOT NULL,
                    duration               TEXT    NOT NULL DEFAULT 'daily',
                    creation_date          TEXT    NOT NULL,
                    task_number            INTEGER NOT NULL,
                    first_message_method   TEXT    NOT NULL DEFAULT 'now',
                    first_message_time     TEXT,
                    first_message_sent     INTEGER NOT NULL DEFAULT 0,
                    notify_method          TEXT    NOT NULL DEFAULT 'none',
                    notice_interval        INTEGER,
                    notice_time            TEXT,
                    next_notification_time TEXT
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            if "should_add_image" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN should_add_image INTEGER NOT NULL DEFAULT 0"
                )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_role_created "
                "ON tasks (role, creation_date)"
            )
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            details=row["details"],
            role=Role(row["role"]),
            duration=Duration(row["duration"]),
            status=TaskStatus(row["status"]),
            creation_date=row["creation_date"],
            task_number=row["task_number"],
            first_message_method=FirstMessageMethod(row["first_message_method"]),
            first_message_time=row["first_message_time"],
            first_message_sent=bool(row["first_message_sent"]),
            notify_method=NotifyMethod(row["notify_method"]),
            notice_interval=row["notice_interval"],
            notice_time=row["notice_time"],
            next_notification_time=row["next_notification_time"],
            should_add_image=bool(row["should_add_image"]),
        )

    def _select(self, action: str, query: str, params: tuple | list = ()) -> list[Task]:
        with _repository_errors(action), self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_open_tasks(self) -> list[Task]:
        """All tasks the scheduler still cares about (not Done, not Archived)."""
        return self._select(
            "list open tasks",
            "SELECT * FROM tasks WHERE status NOT IN (?, ?) ORDER BY id",
            (TaskStatus.DONE.value, TaskStatus.ARCHIVED.value),
        )

    def list_tasks(self, duration: Duration | None = None) -> list[Task]:
        """List all tasks, optionally filtered by duration class."""
        query = "SELECT * FROM tasks"
        params: list = []
        if duration is not None:
            query += " WHERE duration = ?"
            params.append(_to_db(duration))
        query += " ORDER BY id"
        return self._select("list tasks", query, params)

    def list_tasks_for_date(self, view_date: date) -> list[Task]:
        """Open tasks whose active window covers `view_date`.

        daily: created that day; weekly: within 7 days of creation;
        monthly: within 30 days of creation.
        """
        day = view_date.isoformat()
        return self._select(
            "list tasks for date",
            """
            SELECT * FROM tasks
            WHERE status NOT IN (?, ?)
              AND (
                (duration = 'daily' AND DATE(creation_date) = ?)
                OR
                (duration = 'weekly'
                  AND DATE(creation_date) <= ?
                  AND DATE(creation_date, '+6 days') >= ?)
                OR
                (duration = 'monthly'
                  AND DATE(creation_date) <= ?
                  AND DATE(creation_date, '+29 days') >= ?)
              )
            ORDER BY role, task_number
            """,
            (TaskStatus.DONE.value, TaskStatus.ARCHIVED.value,
             day, day, day, day, day),
        )

    def list_daily_tasks_created_on(self, day: date) -> list[Task]:
        """Open daily tasks created on `day`: the rollover candidates."""
        return self._select(
            "list daily tasks",
            """
            SELECT * FROM tasks
            WHERE duration = ?
              AND DATE(creation_date) = ?
              AND status NOT IN (?, ?)
            ORDER BY id
            """,
            (Duration.DAILY.value, day.isoformat(),
             TaskStatus.DONE.value, TaskStatus.ARCHIVED.value),
        )

    def get_task(self, task_id: int) -> Task | None:
        """Fetch a single task by ID."""
        tasks = self._select("get task", "SELECT * FROM tasks WHERE id = ?", (task_id,))
        return tasks[0] if tasks else None

    def insert_task(self, new_task: NewTask) -> Task:
        """Insert a task with the next task number for (role, creation day).

        The number lookup and the insert share one IMMEDIATE transaction so
        concurrent creators cannot pick the same number.
        """
        creation_day = new_task.creation_date[:10]
        conn = self._connect(autocommit=True)
        try:
            with _repository_errors("insert task"):
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        """
                        SELECT COALESCE(MAX(task_number), 0) + 1 AS next_number
                        FROM tasks
                        WHERE role = ? AND DATE(creation_date) = ?
                        """,
                        (_to_db(new_task.role), creation_day),
                    ).fetchone()
                    task_number = row["next_number"]
                    cursor = conn.execute(
                        """
                        INSERT INTO tasks
                            (title, details, status, role, duration, creation_date,
                             task_number, first_message_method, first_message_time,
                             first_message_sent, notify_method, notice_interval,
                             notice_time, next_notification_time, should_add_image)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?)
                        """,
                        (
                            new_task.title, new_task.details,
                            _to_db(new_task.status), _to_db(new_task.role),
                            _to_db(new_task.duration), new_task.creation_date,
                            task_number,
                            _to_db(new_task.first_message_method),
                            new_task.first_message_time,
                            _to_db(new_task.notify_method),
                            new_task.notice_interval, new_task.notice_time,
                            new_task.next_notification_time,
                            _to_db(new_task.should_add_image),
                        ),
                    )
                    task_id = cursor.lastrowid
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
        finally:
            conn.close()

        task = Task(
            id=task_id,
            title=new_task.title,
            details=new_task.details,
            role=new_task.role,
            duration=new_task.duration,
            status=new_task.status,
            creation_date=new_task.creation_date,
            task_number=task_number,
            first_message_method=new_task.first_message_method,
            first_message_time=new_task.first_message_time,
            first_message_sent=False,
            notify_method=new_task.notify_method,
            notice_interval=new_task.notice_interval,
            notice_time=new_task.notice_time,
            next_notification_time=new_task.next_notification_time,
            should_add_image=new_task.should_add_image,
        )
        logger.info(
            "Task added: #%d '%s' (%s number %d)",
            task_id, task.title, task.role.value, task_number,
        )
        return task

    def update_task(self, task_id: int, **fields: object) -> bool:
        """Update the given columns of one task. Returns True if a row changed."""
        if not fields:
            return False
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        columns = sorted(fields)
        assignments = ", ".join(f"{col} = ?" for col in columns)
        params = [_to_db(fields[col]) for col in columns]
        params.append(task_id)

        with _repository_errors(f"update task {task_id}"), self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?", params,
            )
        return cursor.rowcount > 0

    def delete_task(self, task_id: int) -> bool:
        """Permanently delete a task by ID."""
        with _repository_errors(f"delete task {task_id}"), self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task #%d deleted", task_id)
        return deleted

    def mark_done(self, role: Role, task_number: int) -> bool:
        """Mark the most recent non-Done task with this (role, number) as Done."""
        with _repository_errors("mark task done"), self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE tasks SET status = ?
                WHERE id IN (
                    SELECT id FROM tasks
                    WHERE role = ? AND task_number = ? AND status != ?
                    ORDER BY id DESC
                    LIMIT 1
                )
                """,
                (TaskStatus.DONE.value, _to_db(role), task_number, TaskStatus.DONE.value),
            )
        done = cursor.rowcount > 0
        if done:
            logger.info("Task %s #%d marked done", _to_db(role), task_number)
        return done


class RecipientDB:
    """SQLite-backed registry of chats that receive task messages."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=_BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with _repository_errors("recipients schema init"), self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recipients (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id       INTEGER NOT NULL UNIQUE,
                    registered_at TEXT    NOT NULL
                )
            """)
        logger.debug("Recipients table initialized at %s", self._db_path)

    def list(self) -> list[int]:
        """Registered chat ids in registration order."""
        with _repository_errors("list recipients"), self._connect() as conn:
            rows = conn.execute("SELECT chat_id FROM recipients ORDER BY id").fetchall()
        return [r["chat_id"] for r in rows]

    def register(self, chat_id: int) -> bool:
        """Add a chat id. Returns True only when it was not registered yet."""
        now = datetime.now().isoformat()
        with _repository_errors("register recipient"), self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO recipients (chat_id, registered_at) VALUES (?, ?)",
                (chat_id, now),
            )
        is_new = cursor.rowcount > 0
        if is_new:
            logger.info("New chat registered: %d", chat_id)
        return is_new
