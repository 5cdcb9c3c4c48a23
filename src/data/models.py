"""
Shift Tasks Notifier — Data Models.

Tasks persist in SQLite across days, surviving bot restarts. Flags are real
booleans here; the 0/1 integer form only exists inside the SQLite layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    MANAGEMENT = "Management"
    WAITERS = "Waiters"
    BAR = "Bar"
    COOKS = "Cooks"


class Duration(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    STUCK = "Stuck"
    ARCHIVED = "Archived"


# Statuses the scheduler never looks at again
TERMINAL_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.ARCHIVED})


class FirstMessageMethod(str, Enum):
    NOW = "now"
    FIXED = "fixed"
    NONE = "none"


class NotifyMethod(str, Enum):
    INTERVAL = "interval"
    FIXED = "fixed"
    NONE = "none"


@dataclass
class Task:
    """A unit of schedulable shift work.

    `task_number` is the short human-facing id, unique per (role, creation
    day). `next_notification_time` holds the first-contact due time until
    `first_message_sent` flips, and the next reminder time after that.
    """

    id: int
    title: str
    details: str
    role: Role
    duration: Duration
    status: TaskStatus
    creation_date: str                       # YYYY-MM-DD HH:MM:SS
    task_number: int
    first_message_method: FirstMessageMethod = FirstMessageMethod.NOW
    first_message_time: str | None = None    # HH:MM, required when fixed
    first_message_sent: bool = False
    notify_method: NotifyMethod = NotifyMethod.NONE
    notice_interval: int | None = None       # hours, when interval
    notice_time: str | None = None           # HH:MM, when fixed
    next_notification_time: str | None = None
    should_add_image: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class NewTask:
    """Insert payload for a task; the store assigns id and task number."""

    title: str
    details: str
    role: Role
    duration: Duration
    creation_date: str
    status: TaskStatus = TaskStatus.IN_PROGRESS
    first_message_method: FirstMessageMethod = FirstMessageMethod.NOW
    first_message_time: str | None = None
    notify_method: NotifyMethod = NotifyMethod.NONE
    notice_interval: int | None = None
    notice_time: str | None = None
    next_notification_time: str | None = None
    should_add_image: bool = False
