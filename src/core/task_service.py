"""
Shift Tasks Notifier — Task write path.

Validates task payloads and stores them with their initial schedule. This is
what an admin surface calls to create or edit tasks; the scheduler itself
never goes through here.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from pydantic import BaseModel, field_validator, model_validator

from src.core.clock import format_timestamp
from src.core.schedule_rules import ConfigurationError, compute_next_notification_time, normalize_hhmm
from src.data.models import Duration, FirstMessageMethod, NewTask, NotifyMethod, Role, TaskStatus

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.data.models import Task
    from src.ports.task_port import TaskRepository

logger = logging.getLogger(__name__)


class TaskDraft(BaseModel):
    """Task fields as submitted by an admin.

    JSON example:
    {
        "title": "Check fridge temperatures",
        "details": "Log both walk-in fridges",
        "role": "Cooks",
        "duration": "daily",
        "first_message_method": "fixed",
        "first_message_time": "08:00",
        "notify_method": "interval",
        "notice_interval": 2
    }
    """
    title: str
    details: str = ""
    role: Role
    duration: Duration = Duration.DAILY
    status: TaskStatus = TaskStatus.IN_PROGRESS
    should_add_image: bool = False
    first_message_method: FirstMessageMethod = FirstMessageMethod.NOW
    first_message_time: str | None = None   # HH:MM
    notify_method: NotifyMethod = NotifyMethod.NONE
    notice_interval: int | None = None      # hours
    notice_time: str | None = None          # HH:MM

    @field_validator("first_message_time", "notice_time", mode="before")
    @classmethod
    def pad_time(cls, v: str | None) -> str | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            return normalize_hhmm(v)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("notice_interval")
    @classmethod
    def positive_interval(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("notice_interval must be a positive number of hours")
        return v

    @model_validator(mode="after")
    def check_methods(self) -> TaskDraft:
        if self.first_message_method is FirstMessageMethod.FIXED and not self.first_message_time:
            raise ValueError("first_message_time is required when first_message_method is 'fixed'")
        if self.notify_method is NotifyMethod.FIXED and not self.notice_time:
            raise ValueError("notice_time is required when notify_method is 'fixed'")
        if self.notify_method is NotifyMethod.INTERVAL and self.notice_interval is None:
            raise ValueError("notice_interval is required when notify_method is 'interval'")
        return self


def create_task(repo: TaskRepository, draft: TaskDraft, clock: Clock) -> Task:
    """Store a new task numbered within its role for today."""
    now = clock.now()
    new_task = NewTask(
        title=draft.title,
        details=draft.details,
        role=draft.role,
        duration=draft.duration,
        creation_date=format_timestamp(now),
        status=draft.status,
        first_message_method=draft.first_message_method,
        first_message_time=draft.first_message_time,
        notify_method=draft.notify_method,
        notice_interval=draft.notice_interval,
        notice_time=draft.notice_time,
        next_notification_time=compute_next_notification_time(
            draft.notify_method, draft.notice_interval, draft.notice_time, now,
        ),
        should_add_image=draft.should_add_image,
    )
    return repo.insert_task(new_task)


def update_task(repo: TaskRepository, task_id: int, draft: TaskDraft, clock: Clock) -> bool:
    """Replace a task's editable fields and recompute its next notification."""
    changed = repo.update_task(
        task_id,
        title=draft.title,
        details=draft.details,
        role=draft.role,
        duration=draft.duration,
        status=draft.status,
        should_add_image=draft.should_add_image,
        first_message_method=draft.first_message_method,
        first_message_time=draft.first_message_time,
        notify_method=draft.notify_method,
        notice_interval=draft.notice_interval,
        notice_time=draft.notice_time,
        next_notification_time=compute_next_notification_time(
            draft.notify_method, draft.notice_interval, draft.notice_time, clock.now(),
        ),
    )
    if changed:
        logger.info("Task #%d updated", task_id)
    else:
        logger.warning("Task #%d not found for update", task_id)
    return changed


def tasks_for_day(repo: TaskRepository, day: date) -> list[Task]:
    """Open tasks whose daily/weekly/monthly window covers `day`."""
    return repo.list_tasks_for_date(day)
