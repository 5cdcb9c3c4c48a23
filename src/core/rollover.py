"""
Shift Tasks Notifier — Daily Rollover.

Runs at the start of each civil day. Daily tasks left open yesterday are
archived, and a fresh copy of each is created for today with its own task
number and a first-contact message still pending.

Every open daily task is copied; there is no separate notion of a template.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from src.core.clock import format_timestamp
from src.data.models import Duration, NewTask, TaskStatus
from src.ports.task_port import RepositoryError

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.data.models import Task
    from src.ports.task_port import TaskRepository

logger = logging.getLogger(__name__)


@dataclass
class RolloverReport:
    """What one rollover run did."""

    archived_ids: list[int] = field(default_factory=list)
    created_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)


def clone_for_today(task: Task, created_at: str) -> NewTask:
    """Fresh daily instance of `task`, not yet announced."""
    return NewTask(
        title=task.title,
        details=task.details,
        role=task.role,
        duration=Duration.DAILY,
        creation_date=created_at,
        status=TaskStatus.IN_PROGRESS,
        first_message_method=task.first_message_method,
        first_message_time=task.first_message_time,
        notify_method=task.notify_method,
        notice_interval=task.notice_interval,
        notice_time=task.notice_time,
        next_notification_time=None,
        should_add_image=task.should_add_image,
    )


class RolloverEngine:
    """Archives yesterday's undone daily tasks and spawns today's copies."""

    def __init__(self, repository: TaskRepository, clock: Clock) -> None:
        self._repo = repository
        self._clock = clock

    def run(self) -> RolloverReport:
        """Run one rollover for the clock's current civil day.

        A RepositoryError while listing candidates propagates to the caller;
        per-row failures are logged and recorded in the report.
        """
        now = self._clock.now()
        yesterday = now.date() - timedelta(days=1)
        report = RolloverReport()

        tasks = self._repo.list_daily_tasks_created_on(yesterday)
        if not tasks:
            logger.info("No undone daily tasks from %s", yesterday.isoformat())
            return report

        for task in tasks:
            logger.warning(
                "Daily task #%d (%s %d '%s') was not completed on %s",
                task.id, task.role.value, task.task_number, task.title,
                yesterday.isoformat(),
            )

        archived: list[Task] = []
        for task in tasks:
            try:
                self._repo.update_task(task.id, status=TaskStatus.ARCHIVED)
            except RepositoryError as exc:
                report.failed_ids.append(task.id)
                logger.error("Failed to archive daily task #%d: %s", task.id, exc)
                continue
            archived.append(task)
            report.archived_ids.append(task.id)
            logger.info("Task #%d archived", task.id)

        created_at = format_timestamp(now)
        for task in archived:
            try:
                clone = self._repo.insert_task(clone_for_today(task, created_at))
            except RepositoryError as exc:
                report.failed_ids.append(task.id)
                logger.error("Failed to create today's copy of task #%d: %s", task.id, exc)
                continue
            report.created_ids.append(clone.id)
            logger.info(
                "New daily task #%d created for today from #%d (number %d)",
                clone.id, task.id, clone.task_number,
            )

        logger.info(
            "Daily rollover complete: %d archived, %d created, %d failed",
            len(report.archived_ids), len(report.created_ids), len(report.failed_ids),
        )
        return report
