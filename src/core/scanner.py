"""Due-task scanner — pure business logic.

Classifies every open task on a scheduling tick as needing its first-contact
message, needing a recurring reminder, or not due yet.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from src.core.clock import format_hhmm, format_timestamp
from src.core.schedule_rules import ConfigurationError, first_message_time_of
from src.data.models import FirstMessageMethod

if TYPE_CHECKING:
    from src.data.models import Task

logger = logging.getLogger(__name__)


class DueKind(Enum):
    FIRST_CONTACT = "first_contact"
    REMINDER = "reminder"
    NOT_DUE = "not_due"


@dataclass
class ScanResult:
    """Partition of the scanned tasks."""

    first_contact: list[Task] = field(default_factory=list)
    reminders: list[Task] = field(default_factory=list)
    not_due: list[Task] = field(default_factory=list)

    @property
    def has_due(self) -> bool:
        return bool(self.first_contact or self.reminders)


def classify_task(task: Task, now: datetime) -> DueKind:
    """Decide what, if anything, a task is owed at `now`.

    Raises ConfigurationError for a fixed first-contact method without a
    usable HH:MM time.
    """
    if task.is_terminal:
        return DueKind.NOT_DUE

    if not task.first_message_sent:
        method = task.first_message_method
        if method is FirstMessageMethod.NOW:
            return DueKind.FIRST_CONTACT
        if method is FirstMessageMethod.FIXED:
            # Zero-padded HH:MM strings order the same as the times they encode
            if format_hhmm(now) >= first_message_time_of(task):
                return DueKind.FIRST_CONTACT
        return DueKind.NOT_DUE

    if task.next_notification_time and task.next_notification_time <= format_timestamp(now):
        return DueKind.REMINDER
    return DueKind.NOT_DUE


def scan_due_tasks(tasks: list[Task], now: datetime) -> ScanResult:
    """Partition open tasks into first-contact-due, reminder-due and not-due."""
    result = ScanResult()
    for task in tasks:
        try:
            kind = classify_task(task, now)
        except ConfigurationError as exc:
            logger.warning("Skipping misconfigured task #%d: %s", task.id, exc)
            kind = DueKind.NOT_DUE

        if kind is DueKind.FIRST_CONTACT:
            result.first_contact.append(task)
        elif kind is DueKind.REMINDER:
            result.reminders.append(task)
        else:
            result.not_due.append(task)

    if result.has_due:
        logger.info(
            "Scan at %s: %d first-contact, %d reminders, %d not due",
            format_timestamp(now), len(result.first_contact),
            len(result.reminders), len(result.not_due),
        )
    return result
