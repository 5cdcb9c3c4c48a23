"""
Shift Tasks Notifier — Notification Dispatcher.

Turns due tasks into one grouped message per role, sends it to every
registered chat, then advances each task's scheduling state.

Delivery is best-effort: a failing or slow chat is logged and skipped, and
task state advances once the sends for its role group have been attempted.
Missed deliveries are not retried; the next reminder is the retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.core.messages import (
    DURATION_ORDER,
    first_contact_header,
    render_role_message,
    reminder_header,
)
from src.core.schedule_rules import next_notification_time_for
from src.ports.notification_port import DeliveryError
from src.ports.task_port import RepositoryError

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.core.clock import Clock
    from src.data.models import Duration, Role, Task
    from src.ports.notification_port import NotificationPort
    from src.ports.task_port import RecipientRegistry, TaskRepository

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Outcome of one dispatch call."""

    messages_sent: int = 0
    failed_deliveries: int = 0
    updated_task_ids: list[int] = field(default_factory=list)
    failed_task_ids: list[int] = field(default_factory=list)


def group_by_role_and_duration(tasks: list[Task]) -> dict[Role, dict[Duration, list[Task]]]:
    """Group tasks by role (first-seen order), then by duration class."""
    role_map: dict[Role, dict[Duration, list[Task]]] = {}
    for task in tasks:
        sections = role_map.setdefault(task.role, {d: [] for d in DURATION_ORDER})
        sections[task.duration].append(task)
    return role_map


class NotificationDispatcher:
    """Sends first-contact messages and reminders for due tasks."""

    def __init__(
        self,
        repository: TaskRepository,
        recipients: RecipientRegistry,
        notifier: NotificationPort,
        clock: Clock,
        send_timeout: float = 10.0,
    ) -> None:
        self._repo = repository
        self._recipients = recipients
        self._notifier = notifier
        self._clock = clock
        self._send_timeout = send_timeout

    async def dispatch_first_contact(self, tasks: list[Task]) -> DispatchReport:
        """Announce new tasks, then flag them sent and schedule the first reminder."""

        def fields_for(task: Task) -> dict:
            return {
                "first_message_sent": True,
                "next_notification_time": next_notification_time_for(task, self._clock.now()),
            }

        return await self._dispatch(tasks, first_contact_header, fields_for, "first-contact")

    async def dispatch_reminders(self, tasks: list[Task]) -> DispatchReport:
        """Send reminders, then move each task to its next reminder time."""

        def fields_for(task: Task) -> dict:
            return {
                "next_notification_time": next_notification_time_for(task, self._clock.now()),
            }

        return await self._dispatch(tasks, reminder_header, fields_for, "reminder")

    async def _dispatch(
        self,
        tasks: list[Task],
        header_for: Callable[[Role], str],
        fields_for: Callable[[Task], dict],
        label: str,
    ) -> DispatchReport:
        report = DispatchReport()
        if not tasks:
            return report

        try:
            chat_ids = self._recipients.list()
        except RepositoryError as exc:
            # Task state still advances below
            logger.error("Could not load recipients for %s messages: %s", label, exc)
            chat_ids = []

        if not chat_ids:
            logger.warning("No registered chats, %s messages go nowhere", label)

        for role, sections in group_by_role_and_duration(tasks).items():
            message = render_role_message(header_for(role), sections)
            await self._send_to_all(chat_ids, message, report)

            for duration in DURATION_ORDER:
                for task in sections[duration]:
                    self._apply_update(task, fields_for(task), label, report)

        return report

    async def _send_to_all(
        self, chat_ids: list[int], message: str, report: DispatchReport,
    ) -> None:
        # Chats receive in registration order
        for chat_id in chat_ids:
            try:
                await asyncio.wait_for(
                    self._notifier.send_message(chat_id, message),
                    timeout=self._send_timeout,
                )
                report.messages_sent += 1
            except asyncio.TimeoutError:
                report.failed_deliveries += 1
                logger.error("Send to chat %d timed out after %.1fs", chat_id, self._send_timeout)
            except DeliveryError as exc:
                report.failed_deliveries += 1
                logger.error("Send to chat %d failed: %s", chat_id, exc)
            except Exception as exc:
                report.failed_deliveries += 1
                logger.error("Unexpected error sending to chat %d: %s", chat_id, exc)

    def _apply_update(
        self, task: Task, fields: dict, label: str, report: DispatchReport,
    ) -> None:
        try:
            updated = self._repo.update_task(task.id, **fields)
        except RepositoryError as exc:
            report.failed_task_ids.append(task.id)
            logger.error("Failed to update task #%d after %s message: %s", task.id, label, exc)
            return
        if not updated:
            report.failed_task_ids.append(task.id)
            logger.warning("Task #%d vanished before its %s update", task.id, label)
            return
        report.updated_task_ids.append(task.id)
        logger.info(
            "%s message sent for task #%d. Next = %s",
            label.capitalize(), task.id, fields["next_notification_time"],
        )
