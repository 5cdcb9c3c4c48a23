"""
Shift Tasks Notifier — Task Scheduler.

Minute tick: scan all open tasks and send whatever first-contact messages and
reminders are due. Daily tick at local midnight: roll over yesterday's daily
tasks. A rollover that fails on a store error is retried on each minute tick
until it succeeds or the date changes.

Both passes share one lock, so a slow pass finishes before the next one reads
task state. Missed ticks (process down) are not replayed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time as dt_time
from typing import TYPE_CHECKING

from src.core.clock import format_timestamp
from src.core.scanner import ScanResult, scan_due_tasks
from src.ports.task_port import RepositoryError

if TYPE_CHECKING:
    from datetime import date, tzinfo

    from telegram.ext import ContextTypes, Job, JobQueue

    from src.core.clock import Clock
    from src.core.dispatcher import NotificationDispatcher
    from src.core.rollover import RolloverEngine, RolloverReport
    from src.ports.task_port import TaskRepository

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Drives the notification and rollover passes, one at a time."""

    def __init__(
        self,
        repository: TaskRepository,
        dispatcher: NotificationDispatcher,
        rollover: RolloverEngine,
        clock: Clock,
        tick_seconds: int = 60,
    ) -> None:
        self._repo = repository
        self._dispatcher = dispatcher
        self._rollover = rollover
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._lock = asyncio.Lock()
        self._last_minute: str | None = None
        self._last_rollover: date | None = None
        self._rollover_retry: date | None = None
        self._minute_job: Job | None = None
        self._daily_job: Job | None = None

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def run_notification_pass(self) -> ScanResult | None:
        """Scan open tasks and dispatch what is due.

        Runs at most once per civil minute; returns None when skipped or
        when the task list could not be loaded.
        """
        async with self._lock:
            now = self._clock.now()
            minute = format_timestamp(now)[:16]
            if minute == self._last_minute:
                logger.debug("Notification pass for %s already ran", minute)
                return None
            self._last_minute = minute

            try:
                tasks = self._repo.list_open_tasks()
            except RepositoryError as exc:
                logger.error("Error fetching tasks: %s", exc)
                return None

            result = scan_due_tasks(tasks, now)
            if result.first_contact:
                logger.info(
                    "Tasks needing first-time message: %s",
                    [t.id for t in result.first_contact],
                )
                await self._dispatcher.dispatch_first_contact(result.first_contact)
            if result.reminders:
                logger.info(
                    "Tasks needing notice messages: %s",
                    [t.id for t in result.reminders],
                )
                await self._dispatcher.dispatch_reminders(result.reminders)
            if not result.has_due:
                logger.debug("No pending notifications at %s", minute)
            return result

    async def run_rollover_pass(self) -> RolloverReport | None:
        """Run the daily rollover once per civil date."""
        async with self._lock:
            today = self._clock.now().date()
            if today == self._last_rollover:
                logger.debug("Rollover for %s already ran", today.isoformat())
                return None

            logger.info("Running daily rollover for %s", today.isoformat())
            try:
                report = self._rollover.run()
            except RepositoryError as exc:
                logger.error("Daily rollover error, retrying next minute: %s", exc)
                self._rollover_retry = today
                return None
            self._last_rollover = today
            self._rollover_retry = None
            return report

    # ------------------------------------------------------------------
    # Timer wiring (python-telegram-bot JobQueue)
    # ------------------------------------------------------------------

    async def _minute_job_callback(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await self.run_notification_pass()
        except Exception:
            logger.exception("Notification pass crashed")
        if self._rollover_retry is not None:
            await self._retry_rollover()

    async def _retry_rollover(self) -> None:
        # A failed rollover is only retried within its own civil date
        if self._rollover_retry != self._clock.now().date():
            self._rollover_retry = None
            return
        try:
            await self.run_rollover_pass()
        except Exception:
            logger.exception("Rollover retry crashed")

    async def _daily_job_callback(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await self.run_rollover_pass()
        except Exception:
            logger.exception("Rollover pass crashed")

    def start(self, job_queue: JobQueue, tz: tzinfo) -> None:
        """Register the minute and midnight jobs on the bot's job queue."""
        now = self._clock.now()
        first = self._tick_seconds - (now.second + now.microsecond / 1_000_000) % self._tick_seconds

        self._minute_job = job_queue.run_repeating(
            self._minute_job_callback,
            interval=self._tick_seconds,
            first=first,
            name="task_notifications",
        )
        self._daily_job = job_queue.run_daily(
            self._daily_job_callback,
            time=dt_time(hour=0, minute=0, tzinfo=tz),
            name="daily_rollover",
        )
        logger.info(
            "Task scheduler started: every %ds (first in %.1fs), rollover at 00:00 %s",
            self._tick_seconds, first, tz,
        )

    async def stop(self) -> None:
        """Remove the jobs and wait for an in-flight pass to finish."""
        for job in (self._minute_job, self._daily_job):
            if job is not None:
                job.schedule_removal()
        self._minute_job = None
        self._daily_job = None

        async with self._lock:
            pass
        logger.info("Task scheduler stopped")
