"""Scheduling rules — pure business logic.

Validates the time-of-day settings of a task and computes when the next
notification is due after a send.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from src.core.clock import format_timestamp
from src.data.models import FirstMessageMethod, NotifyMethod

if TYPE_CHECKING:
    from src.data.models import Task

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

_DEFAULT_INTERVAL_HOURS = 1


class ConfigurationError(Exception):
    """Raised when a task's schedule settings are incomplete or malformed."""


def is_valid_hhmm(value: str | None) -> bool:
    """True for a zero-padded 24h "HH:MM" string."""
    return bool(value) and _HHMM_RE.match(value) is not None


def normalize_hhmm(value: str) -> str:
    """Zero-pad a loose "H:MM" / "HH:MM" value.

    Raises ConfigurationError when the value is not a time of day.
    """
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ConfigurationError(f"Not a HH:MM time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigurationError(f"Hour/minute out of range: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def first_message_time_of(task: Task) -> str:
    """Return the fixed first-contact time, or raise ConfigurationError."""
    if task.first_message_method is not FirstMessageMethod.FIXED:
        raise ConfigurationError(
            f"Task {task.id} has no fixed first-contact time "
            f"(method={task.first_message_method.value})"
        )
    if not is_valid_hhmm(task.first_message_time):
        raise ConfigurationError(
            f"Task {task.id} has fixed first-contact method but time "
            f"{task.first_message_time!r}"
        )
    return task.first_message_time


def compute_next_notification_time(
    notify_method: NotifyMethod,
    notice_interval: int | None,
    notice_time: str | None,
    now: datetime,
) -> str | None:
    """Compute the next reminder timestamp after a send at `now`.

    - none: no further reminders.
    - interval: notice_interval real hours after `now`.
    - fixed: today at notice_time (seconds zeroed), or tomorrow when that
      instant is not strictly after `now`.
    """
    if notify_method is NotifyMethod.NONE:
        return None

    if notify_method is NotifyMethod.INTERVAL:
        hours = notice_interval or _DEFAULT_INTERVAL_HOURS
        # Elapsed time, not wall-clock time
        later = now.astimezone(timezone.utc) + timedelta(hours=hours)
        return format_timestamp(later.astimezone(now.tzinfo))

    if notify_method is NotifyMethod.FIXED:
        if not is_valid_hhmm(notice_time):
            logger.warning("Fixed notify method without a valid time (%r)", notice_time)
            return None
        hour, minute = map(int, notice_time.split(":"))
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return format_timestamp(candidate)

    return None


def next_notification_time_for(task: Task, now: datetime) -> str | None:
    return compute_next_notification_time(
        task.notify_method, task.notice_interval, task.notice_time, now,
    )
