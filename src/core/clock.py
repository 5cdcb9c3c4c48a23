"""Civil clock and canonical timestamp formatting.

All persisted timestamps use the canonical form "YYYY-MM-DD HH:MM:SS" in the
configured civil timezone. Stored values are compared as strings elsewhere,
so every field must stay zero-padded.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Clock(Protocol):
    """Source of the current civil time."""

    def now(self) -> datetime: ...


class ZoneClock:
    """Wall clock in a fixed IANA timezone."""

    def __init__(self, tz_name: str) -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class ManualClock:
    """Virtual clock that only moves when told to.

    Lets tests drive the scheduler minute by minute without real timers.
    """

    def __init__(self, start: datetime) -> None:
        self._now = start
        self.tz = start.tzinfo

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a timedelta given as keyword args (minutes=1, ...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


def format_timestamp(dt: datetime) -> str:
    """Render a datetime in the canonical civil form."""
    return dt.strftime(TIMESTAMP_FORMAT)


def format_hhmm(dt: datetime) -> str:
    return dt.strftime("%H:%M")
