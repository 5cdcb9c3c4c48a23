"""Done-command grammar for inbound chat messages.

    command := [text] ["#"] integer

A message closes a task when it ends with a task number, so "done 3",
"סיימתי משימה מספר 3", "finish task #3" and plain "3" all mean task 3.
Trailing whitespace is ignored; a signed number ("-3") or a number followed
by more text ("3 please") is NoMatch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_DONE_RE = re.compile(r"(?<![-\d])(\d+)\s*$")


@dataclass(frozen=True)
class NoMatch:
    """The message is not a done command."""


@dataclass(frozen=True)
class MarkDone:
    task_number: int


DoneCommand = NoMatch | MarkDone


def parse_done_command(text: str | None) -> DoneCommand:
    """Parse "done 3", "סיימתי משימה 3", "#3" or plain "3" into MarkDone(3)."""
    if not text:
        return NoMatch()
    match = _DONE_RE.search(text)
    if match is None:
        return NoMatch()
    return MarkDone(task_number=int(match.group(1)))
