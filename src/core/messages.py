"""Outgoing message texts.

Messages are Hebrew and Markdown-formatted. Each one starts with U+200F so
Telegram lays it out right-to-left even when a task title is in Latin script.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from src.data.models import Duration, Role

if TYPE_CHECKING:
    from src.data.models import Task

RLM = "\u200f"

ROLE_NAMES = {
    Role.MANAGEMENT: "הנהלה",
    Role.WAITERS: "מלצר",
    Role.BAR: "בר",
    Role.COOKS: "טבח",
}

DURATION_SECTIONS = {
    Duration.DAILY: "משימות יומיות",
    Duration.WEEKLY: "משימות שבועיות",
    Duration.MONTHLY: "משימות חודשיות",
}

# Fixed section order inside one role message
DURATION_ORDER = (Duration.DAILY, Duration.WEEKLY, Duration.MONTHLY)

REGISTERED_TEXT = "נרשמת בהצלחה :D"
ALREADY_REGISTERED_TEXT = "את/ה כבר רשום/ה לקבלת עדכונים."
UNRECOGNIZED_TEXT = (
    'הודעה לא מזוהה, אנא הקלד "סיימתי משימה x" '
    "או פשוט מספר המשימה כדי לסיים משימה."
)
ERROR_TEXT = "קרתה בעיה, נסה שוב"


def role_name(role: Role) -> str:
    return ROLE_NAMES.get(role, "תפקיד לא ידוע")


def first_contact_header(role: Role) -> str:
    return f"{RLM}📢 *משימות חדשות לתפקיד {role_name(role)}*:\n\n"


def reminder_header(role: Role) -> str:
    return f"{RLM}📢 *תזכורות חדשות לתפקיד {role_name(role)}:*\n\n"


def format_task_line(task: Task) -> str:
    return f"{task.task_number}. {task.title}\n📄 {task.details}\n\n"


def render_role_message(header: str, sections: dict[Duration, list[Task]]) -> str:
    """Header followed by one section per non-empty duration class."""
    parts = [header]
    for duration in DURATION_ORDER:
        tasks = sections.get(duration) or []
        if not tasks:
            continue
        parts.append(f"*{DURATION_SECTIONS[duration]}:*\n")
        parts.extend(format_task_line(t) for t in tasks)
    return "".join(parts)


def task_done_text(task_number: int) -> str:
    return f"משימה מספר {task_number}# בוצעה בהצלחה ✅"


def task_not_found_text(task_number: int) -> str:
    return f"משימה מספר {task_number} לא נמצאה"


def day_overview_text(tasks: Iterable[Task]) -> str:
    """Plain listing of the tasks active today, one line per task."""
    lines = [f"{RLM}*משימות להיום:*"]
    for t in tasks:
        lines.append(f"{t.task_number}. [{role_name(t.role)}] {t.title} ({t.status.value})")
    if len(lines) == 1:
        return f"{RLM}אין משימות פתוחות להיום."
    return "\n".join(lines)
