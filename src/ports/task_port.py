"""Task storage ports — abstract interfaces for tasks and recipients.

Core modules depend on these protocols, never on a specific store.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from src.data.models import Duration, NewTask, Role, Task


class RepositoryError(Exception):
    """Raised when a task or recipient store query/transaction fails."""


class TaskRepository(Protocol):
    """Abstract task store used by the scheduling core."""

    def list_open_tasks(self) -> list[Task]: ...

    def list_tasks(self, duration: Duration | None = None) -> list[Task]: ...

    def list_tasks_for_date(self, view_date: date) -> list[Task]: ...

    def list_daily_tasks_created_on(self, day: date) -> list[Task]: ...

    def get_task(self, task_id: int) -> Task | None: ...

    def insert_task(self, new_task: NewTask) -> Task: ...

    def update_task(self, task_id: int, **fields: object) -> bool: ...

    def delete_task(self, task_id: int) -> bool: ...

    def mark_done(self, role: Role, task_number: int) -> bool: ...


class RecipientRegistry(Protocol):
    """Chats that opted in to receive task messages."""

    def list(self) -> list[int]: ...

    def register(self, chat_id: int) -> bool: ...
