# src/todo_lifecycle/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The coordinator and dispatcher depend on Protocols instead of the SQLite store
or a concrete notification channel. This keeps storage/delivery swappable and
makes testing easier.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Protocol

if TYPE_CHECKING:
    from ..tasks.reminders import ReminderNotice
    from ..tasks.task_models import Subtask, Task, TaskDraft


class TaskRepo(Protocol):
    # CRUD collaborator surface
    def get_task(self, task_id: int) -> Task | None: ...
    def add_task(self, draft: TaskDraft) -> Task: ...
    def list_open_tasks(self, limit: int = 100) -> list[Task]: ...
    def count_tasks(self) -> int: ...

    def add_subtask(self, task_id: int, title: str) -> Subtask: ...
    def list_subtasks(self, task_id: int) -> list[Subtask]: ...

    # Completion critical section
    def complete_task(
            self,
            task_id: int,
            *,
            completed_at: datetime,
            spawn: TaskDraft | None = None,
    ) -> tuple[Task, Task | None]:
        """
        Conditionally flip completed False -> True and, in the same unit,
        create `spawn`. Raises CompletionConflict if the row is missing or
        already completed; nothing is written in that case.
        """
        ...

    # Reminder selection
    def claim_due_reminders(self, now: datetime) -> list[Task]:
        """Select open due-reminder tasks with last_notified_at NULL and mark them, atomically."""
        ...


class ReminderNotifier(Protocol):
    """
    Delivery-side port: how the reminder poller hands a notice outward
    (console, push service, chat connector...).
    """

    def notify(self, notice: ReminderNotice) -> Awaitable[None]: ...
