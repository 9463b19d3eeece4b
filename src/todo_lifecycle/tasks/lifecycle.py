# src/todo_lifecycle/tasks/lifecycle.py

from __future__ import annotations

"""
Task completion.

Completing a task flips `completed` once and, for recurring tasks, creates
exactly one successor in the same storage transaction. The next due date is
computed from the completion instant, not the old due date.

Repeated or concurrent completions of the same id are no-ops that return the
already-completed record.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..core.clock import now_fixed, to_fixed
from ..core.ports import TaskRepo
from ..errors import CompletionConflict, PersistenceFailed, TaskNotFound
from .recurrence import next_due_date
from .task_models import Task, TaskDraft

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CompletionResult:
    completed: Task
    spawned: Task | None
    already_completed: bool = False


def build_next_instance(task: Task, next_due: datetime) -> TaskDraft:
    """
    Successor draft for a recurring task.

    Copies title, priority, tags, reminder offset and recurrence. Subtasks are
    not carried over; the successor starts with none.
    """
    return TaskDraft(
        title=task.title,
        due_at=next_due,
        priority=task.priority,
        tags=tuple(task.tags),
        reminder_offset_minutes=task.reminder_offset_minutes,
        recurrence=task.recurrence,
        parent_id=task.id,
    )


class TodoLifecycleCoordinator:
    def __init__(self, repo: TaskRepo, *, clock: Callable[[], datetime] = now_fixed) -> None:
        self._repo = repo
        self._clock = clock

    def complete(self, task_id: int, *, now: datetime | None = None) -> CompletionResult:
        """
        Complete `task_id`, spawning the next instance if it recurs.

        Raises:
        - TaskNotFound if the id does not exist
        - InvalidPattern if the stored recurrence is unusable
        - PersistenceFailed if storage fails (nothing committed; safe to retry)
        """
        now = to_fixed(now) if now is not None else self._clock()

        task = self._load(task_id)
        if task.completed:
            logger.debug("Task %s already completed; no-op", task_id)
            return CompletionResult(completed=task, spawned=None, already_completed=True)

        spawn: TaskDraft | None = None
        if task.is_recurring:
            if task.due_at is None:
                logger.warning(
                    "Task %s recurs (%s) but has no due date; completing without successor",
                    task_id,
                    task.recurrence.value,
                )
            else:
                spawn = build_next_instance(task, next_due_date(now, task.recurrence))

        try:
            completed, spawned = self._repo.complete_task(task_id, completed_at=now, spawn=spawn)
        except CompletionConflict:
            # Lost the race (or the row vanished): report whatever won.
            current = self._load(task_id)
            logger.info("Task %s completed concurrently by another caller", task_id)
            return CompletionResult(completed=current, spawned=None, already_completed=True)
        except sqlite3.Error as e:
            logger.exception("Completion of task %s failed in storage", task_id)
            raise PersistenceFailed(
                f"Failed to complete task {task_id}",
                {"taskId": task_id},
            ) from e

        if spawned is not None:
            logger.info(
                "Task %s completed; next %s instance %s due %s",
                task_id,
                task.recurrence.value,
                spawned.id,
                spawned.due_at,
            )
        else:
            logger.info("Task %s completed", task_id)

        return CompletionResult(completed=completed, spawned=spawned)

    def _load(self, task_id: int) -> Task:
        try:
            task = self._repo.get_task(task_id)
        except sqlite3.Error as e:
            raise PersistenceFailed(f"Failed to load task {task_id}", {"taskId": task_id}) from e
        if task is None:
            raise TaskNotFound(task_id)
        return task
