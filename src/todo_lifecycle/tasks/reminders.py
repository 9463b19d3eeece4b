# src/todo_lifecycle/tasks/reminders.py

from __future__ import annotations

"""
Reminder selection.

A poll claims every open task whose reminder time (due_at minus offset) has
passed and that has not been notified yet. The claim marks last_notified_at in
the same transaction that selects the rows, so a due occurrence lands in at
most one batch no matter how many pollers run.

Delivery is not done here: the batch goes back to the caller, which renders it
with build_reminder() and hands it to a notifier outside any lock.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..core.clock import format_fixed, now_fixed, to_fixed
from ..core.ports import TaskRepo
from ..errors import PersistenceFailed
from .task_models import Task

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderNotice:
    """
    What the poller wants delivered.

    The notifier decides where/how to actually show it.
    """

    task: Task
    title: str
    body: str
    tag: str


def build_reminder(task: Task, now: datetime) -> ReminderNotice:
    """Render a claimed task as a notice: 'Due in N minutes', 'Due now!' or the due date."""
    body = "Due soon"
    if task.due_at is not None:
        minutes_left = int((to_fixed(task.due_at) - to_fixed(now)).total_seconds() // 60)
        if minutes_left > 0:
            body = f"Due in {minutes_left} minutes"
        elif minutes_left == 0:
            body = "Due now!"
        else:
            body = f"Due: {format_fixed(task.due_at)}"

    return ReminderNotice(
        task=task,
        title=f"📋 {task.title}",
        body=body,
        tag=f"todo-{task.id}",
    )


class ReminderDispatcher:
    def __init__(self, repo: TaskRepo, *, clock: Callable[[], datetime] = now_fixed) -> None:
        self._repo = repo
        self._clock = clock

    def poll_due_reminders(self, now: datetime | None = None) -> list[Task]:
        """
        Claim the reminders due at `now` (default: current fixed-zone instant).

        Every returned task already has last_notified_at == now persisted.
        """
        now = to_fixed(now) if now is not None else self._clock()

        try:
            batch = self._repo.claim_due_reminders(now)
        except sqlite3.Error as e:
            logger.exception("Reminder claim failed at %s", now)
            raise PersistenceFailed("Failed to poll due reminders", {"now": now.isoformat()}) from e

        if batch:
            logger.info("Claimed %d due reminder(s): %s", len(batch), [t.id for t in batch])
        else:
            logger.debug("No due reminders at %s", now)
        return batch
