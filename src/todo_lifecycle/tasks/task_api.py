# src/todo_lifecycle/tasks/task_api.py

"""
Transport-agnostic entry points.

Request handlers (HTTP, RPC, console commands) call these and get a response
envelope back: {"ok": True, "data": ...} or {"ok": False, "status": ..., "error": ...}.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..core.clock import now_fixed, to_fixed_iso
from ..core.state import AppState
from ..errors import (
    InvalidTask,
    PersistenceFailed,
    TodoLifecycleError,
    error_response,
    success_response,
)
from .task_models import Task, TaskDraft, validate_draft

logger = logging.getLogger(__name__)


def task_to_dict(task: Task | None) -> dict[str, Any] | None:
    if task is None:
        return None
    return {
        "id": task.id,
        "title": task.title,
        "dueAt": to_fixed_iso(task.due_at),
        "completed": task.completed,
        "completedAt": to_fixed_iso(task.completed_at),
        "priority": task.priority.value,
        "tags": list(task.tags),
        "reminderOffsetMinutes": task.reminder_offset_minutes,
        "recurrence": task.recurrence.value,
        "lastNotifiedAt": to_fixed_iso(task.last_notified_at),
        "parentId": task.parent_id,
        "createdAt": to_fixed_iso(task.created_at),
        "updatedAt": to_fixed_iso(task.updated_at),
    }


def _failure(err: TodoLifecycleError) -> dict[str, Any]:
    return error_response(err.error, status=err.status)


def create_task(
    state: AppState,
    *,
    title: str,
    due_at: datetime | None = None,
    priority: str = "medium",
    tags: Iterable[str] = (),
    reminder_offset_minutes: int | None = None,
    recurrence: str = "none",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Validate and store a new task (CRUD convenience used by the console and tests)."""
    try:
        draft = validate_draft(
            TaskDraft(
                title=title,
                due_at=due_at,
                priority=priority,  # type: ignore[arg-type]
                tags=tuple(tags),
                reminder_offset_minutes=reminder_offset_minutes,
                recurrence=recurrence,  # type: ignore[arg-type]
            ),
            now=now if now is not None else now_fixed(),
        )
    except TodoLifecycleError as e:
        logger.info("Rejected task draft: %s", e)
        return _failure(e)

    try:
        task = state.task_store.add_task(draft)
    except sqlite3.Error as e:
        logger.exception("Storing new task failed")
        return _failure(PersistenceFailed("Failed to create task", {"cause": str(e)}))
    return success_response({"task": task_to_dict(task)})


def complete_task(state: AppState, task_id: Any, *, now: datetime | None = None) -> dict[str, Any]:
    """CompleteTask(id) -> {completedTask, spawnedTask}."""
    try:
        task_id = int(task_id)
    except (TypeError, ValueError):
        return _failure(InvalidTask("Task id must be a number", {"taskId": str(task_id)}))

    try:
        result = state.coordinator.complete(task_id, now=now)
    except TodoLifecycleError as e:
        logger.info("complete_task(%s) failed: %s", task_id, e.error.code)
        return _failure(e)

    return success_response(
        {
            "completedTask": task_to_dict(result.completed),
            "spawnedTask": task_to_dict(result.spawned),
            "alreadyCompleted": result.already_completed,
        }
    )


def poll_reminders(state: AppState, now: datetime | None = None) -> dict[str, Any]:
    """PollReminders(now?) -> {dueReminders: [...]}."""
    try:
        batch = state.dispatcher.poll_due_reminders(now)
    except TodoLifecycleError as e:
        return _failure(e)
    return success_response({"dueReminders": [task_to_dict(t) for t in batch]})
