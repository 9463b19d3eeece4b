# src/todo_lifecycle/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from ..core.clock import to_fixed
from ..errors import InvalidPattern, InvalidTask

MAX_TITLE_LENGTH = 500


class Recurrence(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, raw: str | Recurrence | None) -> Recurrence:
        """
        Strict parse. Empty / None means NONE; anything unknown is an error.

        Stored values are never guessed: a bad value in a row must surface, not
        silently become a non-recurring task.
        """
        if raw is None or raw == "":
            return cls.NONE
        if isinstance(raw, Recurrence):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise InvalidPattern(raw) from None


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, raw: str | Priority | None) -> Priority:
        if raw is None or raw == "":
            return cls.MEDIUM
        if isinstance(raw, Priority):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise InvalidTask(
                "Invalid priority. Must be high, medium, or low",
                {"priority": str(raw)},
            ) from None


@dataclass(slots=True)
class Task:
    id: int
    title: str
    due_at: datetime | None
    completed: bool

    priority: Priority
    tags: tuple[str, ...]
    reminder_offset_minutes: int | None
    recurrence: Recurrence

    last_notified_at: datetime | None
    created_at: datetime
    updated_at: datetime

    completed_at: datetime | None = None
    parent_id: int | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE

    @property
    def reminder_at(self) -> datetime | None:
        """Instant the reminder becomes due (due_at minus the offset)."""
        if self.due_at is None or self.reminder_offset_minutes is None:
            return None
        return self.due_at - timedelta(minutes=self.reminder_offset_minutes)


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """Fields needed to create a task; the store assigns id and timestamps."""

    title: str
    due_at: datetime | None = None
    priority: Priority = Priority.MEDIUM
    tags: tuple[str, ...] = field(default_factory=tuple)
    reminder_offset_minutes: int | None = None
    recurrence: Recurrence = Recurrence.NONE
    parent_id: int | None = None


@dataclass(slots=True)
class Subtask:
    id: int
    task_id: int
    title: str
    completed: bool
    position: int


def validate_draft(draft: TaskDraft, *, now: datetime | None = None) -> TaskDraft:
    """
    Validate and normalize a draft before it reaches the store.

    When `now` is given the due date must lie strictly after it (new tasks
    only; successors spawned on completion skip this).

    Raises InvalidTask.
    """
    title = (draft.title or "").strip()
    if not title:
        raise InvalidTask("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidTask(
            f"Title must be at most {MAX_TITLE_LENGTH} characters",
            {"length": len(title)},
        )

    priority = Priority.parse(draft.priority)
    try:
        recurrence = Recurrence.parse(draft.recurrence)
    except InvalidPattern as e:
        raise InvalidTask(
            "Invalid recurrence pattern. Must be daily, weekly, monthly, or yearly",
            {"recurrence": str(draft.recurrence)},
        ) from e

    offset = draft.reminder_offset_minutes
    if offset is not None:
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidTask(
                "Invalid reminder minutes. Must be a non-negative number",
                {"reminderOffsetMinutes": offset},
            )

    if recurrence != Recurrence.NONE and draft.due_at is None:
        raise InvalidTask("Due date is required for recurring todos")

    if now is not None and draft.due_at is not None and to_fixed(draft.due_at) <= to_fixed(now):
        raise InvalidTask(
            "Due date must be in the future",
            {"dueAt": to_fixed(draft.due_at).isoformat()},
        )

    tags = tuple(str(t).strip() for t in draft.tags if str(t).strip())

    return TaskDraft(
        title=title,
        due_at=draft.due_at,
        priority=priority,
        tags=tags,
        reminder_offset_minutes=offset,
        recurrence=recurrence,
        parent_id=draft.parent_id,
    )
