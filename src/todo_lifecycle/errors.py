# src/todo_lifecycle/errors.py

"""Error taxonomy shared by the lifecycle engine and its entry points."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class ErrorResponse:
    """Serializable error payload returned by entry points."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class TodoLifecycleError(RuntimeError):
    """Base exception carrying a structured error response and a status hint."""

    code = "internal_error"
    status = 500

    def __init__(self, message: str, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.error = ErrorResponse(code=self.code, message=message, details=dict(details or {}))


class TaskNotFound(TodoLifecycleError):
    code = "not_found"
    status = 404

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found", {"taskId": task_id})
        self.task_id = task_id


class InvalidPattern(TodoLifecycleError, ValueError):
    """Recurrence value outside {daily, weekly, monthly, yearly} reached the calculator."""

    code = "invalid_pattern"
    status = 500

    def __init__(self, pattern: object) -> None:
        super().__init__(f"Invalid recurrence pattern: {pattern!r}", {"pattern": str(pattern)})
        self.pattern = pattern


class InvalidTask(TodoLifecycleError, ValueError):
    code = "invalid_task"
    status = 400


class PersistenceFailed(TodoLifecycleError):
    """Storage failed; nothing was committed. Safe to retry a completion."""

    code = "persistence_failed"
    status = 500


class CompletionConflict(TodoLifecycleError):
    """
    Conditional completion matched no row.

    Raised by the store when the task is gone or another caller completed it first.
    """

    code = "completion_conflict"
    status = 409

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} was not open for completion", {"taskId": task_id})
        self.task_id = task_id


def success_response(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a successful response in the standard envelope."""
    return {"ok": True, "data": payload}


def error_response(error: ErrorResponse, status: int = 500) -> dict[str, Any]:
    """Wrap an error response in the standard envelope."""
    return {"ok": False, "status": status, "error": error.to_dict()}
