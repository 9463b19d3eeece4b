# src/todo_lifecycle/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..tasks.lifecycle import TodoLifecycleCoordinator
    from ..tasks.reminders import ReminderDispatcher
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """
    Wired application objects shared by entry points and connectors.

    settings is typed loosely so tests can pass a SimpleNamespace.
    """

    settings: Any
    task_store: TaskStore
    coordinator: TodoLifecycleCoordinator
    dispatcher: ReminderDispatcher
