# tests/conftest.py

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_lifecycle.cli.bootstrap import create_initial_state
from todo_lifecycle.core.clock import FIXED_TZ
from todo_lifecycle.core.state import AppState
from todo_lifecycle.tasks.task_store import TaskStore


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Fixed-zone instant shorthand for tests."""
    return datetime(year, month, day, hour, minute, tzinfo=FIXED_TZ)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI wiring.

    A SimpleNamespace rather than the real config keeps tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="todo-lifecycle-test",
        log_level="DEBUG",
        console_enabled=False,
        reminders_enabled=True,
        reminder_poll_seconds=0.01,
        reminder_max_per_cycle=5,
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired with a real SQLite store: its transactional behaviour is
    part of what we want to test.
    """
    return create_initial_state(settings=settings)


@pytest.fixture()
def store(state: AppState) -> TaskStore:
    return state.task_store
