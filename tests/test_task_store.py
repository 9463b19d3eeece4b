# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from todo_lifecycle.errors import CompletionConflict, InvalidPattern, TaskNotFound
from todo_lifecycle.tasks.task_models import Priority, Recurrence, TaskDraft
from todo_lifecycle.tasks.task_store import TaskStore

from .conftest import at


def test_add_get_roundtrip_keeps_fixed_zone(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    task = store.add_task(
        TaskDraft(
            title="standup",
            due_at=at(2026, 10, 19, 9, 0),
            priority=Priority.LOW,
            tags=("work",),
            reminder_offset_minutes=15,
            recurrence=Recurrence.DAILY,
        )
    )

    loaded = store.get_task(task.id)
    assert loaded == task
    assert loaded.due_at == at(2026, 10, 19, 9, 0)
    assert loaded.due_at.utcoffset().total_seconds() == 8 * 3600
    assert loaded.completed is False
    assert loaded.last_notified_at is None
    assert store.get_task(task.id + 100) is None


def test_conditional_complete_rejects_second_attempt(store) -> None:
    task = store.add_task(TaskDraft(title="one-off"))
    completed, spawned = store.complete_task(task.id, completed_at=at(2026, 10, 19, 9))
    assert completed.completed is True
    assert completed.completed_at == at(2026, 10, 19, 9)
    assert spawned is None

    with pytest.raises(CompletionConflict):
        store.complete_task(task.id, completed_at=at(2026, 10, 19, 10))
    with pytest.raises(CompletionConflict):
        store.complete_task(9999, completed_at=at(2026, 10, 19, 10))


def test_failed_spawn_rolls_back_completion(store) -> None:
    first = store.add_task(
        TaskDraft(title="a", due_at=at(2026, 10, 19, 9), recurrence=Recurrence.DAILY)
    )
    second = store.add_task(
        TaskDraft(title="b", due_at=at(2026, 10, 19, 9), recurrence=Recurrence.DAILY)
    )
    store.complete_task(
        first.id,
        completed_at=at(2026, 10, 19, 9),
        spawn=TaskDraft(title="a", due_at=at(2026, 10, 20, 9), parent_id=first.id),
    )
    total = store.count_tasks()

    # A successor claiming an already-used parent violates the unique index.
    with pytest.raises(sqlite3.IntegrityError):
        store.complete_task(
            second.id,
            completed_at=at(2026, 10, 19, 9),
            spawn=TaskDraft(title="b", due_at=at(2026, 10, 20, 9), parent_id=first.id),
        )

    assert store.get_task(second.id).completed is False
    assert store.count_tasks() == total


def test_claim_due_reminders_marks_once(store) -> None:
    due = store.add_task(
        TaskDraft(title="due", due_at=at(2026, 10, 19, 9), reminder_offset_minutes=15)
    )
    store.add_task(TaskDraft(title="later", due_at=at(2026, 10, 19, 12), reminder_offset_minutes=15))
    store.add_task(TaskDraft(title="no reminder", due_at=at(2026, 10, 19, 8)))
    store.add_task(TaskDraft(title="no due", reminder_offset_minutes=5))

    now = at(2026, 10, 19, 8, 45)
    batch = store.claim_due_reminders(now)
    assert [t.id for t in batch] == [due.id]
    assert batch[0].last_notified_at == now
    assert store.get_task(due.id).last_notified_at == now

    assert store.claim_due_reminders(at(2026, 10, 19, 8, 50)) == []


def test_claim_skips_completed_tasks(store) -> None:
    task = store.add_task(
        TaskDraft(title="done already", due_at=at(2026, 10, 19, 9), reminder_offset_minutes=30)
    )
    store.complete_task(task.id, completed_at=at(2026, 10, 19, 8))
    assert store.claim_due_reminders(at(2026, 10, 19, 9)) == []


def test_subtasks_are_listed_in_order_and_need_a_parent(store) -> None:
    task = store.add_task(TaskDraft(title="trip"))
    store.add_subtask(task.id, "passport")
    store.add_subtask(task.id, "tickets")

    subs = store.list_subtasks(task.id)
    assert [s.title for s in subs] == ["passport", "tickets"]
    assert [s.position for s in subs] == [0, 1]

    with pytest.raises(TaskNotFound):
        store.add_subtask(task.id + 1, "orphan")


def test_delete_cascades_subtasks(store) -> None:
    task = store.add_task(TaskDraft(title="trip"))
    store.add_subtask(task.id, "passport")

    assert store.delete_task(task.id) is True
    assert store.get_task(task.id) is None
    assert store.list_subtasks(task.id) == []
    assert store.delete_task(task.id) is False


def test_corrupt_recurrence_fails_loudly(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    store = TaskStore(db)
    task = store.add_task(TaskDraft(title="x"))

    conn = sqlite3.connect(db)
    conn.execute("UPDATE tasks SET recurrence = 'fortnightly' WHERE id = ?", (task.id,))
    conn.commit()
    conn.close()

    with pytest.raises(InvalidPattern):
        store.get_task(task.id)


def test_unreadable_row_does_not_block_other_reminders(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    store = TaskStore(db)
    bad = store.add_task(
        TaskDraft(title="bad", due_at=at(2026, 10, 19, 9), reminder_offset_minutes=15)
    )
    good = store.add_task(
        TaskDraft(title="good", due_at=at(2026, 10, 19, 9), reminder_offset_minutes=15)
    )

    conn = sqlite3.connect(db)
    conn.execute("UPDATE tasks SET recurrence = 'hourly' WHERE id = ?", (bad.id,))
    conn.commit()
    conn.close()

    now = at(2026, 10, 19, 8, 50)
    assert [t.id for t in store.claim_due_reminders(now)] == [good.id]
    assert store.get_task(good.id).last_notified_at == now
    assert store.claim_due_reminders(at(2026, 10, 19, 8, 55)) == []

    conn = sqlite3.connect(db)
    row = conn.execute("SELECT last_notified_at FROM tasks WHERE id = ?", (bad.id,)).fetchone()
    conn.close()
    assert row[0] is None


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute(
        """
        CREATE TABLE tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            due_at REAL,
            completed INTEGER NOT NULL DEFAULT 0,
            priority TEXT NOT NULL DEFAULT 'medium',
            tags TEXT NOT NULL DEFAULT '[]',
            reminder_offset_minutes INTEGER,
            recurrence TEXT NOT NULL DEFAULT 'none',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO tasks(title, created_at, updated_at) VALUES ('legacy', 0, 0)"
    )
    conn.commit()
    conn.close()

    store = TaskStore(db)
    legacy = store.get_task(1)
    assert legacy is not None
    assert legacy.last_notified_at is None
    assert legacy.completed_at is None
    assert legacy.parent_id is None
