# tests/test_reminder_poller.py

from __future__ import annotations

import asyncio
import sqlite3
from collections import deque

import pytest

from todo_lifecycle.tasks.reminder_poller import (
    deliver_cycle,
    run_reminder_poller,
    start_reminders_in_background,
)
from todo_lifecycle.tasks.reminders import ReminderDispatcher
from todo_lifecycle.tasks.task_models import TaskDraft

from .conftest import at
from .fakes import InMemoryTaskRepo, RecordingNotifier


def _repo_with_due(count: int) -> InMemoryTaskRepo:
    repo = InMemoryTaskRepo()
    for i in range(count):
        # Due long ago: always eligible on the first poll.
        repo.add_task(
            TaskDraft(title=f"t{i}", due_at=at(2020, 1, 1, 9, 0), reminder_offset_minutes=10)
        )
    return repo


@pytest.mark.asyncio
async def test_cycle_respects_cap_and_defers_overflow() -> None:
    repo = _repo_with_due(7)
    notifier = RecordingNotifier()
    backlog = deque()
    dispatcher = ReminderDispatcher(repo)

    sent = await deliver_cycle(dispatcher, notifier, backlog, max_per_cycle=5)
    assert sent == 5
    assert len(backlog) == 2
    assert all(t.last_notified_at is not None for t in repo.tasks.values())

    sent = await deliver_cycle(dispatcher, notifier, backlog, max_per_cycle=5)
    assert sent == 2
    assert not backlog
    assert sorted(n.task.id for n in notifier.sent) == sorted(repo.tasks)


@pytest.mark.asyncio
async def test_failed_delivery_is_dropped_not_reclaimed() -> None:
    repo = _repo_with_due(3)
    notifier = RecordingNotifier(fail_for={2})
    backlog = deque()
    dispatcher = ReminderDispatcher(repo)

    await deliver_cycle(dispatcher, notifier, backlog)
    await deliver_cycle(dispatcher, notifier, backlog)

    assert [n.task.id for n in notifier.sent] == [1, 3]
    assert repo.tasks[2].last_notified_at is not None


@pytest.mark.asyncio
async def test_poll_failure_does_not_break_the_cycle() -> None:
    repo = _repo_with_due(1)
    repo.fail_on_claim = sqlite3.OperationalError("database is locked")
    notifier = RecordingNotifier()

    sent = await deliver_cycle(ReminderDispatcher(repo), notifier, deque())
    assert sent == 0

    repo.fail_on_claim = None
    sent = await deliver_cycle(ReminderDispatcher(repo), notifier, deque())
    assert sent == 1


@pytest.mark.asyncio
async def test_poller_delivers_each_reminder_once() -> None:
    repo = _repo_with_due(2)
    notifier = RecordingNotifier()

    runner = asyncio.create_task(
        run_reminder_poller(
            ReminderDispatcher(repo),
            notifier,
            interval_seconds=0.01,
            max_per_cycle=5,
        )
    )

    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert sorted(n.task.id for n in notifier.sent) == [1, 2]


def test_background_runner_starts_and_stops(state, store) -> None:
    store.add_task(TaskDraft(title="bg", due_at=at(2020, 1, 1, 9, 0), reminder_offset_minutes=0))
    notifier = RecordingNotifier()

    runner = start_reminders_in_background(state, notifier)
    assert runner is not None
    try:
        for _ in range(200):
            if notifier.sent:
                break
            runner.thread.join(timeout=0.01)
    finally:
        runner.stop()
        runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
    assert [n.task.title for n in notifier.sent] == ["bg"]


def test_background_runner_disabled(state) -> None:
    state.settings.reminders_enabled = False
    assert start_reminders_in_background(state, RecordingNotifier()) is None
