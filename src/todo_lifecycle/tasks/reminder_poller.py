# src/todo_lifecycle/tasks/reminder_poller.py

from __future__ import annotations

"""
Reminder poller.

A small polling loop that:
- claims due reminders through the dispatcher,
- renders them into notices,
- hands at most `max_per_cycle` notices per cycle to an injected notifier,
- keeps the overflow for the next cycle.

Claimed notices are never re-claimed from the store: a failed delivery is
logged and dropped.
"""

import asyncio
import contextlib
import logging
import threading
from collections import deque
from dataclasses import dataclass

from ..core.clock import now_fixed
from ..core.ports import ReminderNotifier
from ..core.state import AppState
from .reminders import ReminderDispatcher, ReminderNotice, build_reminder

logger = logging.getLogger(__name__)


async def deliver_cycle(
        dispatcher: ReminderDispatcher,
        notifier: ReminderNotifier,
        backlog: deque[ReminderNotice],
        *,
        max_per_cycle: int = 5,
) -> int:
    """
    One poll + delivery pass. Returns how many notices were handed to the notifier.
    """
    now = now_fixed()

    try:
        batch = dispatcher.poll_due_reminders(now)
    except Exception:
        logger.exception("poll_due_reminders failed")
        batch = []

    for task in batch:
        backlog.append(build_reminder(task, now))

    sent = 0
    while backlog and sent < max_per_cycle:
        notice = backlog.popleft()
        try:
            await notifier.notify(notice)
            logger.info("Reminder sent task_id=%s (%s)", notice.task.id, notice.body)
        except Exception:
            logger.exception("Reminder delivery failed task_id=%s", notice.task.id)
        sent += 1

    if backlog:
        logger.info("Reminder backlog: %d notice(s) deferred to next cycle", len(backlog))
    return sent


async def run_reminder_poller(
        dispatcher: ReminderDispatcher,
        notifier: ReminderNotifier,
        *,
        interval_seconds: float = 60.0,
        max_per_cycle: int = 5,
) -> None:
    """
    Simple polling loop: every interval_seconds run deliver_cycle().

    To stop the poller, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    cap = max(1, int(max_per_cycle))
    backlog: deque[ReminderNotice] = deque()

    while True:
        await deliver_cycle(dispatcher, notifier, backlog, max_per_cycle=cap)
        await asyncio.sleep(sleep_s)


async def _run_until_stopped(
        dispatcher: ReminderDispatcher,
        notifier: ReminderNotifier,
        stop_event: asyncio.Event,
        *,
        interval_seconds: float,
        max_per_cycle: int,
) -> None:
    poller = asyncio.create_task(
        run_reminder_poller(
            dispatcher,
            notifier,
            interval_seconds=interval_seconds,
            max_per_cycle=max_per_cycle,
        )
    )
    try:
        await stop_event.wait()
    finally:
        poller.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await poller
        logger.info("Reminder poller stopped.")


@dataclass
class ReminderBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Reminder loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_reminders_in_background(
        state: AppState,
        notifier: ReminderNotifier,
) -> ReminderBackgroundRunner | None:
    """
    Start the reminder poller on its own event loop in a daemon thread,
    so the blocking console REPL can run in parallel.
    """
    settings = state.settings
    if not settings.reminders_enabled:
        logger.info("Reminders disabled, not starting poller.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                _run_until_stopped(
                    state.dispatcher,
                    notifier,
                    stop_event,
                    interval_seconds=settings.reminder_poll_seconds,
                    max_per_cycle=settings.reminder_max_per_cycle,
                )
            )
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="reminder-poller", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Reminder thread did not initialize properly.")
        return None

    logger.info(
        "Reminder poller started (every %.0fs, max %d per cycle).",
        settings.reminder_poll_seconds,
        settings.reminder_max_per_cycle,
    )
    return ReminderBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
