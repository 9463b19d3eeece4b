# src/todo_lifecycle/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Callable
from typing import cast

from ..core.clock import format_fixed, now_fixed, parse_due_input, parse_instant
from ..core.state import AppState
from ..errors import InvalidTask, TodoLifecycleError
from ..tasks import task_api
from ..tasks.reminders import build_reminder
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_task(task: Task) -> str:
    due = format_fixed(task.due_at) if task.due_at else "no due date"
    parts = [f"#{task.id} {task.title}", f"[{task.priority.value}]", f"due {due}"]
    if task.is_recurring:
        parts.append(f"repeats {task.recurrence.value}")
    if task.reminder_offset_minutes is not None:
        parts.append(f"remind {task.reminder_offset_minutes}m before")
    if task.tags:
        parts.append("tags " + ",".join(task.tags))
    if task.completed:
        parts.append("(done)")
    return " ".join(parts)


def _parse_int(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise InvalidTask(f"{what} must be a number", {what: raw}) from None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    return (
        "Status:\n"
        f"  Time (fixed zone): {format_fixed(now_fixed())}\n"
        f"  Tasks in store: {state.task_store.count_tasks()}\n"
        f"  Reminders: {'ON' if settings.reminders_enabled else 'OFF'}"
        f" (every {settings.reminder_poll_seconds:.0f}s,"
        f" max {settings.reminder_max_per_cycle} per cycle)"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title> [due=YYYY-MM-DDTHH:MM] [every=daily|weekly|monthly|yearly]
         [remind=<minutes>] [priority=high|medium|low] [tags=a,b]
    """
    title_words: list[str] = []
    opts: dict[str, str] = {}
    for token in args:
        key, sep, value = token.partition("=")
        if sep and key in {"due", "every", "remind", "priority", "tags"}:
            opts[key] = value
        else:
            title_words.append(token)

    try:
        due_at = parse_due_input(opts["due"]) if "due" in opts else None
        remind = _parse_int(opts["remind"], "remind") if "remind" in opts else None
    except InvalidTask as e:
        return f"Error: {e}"

    resp = task_api.create_task(
        state,
        title=" ".join(title_words),
        due_at=due_at,
        priority=opts.get("priority", "medium"),
        tags=[t for t in opts.get("tags", "").split(",") if t],
        reminder_offset_minutes=remind,
        recurrence=opts.get("every", "none"),
    )
    if not resp["ok"]:
        return f"Error: {resp['error']['message']}"
    task = state.task_store.get_task(resp["data"]["task"]["id"])
    return f"Added {_format_task(task)}" if task else "Added."


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.task_store.list_open_tasks()
    if not tasks:
        return "No open tasks."
    return "Open tasks:\n" + "\n".join(f"  {_format_task(t)}" for t in tasks)


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    try:
        task_id = _parse_int(args[0], "id")
    except InvalidTask as e:
        return f"Error: {e}"

    resp = task_api.complete_task(state, task_id)
    if not resp["ok"]:
        return f"Error: {resp['error']['message']}"

    data = resp["data"]
    if data["alreadyCompleted"]:
        return f"Task #{task_id} was already completed."
    spawned = data["spawnedTask"]
    if spawned:
        return f"Completed #{task_id}. Next occurrence #{spawned['id']} due {spawned['dueAt']}."
    return f"Completed #{task_id}."


def cmd_delete(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete <id>"
    try:
        task_id = _parse_int(args[0], "id")
    except InvalidTask as e:
        return f"Error: {e}"
    if state.task_store.delete_task(task_id):
        return f"Deleted #{task_id}."
    return f"Task #{task_id} not found."


def cmd_subtask(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /sub <task id> <subtask title>"
    try:
        task_id = _parse_int(args[0], "id")
        sub = state.task_store.add_subtask(task_id, " ".join(args[1:]))
    except (TodoLifecycleError, ValueError) as e:
        return f"Error: {e}"
    return f"Subtask #{sub.id} added to task #{task_id}."


def cmd_poll(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    try:
        now = parse_instant(args[0]) if args else now_fixed()
        batch = state.dispatcher.poll_due_reminders(now)
    except TodoLifecycleError as e:
        return f"Error: {e}"

    if not batch:
        return "No reminders due."

    if emit is not None:
        for task in batch:
            notice = build_reminder(task, now)
            emit(f"{notice.title}: {notice.body}")
    return f"{len(batch)} reminder(s) claimed."


registry.register("help", cmd_help, "Show this help.", aliases=["h", "?"])
registry.register("status", cmd_status, "Show store and reminder settings.")
registry.register(
    "add",
    cmd_add,
    "Add a task: /add <title> due=YYYY-MM-DDTHH:MM every=daily remind=15 priority=high tags=a,b",
)
registry.register("list", cmd_list, "List open tasks.", aliases=["ls"])
registry.register("done", cmd_done, "Complete a task (spawns the next one if it repeats).")
registry.register("delete", cmd_delete, "Delete a task and its subtasks.", aliases=["rm"])
registry.register("sub", cmd_subtask, "Add a subtask: /sub <task id> <title>.")
registry.register("poll", cmd_poll, "Claim due reminders: /poll [ISO instant, default now].")
