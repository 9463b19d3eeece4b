# tests/test_config.py

from __future__ import annotations

from pathlib import Path

from todo_lifecycle.config import Settings


def test_defaults_without_environment(monkeypatch) -> None:
    for name in (
        "TODOLC_APP_NAME",
        "TODOLC_DATA_DIR",
        "TODOLC_TASKS_DB_PATH",
        "TODOLC_REMINDER_POLL_SECONDS",
        "TODOLC_REMINDER_MAX_PER_CYCLE",
        "TODOLC_REMINDERS_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()
    assert s.app_name == "todo-lifecycle"
    assert s.reminder_poll_seconds == 60.0
    assert s.reminder_max_per_cycle == 5
    assert s.reminders_enabled is True
    assert s.tasks_db_path == Path(".local/todo_lifecycle") / "tasks.sqlite3"


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TODOLC_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("TODOLC_TASKS_DB_PATH", raising=False)
    monkeypatch.setenv("TODOLC_REMINDER_POLL_SECONDS", "15")
    monkeypatch.setenv("TODOLC_REMINDER_MAX_PER_CYCLE", "0")
    monkeypatch.setenv("TODOLC_REMINDERS_ENABLED", "off")
    monkeypatch.setenv("TODOLC_CONSOLE_ENABLED", "yes")

    s = Settings.from_env()
    assert s.data_dir == tmp_path
    assert s.tasks_db_path == tmp_path / "tasks.sqlite3"
    assert s.reminder_poll_seconds == 15.0
    assert s.reminder_max_per_cycle == 1
    assert s.reminders_enabled is False
    assert s.console_enabled is True


def test_bad_numbers_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("TODOLC_REMINDER_POLL_SECONDS", "soon")
    monkeypatch.setenv("TODOLC_REMINDER_MAX_PER_CYCLE", "many")

    s = Settings.from_env()
    assert s.reminder_poll_seconds == 60.0
    assert s.reminder_max_per_cycle == 5
