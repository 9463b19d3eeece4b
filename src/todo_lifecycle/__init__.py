"""
Recurring todo lifecycle engine.

Components:
- tasks/recurrence.py: next occurrence for daily/weekly/monthly/yearly tasks
- tasks/lifecycle.py: idempotent completion that spawns the next instance
- tasks/reminders.py: at-most-once claim of due reminders
- tasks/reminder_poller.py: periodic loop that delivers claimed reminders
- tasks/task_store.py: SQLite-backed storage
- tasks/task_api.py: transport-agnostic entry points
"""

__version__ = "0.1.0"
