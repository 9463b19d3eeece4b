# src/todo_lifecycle/core/clock.py

"""
Fixed civil clock.

Every instant the engine handles lives in one fixed zone (UTC+8, no DST).
Naive datetimes are read as wall-clock time in that zone; nothing here shifts
wall-clock values between zones.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from ..errors import InvalidTask

FIXED_TZ = timezone(timedelta(hours=8), "SGT")

# Input format accepted from forms: 2026-01-31T10:00
_DUE_INPUT_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")


def now_fixed() -> datetime:
    return datetime.now(FIXED_TZ)


def to_fixed(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=FIXED_TZ)
    return dt.astimezone(FIXED_TZ)


def to_timestamp(dt: datetime) -> float:
    return to_fixed(dt).timestamp()


def from_timestamp(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(float(ts), FIXED_TZ)


def to_fixed_iso(dt: datetime | None) -> str | None:
    """ISO-8601 with explicit offset, e.g. 2026-01-31T10:00:00+08:00."""
    if dt is None:
        return None
    return to_fixed(dt).isoformat(timespec="seconds")


def format_fixed(dt: datetime) -> str:
    """Human-readable form used in reminder bodies, e.g. '31 Jan 2026, 10:00'."""
    return to_fixed(dt).strftime("%d %b %Y, %H:%M")


def parse_due_input(raw: str) -> datetime:
    """Parse a 'YYYY-MM-DDTHH:MM' form value as a fixed-zone instant."""
    value = (raw or "").strip()
    if not _DUE_INPUT_RE.match(value):
        raise InvalidTask(
            "Invalid datetime format. Use YYYY-MM-DDTHH:MM",
            {"dueAt": raw},
        )
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M").replace(tzinfo=FIXED_TZ)
    except ValueError as e:
        raise InvalidTask(f"Invalid date: {value}", {"dueAt": raw}) from e


def parse_instant(raw: str) -> datetime:
    """Parse any ISO-8601 instant; a missing offset means the fixed zone."""
    try:
        return to_fixed(datetime.fromisoformat(raw.strip()))
    except (AttributeError, ValueError) as e:
        raise InvalidTask(f"Invalid instant: {raw!r}", {"instant": str(raw)}) from e
