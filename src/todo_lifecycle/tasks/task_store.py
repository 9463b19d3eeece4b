# src/todo_lifecycle/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from ..core.clock import from_timestamp, now_fixed, to_timestamp
from ..errors import CompletionConflict, InvalidPattern, InvalidTask, TaskNotFound
from .task_models import Priority, Recurrence, Subtask, Task, TaskDraft

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Instants are stored as epoch seconds (REAL) and read back as fixed-zone
    datetimes.

    Thread-safety:
    - each method opens its own SQLite connection
    - the two write paths that need check-then-act (completion, reminder claim)
      run inside BEGIN IMMEDIATE, so concurrent callers serialize on the
      database write lock
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly where needed.
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
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
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS subtasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("last_notified_at", "REAL")
            add_col("completed_at", "REAL")
            add_col("parent_id", "INTEGER")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_open_due ON tasks(completed, due_at)"
            )
            # One successor per completed task.
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_parent "
                "ON tasks(parent_id) WHERE parent_id IS NOT NULL"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_subtasks_task ON subtasks(task_id)")
        finally:
            conn.close()

    @staticmethod
    def _tags_to_str(tags: Iterable[str] | None) -> str:
        return json.dumps(list(tags or ()), ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> tuple[str, ...]:
        if not s:
            return ()
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Unreadable tags column %r; treating as empty.", s)
            return ()
        return tuple(str(v) for v in val) if isinstance(val, list) else ()

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        offset = row["reminder_offset_minutes"]
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            due_at=from_timestamp(row["due_at"]),
            completed=bool(row["completed"]),
            priority=Priority.parse(row["priority"]),
            tags=self._str_to_tags(row["tags"]),
            reminder_offset_minutes=int(offset) if offset is not None else None,
            recurrence=Recurrence.parse(row["recurrence"]),
            last_notified_at=from_timestamp(row["last_notified_at"]),
            created_at=from_timestamp(row["created_at"]) or now_fixed(),
            updated_at=from_timestamp(row["updated_at"]) or now_fixed(),
            completed_at=from_timestamp(row["completed_at"]),
            parent_id=int(row["parent_id"]) if row["parent_id"] is not None else None,
        )

    def _fetch_task(self, conn: sqlite3.Connection, task_id: int) -> Task | None:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
        return self._row_to_task(row) if row else None

    def _insert_task(self, conn: sqlite3.Connection, draft: TaskDraft, now_ts: float) -> int:
        cur = conn.execute(
            """
            INSERT INTO tasks(
                title, due_at, completed, priority, tags,
                reminder_offset_minutes, recurrence, last_notified_at,
                parent_id, created_at, updated_at
            )
            VALUES (?, ?, 0, ?, ?, ?, ?, NULL, ?, ?, ?)
            """,
            (
                draft.title,
                to_timestamp(draft.due_at) if draft.due_at is not None else None,
                Priority.parse(draft.priority).value,
                self._tags_to_str(draft.tags),
                draft.reminder_offset_minutes,
                Recurrence.parse(draft.recurrence).value,
                draft.parent_id,
                now_ts,
                now_ts,
            ),
        )
        rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for tasks insert")
        return int(rowid)

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, draft: TaskDraft) -> Task:
        """Insert a task as-is; callers validate the draft first."""
        now_ts = to_timestamp(now_fixed())
        conn = self._get_conn()
        try:
            task_id = self._insert_task(conn, draft, now_ts)
            task = self._fetch_task(conn, task_id)
            if task is None:
                raise RuntimeError(f"Task {task_id} vanished right after insert")
            logger.debug(
                "Task added id=%s recurrence=%s due_at=%s",
                task_id,
                task.recurrence.value,
                task.due_at,
            )
            return task
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            return self._fetch_task(conn, task_id)
        finally:
            conn.close()

    def list_open_tasks(self, limit: int = 100) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE completed = 0
                ORDER BY COALESCE(due_at, created_at) ASC, id ASC
                    LIMIT ?
                """,
                (int(limit),),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            return cur.rowcount == 1
        finally:
            conn.close()

    def add_subtask(self, task_id: int, title: str) -> Subtask:
        title = (title or "").strip()
        if not title:
            raise ValueError("subtask title is required")

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                if self._fetch_task(conn, task_id) is None:
                    raise TaskNotFound(task_id)
                (pos,) = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 FROM subtasks WHERE task_id = ?",
                    (int(task_id),),
                ).fetchone()
                cur = conn.execute(
                    "INSERT INTO subtasks(task_id, title, completed, position) VALUES (?, ?, 0, ?)",
                    (int(task_id), title, int(pos)),
                )
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.rollback()
                raise
            return Subtask(
                id=int(cur.lastrowid or 0),
                task_id=int(task_id),
                title=title,
                completed=False,
                position=int(pos),
            )
        finally:
            conn.close()

    def list_subtasks(self, task_id: int) -> list[Subtask]:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "SELECT * FROM subtasks WHERE task_id = ? ORDER BY position ASC, id ASC",
                (int(task_id),),
            )
            return [
                Subtask(
                    id=int(r["id"]),
                    task_id=int(r["task_id"]),
                    title=str(r["title"]),
                    completed=bool(r["completed"]),
                    position=int(r["position"]),
                )
                for r in cur.fetchall()
            ]
        finally:
            conn.close()

    def complete_task(
        self,
        task_id: int,
        *,
        completed_at: datetime,
        spawn: TaskDraft | None = None,
    ) -> tuple[Task, Task | None]:
        """
        Compare-and-swap completion plus optional successor insert, one transaction.

        UPDATE ... WHERE completed = 0 is the guard: if it matches no row the
        task is missing or someone else completed it first, and CompletionConflict
        is raised with nothing written. Any failure after the guard rolls back
        both the flag and the successor.
        """
        now_ts = to_timestamp(completed_at)
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cur = conn.execute(
                    """
                    UPDATE tasks
                    SET completed = 1, completed_at = ?, updated_at = ?
                    WHERE id = ?
                      AND completed = 0
                    """,
                    (now_ts, now_ts, int(task_id)),
                )
                if cur.rowcount != 1:
                    raise CompletionConflict(task_id)

                spawned_id = self._insert_task(conn, spawn, now_ts) if spawn is not None else None

                completed = self._fetch_task(conn, task_id)
                spawned = self._fetch_task(conn, spawned_id) if spawned_id is not None else None
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.rollback()
                raise
        finally:
            conn.close()

        if completed is None:
            raise RuntimeError(f"Task {task_id} vanished inside its completion transaction")

        logger.debug("Task %s completed; spawned=%s", task_id, spawned.id if spawned else None)
        return completed, spawned

    def claim_due_reminders(self, now: datetime) -> list[Task]:
        """
        Select and mark due reminders in one write transaction.

        Due means: open, due_at and reminder_offset_minutes set,
        due_at - offset <= now, and last_notified_at IS NULL.
        Returned tasks carry last_notified_at = now.

        A due row that cannot be decoded (bad recurrence or priority) is logged,
        left unmarked and skipped; the remaining rows are still claimed.
        """
        now_ts = to_timestamp(now)
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                rows = conn.execute(
                    """
                    SELECT *
                    FROM tasks
                    WHERE completed = 0
                      AND due_at IS NOT NULL
                      AND reminder_offset_minutes IS NOT NULL
                      AND last_notified_at IS NULL
                      AND due_at - reminder_offset_minutes * 60 <= ?
                    ORDER BY due_at - reminder_offset_minutes * 60 ASC, id ASC
                    """,
                    (now_ts,),
                ).fetchall()

                claimed: list[Task] = []
                for row in rows:
                    try:
                        task = self._row_to_task(row)
                    except (InvalidPattern, InvalidTask) as e:
                        logger.error("Skipping reminder for unreadable task id=%s: %s", row["id"], e)
                        continue
                    claimed.append(task)

                if claimed:
                    placeholders = ",".join("?" for _ in claimed)
                    conn.execute(
                        f"""
                        UPDATE tasks
                        SET last_notified_at = ?, updated_at = ?
                        WHERE id IN ({placeholders})
                          AND last_notified_at IS NULL
                        """,
                        (now_ts, now_ts, *(t.id for t in claimed)),
                    )
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.rollback()
                raise
        finally:
            conn.close()

        marked_at = from_timestamp(now_ts)
        return [replace(t, last_notified_at=marked_at, updated_at=marked_at) for t in claimed]
