"""
SQLite task store for LearnClip.
Thread-safe via check_same_thread=False + explicit locking.
"""

import dataclasses
import sqlite3
import logging
import threading
from pathlib import Path

from learnclip.core.constants import DB_PATH
from learnclip.core.models import Task

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    input_path TEXT NOT NULL,
    output_directory TEXT NOT NULL,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    phase TEXT NOT NULL DEFAULT 'Pending',
    progress INTEGER DEFAULT 0,
    output_file_path TEXT,
    error_message TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);
"""

_COLUMNS = [f.name for f in dataclasses.fields(Task)]


class Database:
    """Durable TaskStore. Each write is one statement in one transaction."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or DB_PATH)
        self._lock = threading.Lock()
        self._ensure_dirs()
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _ensure_dirs(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _migrate(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(_CREATE_TABLES)
            cur.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(**dict(row))

    @staticmethod
    def _values(task: Task) -> list:
        return [getattr(task, c) for c in _COLUMNS]

    # ── Task CRUD ─────────────────────────────────────────────────────

    def insert(self, task: Task) -> Task:
        placeholders = ', '.join('?' for _ in _COLUMNS)
        with self._lock:
            self.conn.execute(
                f"INSERT INTO tasks ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._values(task),
            )
            self.conn.commit()
        return task

    def update(self, task: Task) -> Task:
        """Replace every column of an existing row. Unknown id -> KeyError."""
        columns = [c for c in _COLUMNS if c != 'id']
        sets = ', '.join(f"{c} = ?" for c in columns)
        vals = [getattr(task, c) for c in columns] + [task.id]
        with self._lock:
            cur = self.conn.execute(f"UPDATE tasks SET {sets} WHERE id = ?", vals)
            self.conn.commit()
            if cur.rowcount == 0:
                raise KeyError(task.id)
        return task

    def get_by_id(self, task_id: str) -> Task | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
        return self._row_to_task(row) if row else None

    def get_all(self) -> list[Task]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM tasks ORDER BY created_at DESC"
            ).fetchall()
        return [self._row_to_task(r) for r in rows]
