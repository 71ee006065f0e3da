"""SQLite run history with WAL mode."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from taskgate.delegation.models import RunResult, TaskStatus


class Database:
    """SQLite storage layer for orchestration run history."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or Path.home() / ".taskgate"
        self.db_path = self.data_dir / "taskgate.db"

    def _ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with WAL mode."""
        self._ensure_dirs()
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_tables(self) -> None:
        """Create all tables if they don't exist."""
        with self.connect() as conn:
            conn.executescript(_SCHEMA)

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        """Execute a query and return results."""
        with self.connect() as conn:
            cursor = conn.execute(sql, params)
            return cursor.fetchall()

    def execute_insert(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute an insert and return lastrowid."""
        with self.connect() as conn:
            cursor = conn.execute(sql, params)
            return cursor.lastrowid or 0

    def record_run(self, result: RunResult) -> int:
        """Persist one finished run. Artifact content is not stored, only previews."""
        return self.execute_insert(
            """
            INSERT INTO runs (run_id, request, verdict, passes, task_count,
                              failed_tasks, violations, duration_seconds, result)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.run_id,
                result.request,
                result.verdict.value,
                result.passes,
                len(result.tasks),
                sum(1 for t in result.tasks if t.status == TaskStatus.FAILED),
                len(result.violations),
                result.duration_seconds,
                json.dumps(result.to_dict(), default=str),
            ),
        )

    def recent_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        rows = self.execute(
            """
            SELECT run_id, request, verdict, passes, task_count, failed_tasks,
                   violations, duration_seconds, created_at
            FROM runs ORDER BY id DESC LIMIT ?
            """,
            (limit,),
        )
        return [dict(row) for row in rows]

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        rows = self.execute("SELECT result FROM runs WHERE run_id = ?", (run_id,))
        if not rows:
            return None
        return json.loads(rows[0]["result"])


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT UNIQUE NOT NULL,
    request TEXT NOT NULL,
    verdict TEXT NOT NULL,
    passes INTEGER NOT NULL DEFAULT 0,
    task_count INTEGER NOT NULL DEFAULT 0,
    failed_tasks INTEGER NOT NULL DEFAULT 0,
    violations INTEGER NOT NULL DEFAULT 0,
    duration_seconds REAL NOT NULL DEFAULT 0.0,
    result TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

INSERT OR IGNORE INTO schema_version (version) VALUES (1);
"""
