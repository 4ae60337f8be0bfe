"""SQLite-backed durable task store.

Every task record lives in one row keyed by task id, stored as the record's
self-describing JSON.  A second table holds the task-id counter so that ids
keep increasing across restarts.  Records are never deleted.

All operations open their own connection, so a store instance can be
recreated at any time (for example after a restart) and observe exactly the
same contents.  A process-wide lock plus ``BEGIN IMMEDIATE`` transactions
keep writers from interleaving, and readers only ever see committed rows.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from stablediff.core.exceptions import PersistenceError
from stablediff.core.models import TaskRecord

logger = logging.getLogger(__name__)

TASK_ID_PREFIX = "task_"
_COUNTER_NAME = "task"


class TaskStore:
    """Durable mapping from task id to :class:`TaskRecord`.

    Callers always receive freshly decoded copies; mutating a returned
    record has no effect on the store.
    """

    def __init__(self, db_path: Path):
        """Open (and if needed create) the task database.

        Args:
            db_path: Path to the SQLite database file

        Raises:
            PersistenceError: If the schema cannot be created
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._initialize_db()
        logger.info("Initialized task store at %s", self.db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        try:
            with self._transaction() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS tasks (
                        id TEXT PRIMARY KEY,
                        record TEXT NOT NULL
                    )
                    """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS counters (
                        name TEXT PRIMARY KEY,
                        value INTEGER NOT NULL
                    )
                    """)
                conn.execute(
                    "INSERT OR IGNORE INTO counters (name, value) VALUES (?, 0)",
                    (_COUNTER_NAME,),
                )
        except sqlite3.Error as e:
            logger.exception("Error initializing task store at %s", self.db_path)
            raise PersistenceError(f"Cannot initialize task store: {e}") from e

    def next_task_id(self) -> str:
        """Allocate a new, never-before-used task id of the form ``task_<n>``.

        The counter is incremented and read in one transaction.  Ids that
        already exist in the table are skipped, so a counter restored from
        an older snapshot still cannot collide with stored records.
        """
        try:
            with self._transaction() as conn:
                while True:
                    conn.execute(
                        "UPDATE counters SET value = value + 1 WHERE name = ?",
                        (_COUNTER_NAME,),
                    )
                    (value,) = conn.execute(
                        "SELECT value FROM counters WHERE name = ?", (_COUNTER_NAME,)
                    ).fetchone()
                    task_id = f"{TASK_ID_PREFIX}{value}"
                    taken = conn.execute(
                        "SELECT 1 FROM tasks WHERE id = ? LIMIT 1", (task_id,)
                    ).fetchone()
                    if taken is None:
                        return task_id
                    logger.warning("Task id %s already stored - skipping.", task_id)
        except sqlite3.Error as e:
            logger.exception("Error allocating task id")
            raise PersistenceError(f"Cannot allocate task id: {e}") from e

    def put(self, task_id: str, record: TaskRecord) -> None:
        """Insert or overwrite the record stored under *task_id*."""
        payload = record.model_dump_json()
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO tasks (id, record) VALUES (?, ?)
                    ON CONFLICT(id) DO UPDATE SET record = excluded.record
                    """,
                    (task_id, payload),
                )
        except sqlite3.Error as e:
            logger.exception("Error storing task %s", task_id)
            raise PersistenceError(f"Cannot store task {task_id}: {e}") from e
        logger.debug("Stored task %s (%s)", task_id, record.status.value)

    def get(self, task_id: str) -> TaskRecord | None:
        """Return a copy of the record for *task_id*, or ``None``."""
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute("SELECT record FROM tasks WHERE id = ?", (task_id,)).fetchone()
        except sqlite3.Error as e:
            logger.exception("Error reading task %s", task_id)
            raise PersistenceError(f"Cannot read task {task_id}: {e}") from e

        if row is None:
            return None
        try:
            return TaskRecord.from_bytes(row[0])
        except PydanticValidationError as e:
            logger.exception("Stored record for %s is corrupt", task_id)
            raise PersistenceError(f"Corrupt record for task {task_id}") from e

    def list_ids(self) -> list[str]:
        """Return every stored task id in insertion order."""
        try:
            with self._lock, self._connect() as conn:
                rows = conn.execute("SELECT id FROM tasks ORDER BY rowid").fetchall()
        except sqlite3.Error as e:
            logger.exception("Error listing tasks")
            raise PersistenceError(f"Cannot list tasks: {e}") from e
        return [row[0] for row in rows]

    def count(self) -> int:
        """Return the number of stored tasks."""
        try:
            with self._lock, self._connect() as conn:
                (total,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
        except sqlite3.Error as e:
            logger.exception("Error counting tasks")
            raise PersistenceError(f"Cannot count tasks: {e}") from e
        return total
