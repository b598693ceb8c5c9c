"""SQLite database layer for the bundled store adapters.

Uses raw SQL via sqlite3. No ORM, the schema is two tables:
- snippets: one row per snippet, spec trees kept as JSON text
- datasets: one row per dataset, unique index on name

Connections are opened per call. Async callers go through Database.run,
which hands each statement to a worker thread.
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Union

logger = logging.getLogger(__name__)


def _json_dumps(data: Any) -> str:
    """Serialize data to JSON string for storage."""
    return json.dumps(data, ensure_ascii=False, default=str)


def _json_loads(text: Any) -> Any:
    """Deserialize JSON string from storage."""
    if text is None or text == "":
        return None
    if not isinstance(text, str):
        return text
    return json.loads(text)


class Database:
    """A SQLite file holding snippets and datasets."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._initialized = False

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one unit of work.

        Usage:
            with db.connection() as conn:
                conn.execute(...)
                conn.commit()
        """
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a SQL statement.

        Args:
            sql: SQL statement, %s placeholders
            params: Parameters tuple
            fetch: "none", "one", "all"

        Returns:
            None for "none", dict for "one", list[dict] for "all"
        """
        self.init()
        adapted_sql = sql.replace("%s", "?")

        with self.connection() as conn:
            cursor = conn.execute(adapted_sql, params)

            if fetch == "one":
                row = cursor.fetchone()
                return dict(row) if row is not None else None
            if fetch == "all":
                return [dict(row) for row in cursor.fetchall()]

            conn.commit()
            return None

    async def run(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Run execute() on a worker thread so the event loop is not blocked."""
        return await asyncio.to_thread(self.execute, sql, params, fetch)

    def init(self) -> None:
        """Create tables if they don't exist."""
        if self._initialized:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        ddl = """
        CREATE TABLE IF NOT EXISTS snippets (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            spec TEXT NOT NULL DEFAULT '{}',
            draft_spec TEXT NOT NULL DEFAULT '{}',
            comment TEXT DEFAULT '',
            tags TEXT DEFAULT '[]',
            dataset_refs TEXT DEFAULT '[]',
            meta TEXT DEFAULT '{}',
            size INTEGER NOT NULL DEFAULT 0,
            created TEXT,
            modified TEXT
        );

        CREATE TABLE IF NOT EXISTS datasets (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            source TEXT NOT NULL,
            format TEXT NOT NULL,
            data TEXT,
            comment TEXT DEFAULT '',
            row_count INTEGER,
            column_count INTEGER,
            columns TEXT DEFAULT '[]',
            column_types TEXT DEFAULT '[]',
            byte_size INTEGER,
            created TEXT,
            modified TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_datasets_modified ON datasets(modified);
        """
        with self.connection() as conn:
            conn.executescript(ddl)
            conn.commit()

        self._initialized = True
        logger.info(f"Database initialized: SQLite ({self.path})")
