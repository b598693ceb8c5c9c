"""Store interfaces and their SQLite adapters.

The engine only talks to SnippetStore and DatasetStore; the SQLite
classes below are the bundled implementations. Both follow the same
CRUD shape: get / put / delete / list, all awaited by callers.
"""

import logging
import sqlite3
from typing import Any, Optional, Protocol, runtime_checkable

from chartdeck.datasets.schemas import Dataset
from chartdeck.errors import DatasetNameConflict, PersistenceQuotaExceeded
from chartdeck.snippets.schemas import Snippet

from .db import Database, _json_dumps, _json_loads

logger = logging.getLogger(__name__)


@runtime_checkable
class SnippetStore(Protocol):
    """Protocol for snippet persistence."""

    async def get(self, snippet_id: str) -> Optional[Snippet]: ...

    async def put(self, snippet: Snippet) -> Snippet: ...

    async def delete(self, snippet_id: str) -> bool: ...

    async def list(self) -> list[Snippet]: ...


@runtime_checkable
class DatasetStore(Protocol):
    """Protocol for dataset persistence. Names are unique."""

    async def get(self, dataset_id: str) -> Optional[Dataset]: ...

    async def get_by_name(self, name: str) -> Optional[Dataset]: ...

    async def put(self, dataset: Dataset) -> Dataset: ...

    async def delete(self, dataset_id: str) -> bool: ...

    async def list(self) -> list[Dataset]: ...


def _is_disk_full(error: sqlite3.Error) -> bool:
    return (
        getattr(error, "sqlite_errorname", "") == "SQLITE_FULL"
        or "full" in str(error).lower()
    )


# ── Snippets ─────────────────────────────────────────────


class SqliteSnippetStore:
    """Snippets in SQLite, bounded by a total size quota."""

    def __init__(self, db: Database, limit_bytes: Optional[int] = None):
        self.db = db
        self.limit_bytes = limit_bytes

    @staticmethod
    def _from_row(row: dict[str, Any]) -> Snippet:
        return Snippet(
            id=row["id"],
            name=row["name"],
            spec=_json_loads(row["spec"]) or {},
            draft_spec=_json_loads(row["draft_spec"]) or {},
            comment=row.get("comment") or "",
            tags=_json_loads(row.get("tags")) or [],
            dataset_refs=_json_loads(row.get("dataset_refs")) or [],
            meta=_json_loads(row.get("meta")) or {},
            created=row.get("created") or "",
            modified=row.get("modified") or "",
        )

    async def get(self, snippet_id: str) -> Optional[Snippet]:
        row = await self.db.run(
            "SELECT * FROM snippets WHERE id = %s", (snippet_id,), fetch="one"
        )
        return self._from_row(row) if row is not None else None

    async def storage_usage(self, exclude_id: Optional[str] = None) -> int:
        """Total stored size in bytes, optionally ignoring one snippet."""
        row = await self.db.run(
            "SELECT COALESCE(SUM(size), 0) AS used FROM snippets WHERE id != %s",
            (exclude_id or "",),
            fetch="one",
        )
        return int(row["used"]) if row else 0

    async def put(self, snippet: Snippet) -> Snippet:
        """Insert or replace a snippet.

        Raises PersistenceQuotaExceeded when the write would exceed the
        configured limit or the disk is full; nothing is written then.
        """
        size = snippet.size_bytes()
        if self.limit_bytes is not None:
            used = await self.storage_usage(exclude_id=snippet.id)
            if used + size > self.limit_bytes:
                logger.warning(
                    f"Quota exceeded saving snippet {snippet.id}: "
                    f"{used + size} > {self.limit_bytes} bytes"
                )
                raise PersistenceQuotaExceeded(
                    f"Storage quota exceeded ({used + size} of {self.limit_bytes} bytes). "
                    f"Consider deleting old snippets."
                )

        try:
            await self.db.run(
                """INSERT OR REPLACE INTO snippets
                   (id, name, spec, draft_spec, comment, tags, dataset_refs,
                    meta, size, created, modified)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                (
                    snippet.id, snippet.name,
                    _json_dumps(snippet.spec), _json_dumps(snippet.draft_spec),
                    snippet.comment, _json_dumps(snippet.tags),
                    _json_dumps(snippet.dataset_refs), _json_dumps(snippet.meta),
                    size, snippet.created, snippet.modified,
                ),
            )
        except sqlite3.OperationalError as e:
            if _is_disk_full(e):
                raise PersistenceQuotaExceeded(f"Storage full: {e}") from e
            raise

        logger.debug(f"Saved snippet {snippet.id} ({size} bytes)")
        return snippet

    async def delete(self, snippet_id: str) -> bool:
        if await self.get(snippet_id) is None:
            return False
        await self.db.run("DELETE FROM snippets WHERE id = %s", (snippet_id,))
        logger.info(f"Deleted snippet {snippet_id}")
        return True

    async def list(self) -> list[Snippet]:
        rows = await self.db.run(
            "SELECT * FROM snippets ORDER BY modified DESC", fetch="all"
        )
        return [self._from_row(row) for row in rows]


# ── Datasets ─────────────────────────────────────────────


class SqliteDatasetStore:
    """Datasets in SQLite with a unique index on name."""

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _from_row(row: dict[str, Any]) -> Dataset:
        return Dataset.model_validate({
            **row,
            "data": _json_loads(row.get("data")),
            "comment": row.get("comment") or "",
            "columns": _json_loads(row.get("columns")) or [],
            "column_types": _json_loads(row.get("column_types")) or [],
        })

    async def get(self, dataset_id: str) -> Optional[Dataset]:
        row = await self.db.run(
            "SELECT * FROM datasets WHERE id = %s", (dataset_id,), fetch="one"
        )
        return self._from_row(row) if row is not None else None

    async def get_by_name(self, name: str) -> Optional[Dataset]:
        row = await self.db.run(
            "SELECT * FROM datasets WHERE name = %s", (name,), fetch="one"
        )
        return self._from_row(row) if row is not None else None

    async def put(self, dataset: Dataset) -> Dataset:
        """Insert or update by id. A name owned by another id raises DatasetNameConflict."""
        dumped = dataset.model_dump(mode="json")
        try:
            await self.db.run(
                """INSERT INTO datasets
                   (id, name, source, format, data, comment, row_count,
                    column_count, columns, column_types, byte_size, created, modified)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                   ON CONFLICT(id) DO UPDATE SET
                     name = excluded.name, source = excluded.source,
                     format = excluded.format, data = excluded.data,
                     comment = excluded.comment, row_count = excluded.row_count,
                     column_count = excluded.column_count, columns = excluded.columns,
                     column_types = excluded.column_types, byte_size = excluded.byte_size,
                     modified = excluded.modified""",
                (
                    dataset.id, dataset.name, dumped["source"], dumped["format"],
                    _json_dumps(dumped["data"]), dataset.comment,
                    dataset.row_count, dataset.column_count,
                    _json_dumps(dumped["columns"]), _json_dumps(dumped["column_types"]),
                    dataset.byte_size, dataset.created, dataset.modified,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise DatasetNameConflict(dataset.name) from e
        except sqlite3.OperationalError as e:
            if _is_disk_full(e):
                raise PersistenceQuotaExceeded(f"Storage full: {e}") from e
            raise

        logger.debug(f"Saved dataset {dataset.id} ({dataset.name})")
        return dataset

    async def delete(self, dataset_id: str) -> bool:
        if await self.get(dataset_id) is None:
            return False
        await self.db.run("DELETE FROM datasets WHERE id = %s", (dataset_id,))
        logger.info(f"Deleted dataset {dataset_id}")
        return True

    async def list(self) -> list[Dataset]:
        rows = await self.db.run(
            "SELECT * FROM datasets ORDER BY modified DESC", fetch="all"
        )
        return [self._from_row(row) for row in rows]
