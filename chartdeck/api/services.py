"""Shared service instances for the API routes.

Lazily built from get_settings() on first use, the same way the routes
reach every other singleton. reset_services() drops them so the next call
rebuilds against fresh settings.
"""

import logging
from typing import Optional

from fastapi import HTTPException

from chartdeck.config import get_settings
from chartdeck.datasets.manager import DatasetManager
from chartdeck.errors import (
    ChartdeckError,
    DatasetNameConflict,
    DatasetNotFound,
    FormatUndetected,
    InvalidSpecError,
    NetworkFetchError,
    ParseError,
    PersistenceQuotaExceeded,
    ReadOnlyViewError,
    SnippetNotFound,
)
from chartdeck.fetch.client import Fetcher, HttpFetcher
from chartdeck.persistence.db import Database
from chartdeck.persistence.stores import SqliteDatasetStore, SqliteSnippetStore
from chartdeck.snippets.manager import SnippetManager

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type, int]] = [
    (SnippetNotFound, 404),
    (DatasetNotFound, 404),
    (DatasetNameConflict, 409),
    (ReadOnlyViewError, 409),
    (ParseError, 422),
    (FormatUndetected, 422),
    (InvalidSpecError, 422),
    (PersistenceQuotaExceeded, 507),
    (NetworkFetchError, 502),
]


def http_error(error: ChartdeckError) -> HTTPException:
    """Translate an engine error into the matching HTTP status."""
    for error_type, status in _STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status, detail=str(error))
    logger.error(f"Unmapped error: {error}")
    return HTTPException(status_code=500, detail=str(error))


# Global instances
_database: Optional[Database] = None
_fetcher: Optional[Fetcher] = None
_snippet_manager: Optional[SnippetManager] = None
_dataset_manager: Optional[DatasetManager] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database(get_settings().database_path)
    return _database


def get_fetcher() -> Fetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = HttpFetcher(timeout=get_settings().fetch_timeout_s)
    return _fetcher


def set_fetcher(fetcher: Optional[Fetcher]) -> None:
    """Swap the fetch collaborator (tests, alternate transports)."""
    global _fetcher, _dataset_manager
    _fetcher = fetcher
    _dataset_manager = None


def get_snippet_manager() -> SnippetManager:
    global _snippet_manager
    if _snippet_manager is None:
        settings = get_settings()
        store = SqliteSnippetStore(get_database(), limit_bytes=settings.storage_limit_bytes)
        _snippet_manager = SnippetManager(store, limit_bytes=settings.storage_limit_bytes)
    return _snippet_manager


def get_dataset_manager() -> DatasetManager:
    global _dataset_manager
    if _dataset_manager is None:
        _dataset_manager = DatasetManager(
            SqliteDatasetStore(get_database()),
            get_snippet_manager().store,
            fetcher=get_fetcher(),
        )
    return _dataset_manager


def reset_services() -> None:
    global _database, _fetcher, _snippet_manager, _dataset_manager
    _database = None
    _fetcher = None
    _snippet_manager = None
    _dataset_manager = None


async def close_services() -> None:
    """Release the HTTP client, then drop every instance."""
    if isinstance(_fetcher, HttpFetcher):
        await _fetcher.close()
    reset_services()
