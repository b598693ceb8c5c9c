"""
Shared pytest fixtures for chartdeck tests.

Every test gets its own temporary SQLite database. Coroutines are driven
with asyncio.run() from plain test functions.
"""

from typing import Any, Optional

import pytest

from chartdeck.config import Settings, reset_settings
from chartdeck.datasets.manager import DatasetManager
from chartdeck.errors import NetworkFetchError
from chartdeck.persistence.db import Database
from chartdeck.persistence.stores import SqliteDatasetStore, SqliteSnippetStore
from chartdeck.snippets.editor import TextBuffer
from chartdeck.snippets.lifecycle import SnippetSession
from chartdeck.snippets.manager import SnippetManager


class FakeFetcher:
    """Fetcher serving canned responses. Unknown URLs fail like a 404."""

    def __init__(self, responses: Optional[dict[str, str]] = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        if url not in self.responses:
            raise NetworkFetchError(url, "HTTP 404: Not Found", status_code=404)
        return self.responses[url]


class RecordingRenderer:
    """Renderer that keeps what it was asked to draw."""

    def __init__(self):
        self.rendered: list[dict[str, Any]] = []
        self.errors: list[str] = []

    async def render(self, resolved_spec: dict[str, Any]) -> None:
        self.rendered.append(resolved_spec)

    def show_error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture(autouse=True)
def clean_settings():
    """Drop cached settings around every test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db(tmp_path):
    """A Database backed by a temporary SQLite file."""
    return Database(tmp_path / "chartdeck.db")


@pytest.fixture
def snippet_store(db):
    return SqliteSnippetStore(db, limit_bytes=5 * 1024 * 1024)


@pytest.fixture
def dataset_store(db):
    return SqliteDatasetStore(db)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def snippet_manager(snippet_store):
    return SnippetManager(snippet_store, limit_bytes=snippet_store.limit_bytes)


@pytest.fixture
def dataset_manager(dataset_store, snippet_store, fetcher):
    return DatasetManager(dataset_store, snippet_store, fetcher=fetcher)


@pytest.fixture
def settings(tmp_path):
    """Fast debounce settings for session tests."""
    return Settings(
        database_path=str(tmp_path / "chartdeck.db"),
        render_debounce_ms=300,
        autosave_debounce_ms=20,
    )


@pytest.fixture
def buffer():
    return TextBuffer()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def session(snippet_store, dataset_manager, buffer, renderer, settings):
    """A SnippetSession wired to an in-memory editor buffer."""
    session = SnippetSession(snippet_store, dataset_manager, buffer, renderer, settings=settings)
    buffer.subscribe(session.on_editor_change)
    return session
