"""Draft/published lifecycle of the snippet open in an editor.

A SnippetSession couples one snippet, one editor surface and one renderer.
Edits go to `draft_spec` through a debounced auto-save; `spec` changes
only on publish(). State machine:

    Published-Clean  --edit (auto-fork)-->  Draft-Editing
    Draft-Editing    --publish()------->   Published-Clean
    Draft-Editing    --revert()-------->   Published-Clean
    view published with pending draft  ==  Published-WithDraft (read-only)

Editor writes made by the session itself run under EditorGuard, so their
change echoes never schedule an auto-save; they trigger an immediate
render instead.
"""

import copy
import json
import logging
from typing import Callable, Optional

from chartdeck.config import Settings, get_settings
from chartdeck.datasets.manager import DatasetManager
from chartdeck.datasets.schemas import Dataset
from chartdeck.errors import (
    DatasetNotFound,
    InvalidSpecError,
    ParseError,
    PersistenceQuotaExceeded,
    ReadOnlyViewError,
    SnippetNotFound,
)
from chartdeck.persistence.stores import SnippetStore
from chartdeck.specs.references import (
    detect_inline_format,
    extract_inline_data,
    extract_references,
    replace_inline_with_reference,
    resolve_for_render,
)

from .debounce import Debouncer
from .editor import EditorGuard, EditorSurface, Renderer
from .schemas import LifecycleState, Snippet, ViewMode

logger = logging.getLogger(__name__)


def format_spec(tree: dict) -> str:
    """Editor text for a spec tree."""
    return json.dumps(tree, indent=2, ensure_ascii=False)


# ── Transitions ──────────────────────────────────────────
# Each mutates the snippet in place and recomputes dataset_refs from the
# tree it just wrote. Callers persist.


def apply_draft(snippet: Snippet, tree: dict) -> Snippet:
    refs = extract_references(tree)
    snippet.draft_spec = tree
    snippet.dataset_refs = sorted(refs)
    return snippet


def publish_draft(snippet: Snippet) -> Snippet:
    snippet.spec = copy.deepcopy(snippet.draft_spec)
    snippet.dataset_refs = sorted(extract_references(snippet.spec))
    return snippet


def revert_draft(snippet: Snippet) -> Snippet:
    snippet.draft_spec = copy.deepcopy(snippet.spec)
    snippet.dataset_refs = sorted(extract_references(snippet.draft_spec))
    return snippet


class SnippetSession:
    """The active snippet plus its editor, renderer and debounce handles."""

    def __init__(
        self,
        snippets: SnippetStore,
        datasets: DatasetManager,
        editor: EditorSurface,
        renderer: Renderer,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.snippets = snippets
        self.datasets = datasets
        self.editor = editor
        self.renderer = renderer
        self.guard = EditorGuard()

        self.snippet: Optional[Snippet] = None
        self.view_mode = ViewMode.DRAFT
        self._unsaved_text: Optional[str] = None

        self._render = Debouncer(
            settings.render_debounce_ms / 1000, self.render_now, name="render"
        )
        self._autosave = Debouncer(
            settings.autosave_debounce_ms / 1000, self._autosave_draft, name="autosave"
        )

    # ── State ────────────────────────────────────────────

    @property
    def state(self) -> LifecycleState:
        snippet = self._require_snippet()
        if self.view_mode == ViewMode.PUBLISHED:
            if snippet.has_pending_draft:
                return LifecycleState.PUBLISHED_WITH_DRAFT
            return LifecycleState.PUBLISHED_CLEAN
        if snippet.has_pending_draft or self._unsaved_text is not None:
            return LifecycleState.DRAFT_EDITING
        return LifecycleState.PUBLISHED_CLEAN

    @property
    def read_only(self) -> bool:
        return self.state == LifecycleState.PUBLISHED_WITH_DRAFT

    @property
    def save_pending(self) -> bool:
        return self._autosave.pending

    @property
    def render_pending(self) -> bool:
        return self._render.pending

    def _require_snippet(self) -> Snippet:
        if self.snippet is None:
            raise SnippetNotFound("<no active snippet>")
        return self.snippet

    def _cancel_pending(self) -> None:
        self._autosave.cancel()
        self._render.cancel()

    def _load_editor(self) -> None:
        snippet = self._require_snippet()
        tree = snippet.spec if self.view_mode == ViewMode.PUBLISHED else snippet.draft_spec
        with self.guard.programmatic():
            self.editor.set_text(format_spec(tree))
            self.editor.set_read_only(self.read_only)

    async def _persist(self, snippet: Snippet) -> None:
        snippet.touch()
        await self.snippets.put(snippet)

    # ── Opening and switching ────────────────────────────

    async def open(self, snippet_id: str) -> Snippet:
        """Make a stored snippet the active one, in draft view."""
        self._cancel_pending()
        snippet = await self.snippets.get(snippet_id)
        if snippet is None:
            raise SnippetNotFound(snippet_id)

        self.snippet = snippet
        self.view_mode = ViewMode.DRAFT
        self._unsaved_text = None
        self._load_editor()
        logger.debug(f"Opened snippet {snippet_id}")
        return snippet

    async def switch_view_mode(self, mode: ViewMode) -> LifecycleState:
        """Show the draft or the published tree. Pending debounced work is dropped."""
        self._require_snippet()
        self._cancel_pending()
        self._unsaved_text = None
        self.view_mode = mode
        self._load_editor()
        return self.state

    async def close(self) -> None:
        self._cancel_pending()
        self.snippet = None
        self._unsaved_text = None

    # ── Editing ──────────────────────────────────────────

    def on_editor_change(self, text: str) -> None:
        """Editor change event handler."""
        if self.snippet is None:
            return

        if self.guard.active:
            self._render.fire_soon()
            return

        if self.view_mode == ViewMode.PUBLISHED:
            if self.snippet.has_pending_draft:
                raise ReadOnlyViewError(
                    "Published view is read-only while a draft is pending; switch to the draft to edit"
                )
            # No draft yet: editing the published view forks a draft
            self.view_mode = ViewMode.DRAFT
            self.editor.set_read_only(False)
            logger.info(f"Auto-forked draft for snippet {self.snippet.id}")

        self._unsaved_text = text
        self._autosave.schedule()
        self._render.schedule()

    async def _autosave_draft(self) -> None:
        snippet = self.snippet
        text = self._unsaved_text
        if snippet is None or text is None or self.view_mode != ViewMode.DRAFT:
            return

        try:
            apply_draft(snippet, json.loads(text))
        except (ValueError, InvalidSpecError) as e:
            # Half-typed specs are normal while editing; keep the last good draft
            logger.debug(f"Draft of {snippet.id} not saved: {e}")
            return

        try:
            await self._persist(snippet)
        except PersistenceQuotaExceeded as e:
            logger.error(f"Auto-save of {snippet.id} failed: {e}")
            self.renderer.show_error(str(e))
            return

        if self._unsaved_text is text:
            self._unsaved_text = None
        logger.debug(f"Auto-saved draft of {snippet.id}")

    async def flush(self) -> None:
        """Persist an edit still waiting on the auto-save delay."""
        self._autosave.cancel()
        if self._unsaved_text is not None:
            await self._autosave_draft()

    async def wait_idle(self) -> None:
        """Wait until no debounced save or render is pending."""
        await self._autosave.wait()
        await self._render.wait()

    # ── Publish / revert ─────────────────────────────────

    async def publish(self) -> Snippet:
        """Copy the draft into the published spec."""
        snippet = self._require_snippet()
        self._cancel_pending()
        if self._unsaved_text is not None:
            await self._autosave_draft()

        publish_draft(snippet)
        await self._persist(snippet)
        logger.info(f"Published snippet {snippet.id}")

        if self.view_mode == ViewMode.PUBLISHED:
            self._load_editor()
        return snippet

    async def revert(self, confirm: Callable[[], bool]) -> bool:
        """Throw the draft away and go back to the published spec.

        Nothing changes unless confirm() returns True.
        """
        snippet = self._require_snippet()
        self._cancel_pending()

        if not confirm():
            if self._unsaved_text is not None:
                self._autosave.schedule()
            return False

        self._unsaved_text = None
        revert_draft(snippet)
        await self._persist(snippet)
        logger.info(f"Reverted draft of snippet {snippet.id}")

        if self.view_mode == ViewMode.DRAFT:
            self._load_editor()
        return True

    # ── Datasets ─────────────────────────────────────────

    async def extract_to_dataset(self, name: str) -> Dataset:
        """Move the draft's inline data into a new dataset and reference it by name."""
        snippet = self._require_snippet()
        await self.flush()

        payload = extract_inline_data(snippet.draft_spec)
        if payload is None:
            raise ParseError("The draft has no inline data to extract")

        dataset = await self.datasets.create_dataset(
            name,
            payload,
            detect_inline_format(snippet.draft_spec),
            comment=f"Extracted from snippet: {snippet.name}",
        )

        apply_draft(snippet, replace_inline_with_reference(snippet.draft_spec, dataset.name))
        await self._persist(snippet)
        logger.info(f"Extracted inline data of {snippet.id} into dataset '{dataset.name}'")

        self._load_editor()
        return dataset

    # ── Rendering ────────────────────────────────────────

    async def render_now(self) -> None:
        """Resolve the editor's current spec and hand it to the renderer."""
        text = self.editor.get_text()
        try:
            tree = json.loads(text)
        except ValueError as e:
            logger.debug(f"Not rendering, invalid JSON: {e}")
            self.renderer.show_error(f"Invalid JSON: {e}")
            return

        try:
            resolved = await resolve_for_render(tree, self.datasets.get_by_name)
        except (InvalidSpecError, DatasetNotFound) as e:
            logger.warning(f"Render resolution failed: {e}")
            self.renderer.show_error(str(e))
            return

        await self.renderer.render(resolved)
