"""Snippet manager: CRUD, listing, import/export and storage usage.

Editor-free counterpart of SnippetSession for callers that work on stored
snippets directly (the HTTP API, scripts). Draft and publish semantics
are shared through the transition functions in lifecycle.py.
"""

import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from chartdeck.errors import InvalidSpecError, ParseError, SnippetNotFound
from chartdeck.persistence.stores import SnippetStore
from chartdeck.specs.references import extract_references

from .lifecycle import apply_draft, publish_draft, revert_draft
from .schemas import (
    EMPTY_SPEC,
    ImportReport,
    Snippet,
    SnippetSummary,
    SnippetUpdate,
    StorageUsage,
    generate_snippet_id,
    generate_snippet_name,
)

logger = logging.getLogger(__name__)

SORT_FIELDS = ("modified", "created", "name")

IMPORTED_TAG = "imported"


def _derived_refs(tree: Any) -> list[str]:
    try:
        return sorted(extract_references(tree))
    except InvalidSpecError:
        return []


def normalize_snippet(raw: dict[str, Any]) -> Snippet:
    """Build a Snippet from an exported record.

    Native records (ISO `created` timestamp) keep their identity and
    fields; camelCase keys from older exports are accepted too. Anything
    else is treated as the external {content, draft, createdAt} shape:
    it gets a fresh id and the `imported` tag.
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Snippet record must be an object, got {type(raw).__name__}")

    created = raw.get("created")
    if isinstance(created, str) and "T" in created:
        spec = raw.get("spec") or {}
        draft = raw.get("draft_spec") or raw.get("draftSpec") or spec
        return Snippet(
            id=raw.get("id") or generate_snippet_id(),
            name=raw.get("name") or generate_snippet_name(),
            created=created,
            modified=raw.get("modified") or created,
            spec=spec,
            draft_spec=draft,
            comment=raw.get("comment") or "",
            tags=list(raw.get("tags") or []),
            dataset_refs=_derived_refs(draft),
            meta=raw.get("meta") or {},
        )

    created_at = raw.get("createdAt")
    if created_at is not None:
        try:
            if isinstance(created_at, (int, float)):
                created = datetime.fromtimestamp(created_at / 1000, tz=timezone.utc).isoformat()
            else:
                created = datetime.fromisoformat(str(created_at).replace("Z", "+00:00")).isoformat()
        except (ValueError, OverflowError, OSError):
            created = None
    else:
        created = None
    created = created or datetime.now(timezone.utc).isoformat()

    spec = raw.get("content") or raw.get("spec") or {}
    draft = raw.get("draft") or raw.get("draftSpec") or spec
    return Snippet(
        name=raw.get("name") or generate_snippet_name(),
        created=created,
        modified=created,
        spec=spec,
        draft_spec=draft,
        comment=raw.get("comment") or "",
        tags=[IMPORTED_TAG],
        dataset_refs=_derived_refs(draft),
    )


def summarize(snippet: Snippet) -> SnippetSummary:
    return SnippetSummary(
        id=snippet.id,
        name=snippet.name,
        created=snippet.created,
        modified=snippet.modified,
        has_draft=snippet.has_pending_draft,
        dataset_refs=snippet.dataset_refs,
        size_bytes=snippet.size_bytes(),
    )


class SnippetManager:
    """Snippet operations over a SnippetStore."""

    def __init__(self, store: SnippetStore, limit_bytes: Optional[int] = None):
        self.store = store
        self.limit_bytes = limit_bytes

    async def get(self, snippet_id: str) -> Snippet:
        snippet = await self.store.get(snippet_id)
        if snippet is None:
            raise SnippetNotFound(snippet_id)
        return snippet

    # ── Create / duplicate / delete ──────────────────────

    async def create_snippet(
        self,
        spec: Optional[dict[str, Any]] = None,
        name: Optional[str] = None,
        comment: str = "",
    ) -> Snippet:
        """Store a new snippet; draft and published start out identical."""
        tree = copy.deepcopy(spec if spec is not None else EMPTY_SPEC)
        snippet = Snippet(
            name=name or generate_snippet_name(),
            spec=tree,
            draft_spec=copy.deepcopy(tree),
            comment=comment,
            dataset_refs=sorted(extract_references(tree)),
        )
        await self.store.put(snippet)
        logger.info(f"Created snippet {snippet.id} ({snippet.name})")
        return snippet

    async def duplicate_snippet(self, snippet_id: str) -> Snippet:
        """Copy a snippet's draft into a new snippet named `<name>_copy`."""
        original = await self.get(snippet_id)
        snippet = await self.create_snippet(
            copy.deepcopy(original.draft_spec),
            name=f"{original.name}_copy",
            comment=original.comment,
        )
        snippet.tags = list(original.tags)
        await self.store.put(snippet)
        return snippet

    async def delete_snippet(self, snippet_id: str) -> None:
        if not await self.store.delete(snippet_id):
            raise SnippetNotFound(snippet_id)

    # ── Update / lifecycle ───────────────────────────────

    async def update_snippet(self, snippet_id: str, update: SnippetUpdate) -> Snippet:
        """Change name, comment, tags or the draft. The published spec is untouched."""
        snippet = await self.get(snippet_id)
        if update.name is not None:
            snippet.name = update.name
        if update.comment is not None:
            snippet.comment = update.comment
        if update.tags is not None:
            snippet.tags = update.tags
        if update.draft_spec is not None:
            apply_draft(snippet, update.draft_spec)
        snippet.touch()
        await self.store.put(snippet)
        return snippet

    async def publish(self, snippet_id: str) -> Snippet:
        snippet = publish_draft(await self.get(snippet_id))
        snippet.touch()
        await self.store.put(snippet)
        logger.info(f"Published snippet {snippet_id}")
        return snippet

    async def revert(self, snippet_id: str) -> Snippet:
        snippet = revert_draft(await self.get(snippet_id))
        snippet.touch()
        await self.store.put(snippet)
        logger.info(f"Reverted draft of snippet {snippet_id}")
        return snippet

    # ── Listing ──────────────────────────────────────────

    async def list_snippets(
        self,
        sort_by: str = "modified",
        order: str = "desc",
        query: Optional[str] = None,
    ) -> list[Snippet]:
        """List snippets, optionally filtered by a case-insensitive search.

        The query matches the name, the comment or the serialized spec
        (draft preferred).
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {SORT_FIELDS}, got '{sort_by}'")

        snippets = await self.store.list()
        if query and query.strip():
            term = query.strip().lower()
            snippets = [s for s in snippets if self._matches(s, term)]

        def sort_key(snippet: Snippet) -> str:
            value = getattr(snippet, sort_by)
            return value.lower() if sort_by == "name" else value

        return sorted(snippets, key=sort_key, reverse=(order == "desc"))

    @staticmethod
    def _matches(snippet: Snippet, term: str) -> bool:
        if term in snippet.name.lower():
            return True
        if snippet.comment and term in snippet.comment.lower():
            return True
        tree = snippet.draft_spec or snippet.spec
        return term in json.dumps(tree, ensure_ascii=False).lower()

    # ── Import / export ──────────────────────────────────

    async def export_snippets(self) -> list[dict[str, Any]]:
        return [s.model_dump(mode="json") for s in await self.store.list()]

    async def import_snippets(self, payload: Union[str, dict, list]) -> ImportReport:
        """Import one record or a list of records. Colliding ids are replaced."""
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise ParseError(f"Import file is not valid JSON: {e}") from e

        records = payload if isinstance(payload, list) else [payload]
        if not records:
            raise ParseError("No snippets found in import")

        existing = {s.id for s in await self.store.list()}
        report = ImportReport()
        for record in records:
            snippet = normalize_snippet(record)
            while snippet.id in existing:
                snippet.id = generate_snippet_id()
            await self.store.put(snippet)
            existing.add(snippet.id)
            report.imported += 1
            report.ids.append(snippet.id)

        logger.info(f"Imported {report.imported} snippet(s)")
        return report

    async def storage_usage(self) -> StorageUsage:
        used = sum(s.size_bytes() for s in await self.store.list())
        percent = round(used / self.limit_bytes * 100, 1) if self.limit_bytes else None
        return StorageUsage(used_bytes=used, limit_bytes=self.limit_bytes, percent=percent)
