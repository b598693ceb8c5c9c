"""API routes for snippets.

Snippets hold a published spec and a working draft. These routes cover
CRUD, draft edits, publish / revert and render resolution; editor-bound
behaviour (debounced auto-save, auto-fork) lives in SnippetSession.
"""

import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Body, HTTPException, Query

from chartdeck.api.services import get_dataset_manager, get_snippet_manager, http_error
from chartdeck.errors import ChartdeckError
from chartdeck.snippets.manager import summarize
from chartdeck.snippets.schemas import (
    ImportReport,
    Snippet,
    SnippetCreate,
    SnippetSummary,
    SnippetUpdate,
    StorageUsage,
    ViewMode,
)
from chartdeck.specs.references import resolve_for_render

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/snippets", tags=["snippets"])


# ── List endpoints ───────────────────────────────────────


@router.get("", response_model=list[SnippetSummary])
async def list_snippets(
    sort_by: str = Query("modified", description="modified, created or name"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    q: Optional[str] = Query(None, description="Search name, comment and spec"),
):
    """List snippet summaries, newest first by default."""
    try:
        snippets = await get_snippet_manager().list_snippets(sort_by=sort_by, order=order, query=q)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return [summarize(s) for s in snippets]


@router.get("/storage", response_model=StorageUsage)
async def storage_usage():
    """Bytes used by stored snippets against the configured limit."""
    return await get_snippet_manager().storage_usage()


# ── Import / export ──────────────────────────────────────


@router.get("/export")
async def export_snippets() -> list[dict[str, Any]]:
    return await get_snippet_manager().export_snippets()


@router.post("/import", response_model=ImportReport)
async def import_snippets(payload: Union[list[dict[str, Any]], dict[str, Any]] = Body(...)):
    """Import one snippet record or a list of them.

    Accepts both native exports and the external {content, draft, createdAt} shape.
    """
    try:
        return await get_snippet_manager().import_snippets(payload)
    except ChartdeckError as e:
        raise http_error(e) from e


# ── CRUD ─────────────────────────────────────────────────


@router.post("", response_model=Snippet, status_code=201)
async def create_snippet(request: SnippetCreate):
    try:
        return await get_snippet_manager().create_snippet(
            request.spec, name=request.name, comment=request.comment
        )
    except ChartdeckError as e:
        raise http_error(e) from e


@router.get("/{snippet_id}", response_model=Snippet)
async def get_snippet(snippet_id: str):
    try:
        return await get_snippet_manager().get(snippet_id)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.patch("/{snippet_id}", response_model=Snippet)
async def update_snippet(snippet_id: str, request: SnippetUpdate):
    """Update name, comment, tags or the draft. The published spec is read-only here."""
    try:
        return await get_snippet_manager().update_snippet(snippet_id, request)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.delete("/{snippet_id}")
async def delete_snippet(snippet_id: str):
    try:
        await get_snippet_manager().delete_snippet(snippet_id)
    except ChartdeckError as e:
        raise http_error(e) from e
    return {"deleted": snippet_id}


@router.post("/{snippet_id}/duplicate", response_model=Snippet, status_code=201)
async def duplicate_snippet(snippet_id: str):
    try:
        return await get_snippet_manager().duplicate_snippet(snippet_id)
    except ChartdeckError as e:
        raise http_error(e) from e


# ── Lifecycle ────────────────────────────────────────────


@router.post("/{snippet_id}/publish", response_model=Snippet)
async def publish_snippet(snippet_id: str):
    """Copy the draft into the published spec."""
    try:
        return await get_snippet_manager().publish(snippet_id)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.post("/{snippet_id}/revert", response_model=Snippet)
async def revert_snippet(
    snippet_id: str,
    confirm: bool = Query(False, description="Must be true; reverting discards the draft"),
):
    """Discard the draft and restore the published spec."""
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Reverting discards all draft changes; repeat with ?confirm=true",
        )
    try:
        return await get_snippet_manager().revert(snippet_id)
    except ChartdeckError as e:
        raise http_error(e) from e


# ── Render resolution ────────────────────────────────────


@router.get("/{snippet_id}/resolved")
async def resolve_snippet(
    snippet_id: str,
    view: ViewMode = Query(ViewMode.DRAFT, description="Which tree to resolve"),
) -> dict[str, Any]:
    """The snippet's spec with every dataset reference replaced by concrete data.

    Fails with 404 naming the first dataset that does not exist.
    """
    try:
        snippet = await get_snippet_manager().get(snippet_id)
        tree = snippet.spec if view == ViewMode.PUBLISHED else snippet.draft_spec
        return await resolve_for_render(tree, get_dataset_manager().get_by_name)
    except ChartdeckError as e:
        raise http_error(e) from e
