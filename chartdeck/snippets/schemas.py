"""Snippet schemas: stored chart definitions with a published and a draft tree.

`spec` is the last explicitly published version; `draft_spec` is the
working copy the editor writes to. The two start out equal, and a snippet
has a pending draft exactly when they differ.
"""

import copy
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Starting point for snippets created without a spec
EMPTY_SPEC: dict[str, Any] = {
    "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
    "data": {"values": []},
    "mark": "point",
    "encoding": {},
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_snippet_id() -> str:
    return f"sn-{uuid.uuid4().hex[:12]}"


def generate_snippet_name(moment: Optional[datetime] = None) -> str:
    """Default name from the current local time, e.g. 2024-05-01_13-45-09."""
    moment = moment or datetime.now()
    return moment.strftime("%Y-%m-%d_%H-%M-%S")


class ViewMode(str, Enum):
    """Which tree the editor is showing."""
    DRAFT = "draft"
    PUBLISHED = "published"


class LifecycleState(str, Enum):
    """Draft/published lifecycle states of the active snippet."""
    PUBLISHED_CLEAN = "published_clean"
    PUBLISHED_WITH_DRAFT = "published_with_draft"
    DRAFT_EDITING = "draft_editing"


class Snippet(BaseModel):
    """A stored chart definition."""

    id: str = Field(default_factory=generate_snippet_id)
    name: str = Field(default_factory=generate_snippet_name)
    spec: dict[str, Any] = Field(default_factory=dict)
    draft_spec: dict[str, Any] = Field(default_factory=dict)
    comment: str = ""
    tags: list[str] = Field(default_factory=list)
    dataset_refs: list[str] = Field(
        default_factory=list,
        description="Dataset names referenced by the current tree (derived)",
    )
    meta: dict[str, Any] = Field(default_factory=dict)
    created: str = Field(default_factory=_now)
    modified: str = Field(default_factory=_now)

    @model_validator(mode="before")
    @classmethod
    def _draft_defaults_to_spec(cls, data: Any) -> Any:
        """A new snippet's draft starts as a copy of its published spec."""
        if isinstance(data, dict) and data.get("draft_spec") is None:
            data = dict(data)
            data["draft_spec"] = copy.deepcopy(data.get("spec") or {})
        return data

    @property
    def has_pending_draft(self) -> bool:
        return self.spec != self.draft_spec

    def touch(self) -> None:
        self.modified = _now()

    def size_bytes(self) -> int:
        """Stored size: UTF-8 length of the JSON record."""
        return len(self.model_dump_json().encode("utf-8"))


class SnippetSummary(BaseModel):
    """Lightweight row for snippet listings."""

    id: str
    name: str
    created: str
    modified: str
    has_draft: bool
    dataset_refs: list[str] = Field(default_factory=list)
    size_bytes: int = 0


# ── Request bodies ──────────────────────────────────────


class SnippetCreate(BaseModel):
    spec: Optional[dict[str, Any]] = None
    name: Optional[str] = None
    comment: str = ""


class SnippetUpdate(BaseModel):
    """Editable fields. The published spec is not one of them."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    comment: Optional[str] = None
    tags: Optional[list[str]] = None
    draft_spec: Optional[dict[str, Any]] = None


class ImportReport(BaseModel):
    imported: int = 0
    ids: list[str] = Field(default_factory=list)


class StorageUsage(BaseModel):
    used_bytes: int
    limit_bytes: Optional[int] = None
    percent: Optional[float] = None
