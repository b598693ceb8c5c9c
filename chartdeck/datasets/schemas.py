"""Dataset schemas: stored datasets, derived metadata and detection results.

A Dataset is a named, separately stored table that chart specs reference
by name. Metadata (row/column counts, column types, byte size) is derived
from the payload and recomputed whenever payload, format or source change.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DataFormat(str, Enum):
    """Payload formats a dataset can hold."""
    JSON = "json"
    CSV = "csv"
    TSV = "tsv"
    TOPOJSON = "topojson"


class DataSource(str, Enum):
    """Where a dataset's payload lives."""
    INLINE = "inline"
    URL = "url"


class Confidence(str, Enum):
    """How certain the format detector is about its classification."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ColumnType(str, Enum):
    """Semantic type inferred for a column."""
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    TEXT = "text"


class ColumnTypeInfo(BaseModel):
    name: str
    type: ColumnType


class DatasetStats(BaseModel):
    """Derived metadata. Counts and size stay None until knowable."""

    row_count: Optional[int] = None
    column_count: Optional[int] = None
    columns: list[str] = Field(default_factory=list)
    column_types: list[ColumnTypeInfo] = Field(default_factory=list)
    byte_size: Optional[int] = None


class Dataset(DatasetStats):
    """A stored dataset.

    `data` holds records (inline json/topojson), raw delimited text
    (inline csv/tsv) or the URL string (url source).
    """

    id: str = Field(default_factory=lambda: f"ds-{uuid.uuid4().hex[:12]}")
    name: str
    source: DataSource = DataSource.INLINE
    format: DataFormat = DataFormat.JSON
    data: Any = None
    comment: str = ""
    created: str = Field(default_factory=now_iso)
    modified: str = Field(default_factory=now_iso)

    def with_stats(self, stats: DatasetStats) -> "Dataset":
        return self.model_copy(
            update={field: getattr(stats, field) for field in DatasetStats.model_fields}
        )


class DetectionResult(BaseModel):
    """Outcome of format detection on pasted, imported or fetched text."""

    format: Optional[DataFormat] = None
    confidence: Confidence = Confidence.LOW
    parsed_payload: Any = None
    source: DataSource = DataSource.INLINE
    content: Optional[str] = Field(
        default=None,
        description="Raw fetched text (url source only)",
    )

    @model_validator(mode="after")
    def _no_payload_without_format(self) -> "DetectionResult":
        if self.format is None and self.parsed_payload is not None:
            raise ValueError("parsed_payload requires a detected format")
        return self

    @property
    def detected(self) -> bool:
        return self.format is not None


class SchemaChange(BaseModel):
    """Columns added and removed between two versions of a dataset."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class RenameFailure(BaseModel):
    snippet_id: str
    error: str


class RenameReport(BaseModel):
    """Result of a dataset rename cascading over referencing snippets."""

    dataset_id: str
    old_name: str
    new_name: str
    total: int = 0
    succeeded: int = 0
    failed: list[RenameFailure] = Field(default_factory=list)


class DatasetExport(BaseModel):
    filename: str
    mime_type: str
    content: str


class DatasetUpdateResult(BaseModel):
    """An updated dataset plus what the update set in motion."""

    dataset: Dataset
    rename: Optional[RenameReport] = None
    schema_change: Optional[SchemaChange] = None


class DatasetDeleteResult(BaseModel):
    dataset_id: str
    name: str
    referencing_snippets: int = Field(
        default=0,
        description="Snippets that still referenced the dataset when it was deleted",
    )


# ── Request bodies ──────────────────────────────────────


class DatasetCreate(BaseModel):
    name: str
    data: Any
    format: DataFormat
    source: DataSource = DataSource.INLINE
    comment: str = ""


class DatasetUpdate(BaseModel):
    """Partial update. Fields left as None are unchanged."""

    name: Optional[str] = None
    data: Optional[Any] = None
    format: Optional[DataFormat] = None
    source: Optional[DataSource] = None
    comment: Optional[str] = None


class DetectRequest(BaseModel):
    text: str = Field(..., description="Pasted content or an http(s) URL")


class DatasetFromUrl(BaseModel):
    name: str
    url: str
    comment: str = ""


class DatasetImport(BaseModel):
    filename: str
    text: str
