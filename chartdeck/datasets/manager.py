"""Dataset manager: create, update, rename, delete, import and export.

Sits between the HTTP layer / editor session and the DatasetStore. Every
write recomputes derived metadata from the payload, and a rename cascades
into every snippet whose spec trees reference the old name.
"""

import json
import logging
import re
from typing import Any, Optional

from chartdeck.errors import (
    ChartdeckError,
    DatasetNameConflict,
    DatasetNotFound,
    InvalidSpecError,
    ParseError,
)
from chartdeck.fetch.client import Fetcher
from chartdeck.persistence.stores import DatasetStore, SnippetStore
from chartdeck.specs.references import extract_references, rewrite_name_everywhere

from .detection import (
    detect_format,
    detect_format_from_filename,
    is_likely_url,
    require_format,
)
from .schemas import (
    DataFormat,
    DataSource,
    Dataset,
    DatasetDeleteResult,
    DatasetExport,
    DatasetStats,
    DatasetUpdate,
    DatasetUpdateResult,
    DetectionResult,
    RenameFailure,
    RenameReport,
    SchemaChange,
    now_iso,
)
from .stats import compute_stats, diff_columns

logger = logging.getLogger(__name__)

MIME_TYPES = {
    DataFormat.JSON: "application/json",
    DataFormat.CSV: "text/csv",
    DataFormat.TSV: "text/tab-separated-values",
    DataFormat.TOPOJSON: "application/json",
}

_IMPORT_SUFFIX = re.compile(r"\.(json|csv|tsv|txt|topojson)$", re.IGNORECASE)


def parse_payload(data: Any, data_format: DataFormat, source: DataSource) -> Any:
    """Validate and normalize a payload before it is stored.

    Returns the value to store: parsed records for json/topojson, the
    stripped text for csv/tsv, the URL string for url sources.
    Raises ParseError when the payload cannot be used.
    """
    if source == DataSource.URL:
        if not isinstance(data, str) or not is_likely_url(data):
            raise ParseError(f"Not a valid http(s) URL: {data!r}")
        return data.strip()

    if data_format in (DataFormat.JSON, DataFormat.TOPOJSON):
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise ParseError(f"Invalid JSON data: {e}") from e
        if data_format == DataFormat.JSON:
            if not isinstance(data, list):
                raise ParseError("JSON data must be an array of records")
            if not data:
                raise ParseError("Data array cannot be empty")
        elif not isinstance(data, dict):
            raise ParseError("TopoJSON data must be an object")
        return data

    if not isinstance(data, str):
        raise ParseError(f"{data_format.value.upper()} data must be text")
    text = data.strip()
    if len(text.split("\n")) < 2:
        raise ParseError(
            f"{data_format.value.upper()} data must have a header row and at least one data row"
        )
    return text


def payload_from_text(text: str, data_format: DataFormat) -> Any:
    """Turn fetched or imported text into a storable payload of the given format."""
    if data_format in (DataFormat.JSON, DataFormat.TOPOJSON):
        try:
            return json.loads(text)
        except ValueError as e:
            raise ParseError(f"Invalid JSON data: {e}") from e
    return text.strip()


class DatasetManager:
    """Dataset operations over a DatasetStore, cascading into snippets."""

    def __init__(
        self,
        store: DatasetStore,
        snippets: SnippetStore,
        fetcher: Optional[Fetcher] = None,
    ):
        self.store = store
        self.snippets = snippets
        self.fetcher = fetcher

    # ── Lookup ───────────────────────────────────────────

    async def get(self, dataset_id: str) -> Dataset:
        dataset = await self.store.get(dataset_id)
        if dataset is None:
            raise DatasetNotFound(dataset_id)
        return dataset

    async def get_by_name(self, name: str) -> Optional[Dataset]:
        return await self.store.get_by_name(name)

    async def list_datasets(self) -> list[Dataset]:
        return await self.store.list()

    async def name_exists(self, name: str) -> bool:
        return await self.store.get_by_name(name) is not None

    # ── Create ───────────────────────────────────────────

    async def create_dataset(
        self,
        name: str,
        data: Any,
        data_format: DataFormat,
        source: DataSource = DataSource.INLINE,
        comment: str = "",
        stats: Optional[DatasetStats] = None,
    ) -> Dataset:
        """Validate the payload, derive metadata and store a new dataset."""
        name = name.strip()
        if not name:
            raise ParseError("Dataset name cannot be empty")
        if await self.name_exists(name):
            raise DatasetNameConflict(name)

        payload = parse_payload(data, data_format, source)
        dataset = Dataset(
            name=name,
            source=source,
            format=data_format,
            data=payload,
            comment=comment,
        ).with_stats(stats or compute_stats(payload, data_format, source))

        await self.store.put(dataset)
        logger.info(
            f"Created dataset '{name}' ({data_format.value}, {source.value}, "
            f"{dataset.row_count} rows)"
        )
        return dataset

    async def create_from_detection(
        self,
        name: str,
        detection: DetectionResult,
        url: Optional[str] = None,
        comment: str = "",
    ) -> Dataset:
        """Store the outcome of detect_format() or fetch_and_detect().

        URL detections keep the URL as the payload; when the fetched text
        is attached, metadata is backfilled from it right away.
        """
        require_format(detection)

        if detection.source == DataSource.URL:
            if url is None:
                raise ParseError("A URL detection needs the URL it was fetched from")
            stats = None
            if detection.content is not None:
                try:
                    stats = compute_stats(
                        payload_from_text(detection.content, detection.format),
                        detection.format,
                        DataSource.INLINE,
                    )
                except ParseError as e:
                    logger.warning(f"Could not derive metadata from {url}: {e}")
            return await self.create_dataset(
                name, url, detection.format, DataSource.URL, comment, stats=stats
            )

        return await self.create_dataset(
            name, detection.parsed_payload, detection.format, DataSource.INLINE, comment
        )

    # ── Update / rename ──────────────────────────────────

    async def update_dataset(
        self,
        dataset_id: str,
        update: DatasetUpdate,
        stats: Optional[DatasetStats] = None,
    ) -> DatasetUpdateResult:
        """Apply a partial update.

        Metadata is recomputed when payload, format or source change, unless
        explicit stats are passed. A name change runs the rename cascade
        first; if it fails nothing else is written.
        """
        dataset = await self.get(dataset_id)
        rename: Optional[RenameReport] = None

        if update.name is not None and update.name.strip() != dataset.name:
            rename = await self.rename_dataset(dataset_id, update.name)
            dataset = await self.get(dataset_id)

        changes: dict[str, Any] = {}
        if update.comment is not None:
            changes["comment"] = update.comment

        payload_changed = any(
            value is not None for value in (update.data, update.format, update.source)
        )
        schema_change: Optional[SchemaChange] = None
        if payload_changed:
            data_format = update.format or dataset.format
            source = update.source or dataset.source
            data = update.data if update.data is not None else dataset.data
            payload = parse_payload(data, data_format, source)
            changes.update(format=data_format, source=source, data=payload)
            if stats is None:
                stats = compute_stats(payload, data_format, source)
            schema_change = diff_columns(dataset.columns, stats.columns)

        if not changes and stats is None:
            return DatasetUpdateResult(dataset=dataset, rename=rename)

        changes["modified"] = now_iso()
        updated = dataset.model_copy(update=changes)
        if stats is not None:
            updated = updated.with_stats(stats)

        await self.store.put(updated)
        if schema_change is not None and schema_change.changed:
            logger.warning(
                f"Schema of dataset '{updated.name}' changed: "
                f"+{schema_change.added} -{schema_change.removed}"
            )
        logger.info(f"Updated dataset '{updated.name}'")
        return DatasetUpdateResult(dataset=updated, rename=rename, schema_change=schema_change)

    async def rename_dataset(self, dataset_id: str, new_name: str) -> RenameReport:
        """Rename a dataset and rewrite every snippet that references it.

        The name conflict check runs before anything is written. Each
        snippet rewrite is persisted on its own; failures are collected in
        the report, never rolled back.
        """
        dataset = await self.get(dataset_id)
        old_name = dataset.name
        new_name = new_name.strip()
        if not new_name:
            raise ParseError("Dataset name cannot be empty")

        report = RenameReport(dataset_id=dataset_id, old_name=old_name, new_name=new_name)
        if new_name == old_name:
            return report

        existing = await self.store.get_by_name(new_name)
        if existing is not None and existing.id != dataset_id:
            raise DatasetNameConflict(new_name)

        await self.store.put(dataset.model_copy(update={"name": new_name, "modified": now_iso()}))
        logger.info(f"Renamed dataset '{old_name}' -> '{new_name}'")

        for snippet in await self.snippets.list():
            try:
                referenced = (
                    old_name in extract_references(snippet.spec)
                    or old_name in extract_references(snippet.draft_spec)
                )
            except InvalidSpecError as e:
                # unwalkable tree; report it when the old name shows up anywhere in it
                raw = json.dumps([snippet.spec, snippet.draft_spec])
                if json.dumps(old_name) in raw:
                    logger.warning(f"Cannot rewrite snippet {snippet.id} for rename: {e}")
                    report.total += 1
                    report.failed.append(RenameFailure(snippet_id=snippet.id, error=str(e)))
                continue
            if not referenced:
                continue

            report.total += 1
            try:
                snippet.spec = rewrite_name_everywhere(snippet.spec, old_name, new_name)
                snippet.draft_spec = rewrite_name_everywhere(
                    snippet.draft_spec, old_name, new_name
                )
                snippet.dataset_refs = sorted(extract_references(snippet.draft_spec))
                snippet.touch()
                await self.snippets.put(snippet)
                report.succeeded += 1
            except ChartdeckError as e:
                logger.error(f"Failed to update snippet {snippet.id} for rename: {e}")
                report.failed.append(RenameFailure(snippet_id=snippet.id, error=str(e)))

        logger.info(
            f"Rename cascade '{old_name}' -> '{new_name}': "
            f"{report.succeeded}/{report.total} snippets updated"
        )
        return report

    # ── Delete / usage ───────────────────────────────────

    async def count_usage(self, name: str) -> int:
        """Number of snippets whose derived refs include this dataset name."""
        return sum(1 for s in await self.snippets.list() if name in s.dataset_refs)

    async def delete_dataset(self, dataset_id: str) -> DatasetDeleteResult:
        """Delete a dataset. Referencing snippets are left as they are."""
        dataset = await self.get(dataset_id)
        usage = await self.count_usage(dataset.name)
        await self.store.delete(dataset_id)
        if usage:
            logger.warning(
                f"Deleted dataset '{dataset.name}' still referenced by {usage} snippet(s)"
            )
        else:
            logger.info(f"Deleted dataset '{dataset.name}'")
        return DatasetDeleteResult(
            dataset_id=dataset_id, name=dataset.name, referencing_snippets=usage
        )

    # ── Metadata ─────────────────────────────────────────

    async def _fetch(self, url: str) -> str:
        if self.fetcher is None:
            raise ChartdeckError("No fetcher configured for URL datasets")
        return await self.fetcher.fetch(url)

    async def refresh_metadata(self, dataset_id: str) -> Dataset:
        """Recompute metadata; URL datasets are fetched and backfilled."""
        dataset = await self.get(dataset_id)
        if dataset.source == DataSource.URL:
            text = await self._fetch(dataset.data)
            stats = compute_stats(
                payload_from_text(text, dataset.format), dataset.format, DataSource.INLINE
            )
        else:
            stats = compute_stats(dataset.data, dataset.format, dataset.source)

        updated = dataset.with_stats(stats).model_copy(update={"modified": now_iso()})
        await self.store.put(updated)
        logger.info(f"Refreshed metadata for '{dataset.name}': {stats.row_count} rows")
        return updated

    async def check_schema_change(
        self, dataset_id: str, detection: DetectionResult
    ) -> SchemaChange:
        """Columns a replacement payload would add or drop."""
        dataset = await self.get(dataset_id)
        require_format(detection)
        new_stats = compute_stats(detection.parsed_payload, detection.format, DataSource.INLINE)
        return diff_columns(dataset.columns, new_stats.columns)

    # ── Import / export ──────────────────────────────────

    async def unique_name(self, base_name: str) -> str:
        name = base_name
        counter = 1
        while await self.name_exists(name):
            name = f"{base_name}_{counter}"
            counter += 1
        return name

    async def import_from_file(self, filename: str, text: str) -> Dataset:
        """Create a dataset from file content.

        Content detection wins; the filename is the fallback hint. A taken
        name gets a numeric suffix instead of failing.
        """
        detection = detect_format(text)
        data_format = detection.format or detect_format_from_filename(filename)
        if data_format is None:
            require_format(detection)

        if detection.detected and detection.format == data_format:
            payload = detection.parsed_payload
        else:
            payload = payload_from_text(text, data_format)

        base_name = _IMPORT_SUFFIX.sub("", filename) or "dataset"
        name = await self.unique_name(base_name)
        if name != base_name:
            logger.info(f"Dataset name '{base_name}' taken, importing as '{name}'")

        return await self.create_dataset(
            name, payload, data_format, DataSource.INLINE,
            comment=f"Imported from file: {filename}",
        )

    async def export_dataset(self, dataset_id: str) -> DatasetExport:
        """File name, MIME type and content for downloading a dataset."""
        dataset = await self.get(dataset_id)
        if dataset.source == DataSource.URL:
            content = await self._fetch(dataset.data)
        elif dataset.format in (DataFormat.JSON, DataFormat.TOPOJSON):
            content = json.dumps(dataset.data, indent=2, ensure_ascii=False)
        else:
            content = dataset.data

        return DatasetExport(
            filename=f"{dataset.name}.{dataset.format.value}",
            mime_type=MIME_TYPES.get(dataset.format, "text/plain"),
            content=content,
        )
