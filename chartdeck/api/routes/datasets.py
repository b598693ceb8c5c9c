"""API routes for datasets.

Datasets are stored separately from snippets and referenced by name.
Renames cascade into referencing snippets and return a RenameReport.
"""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import Response

from chartdeck.api.services import (
    get_dataset_manager,
    get_fetcher,
    get_snippet_manager,
    http_error,
)
from chartdeck.datasets.chart_builder import build_chart_spec
from chartdeck.datasets.detection import detect_format, fetch_and_detect, is_likely_url
from chartdeck.datasets.schemas import (
    Dataset,
    DatasetCreate,
    DatasetDeleteResult,
    DatasetFromUrl,
    DatasetImport,
    DatasetUpdate,
    DatasetUpdateResult,
    DetectionResult,
    DetectRequest,
)
from chartdeck.errors import ChartdeckError
from chartdeck.snippets.schemas import Snippet

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datasets", tags=["datasets"])


# ── List / detect / create ───────────────────────────────


@router.get("", response_model=list[Dataset])
async def list_datasets():
    return await get_dataset_manager().list_datasets()


@router.post("/detect", response_model=DetectionResult)
async def detect(request: DetectRequest):
    """Detect the format of pasted text, or of a URL's content when given a URL."""
    try:
        if is_likely_url(request.text):
            return await fetch_and_detect(request.text.strip(), get_fetcher())
        return detect_format(request.text)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.post("", response_model=Dataset, status_code=201)
async def create_dataset(request: DatasetCreate):
    try:
        return await get_dataset_manager().create_dataset(
            request.name, request.data, request.format, request.source, request.comment
        )
    except ChartdeckError as e:
        raise http_error(e) from e


@router.post("/from-url", response_model=Dataset, status_code=201)
async def create_from_url(request: DatasetFromUrl):
    """Fetch a URL, detect its format and store it as a URL-sourced dataset."""
    url = request.url.strip()
    try:
        detection = await fetch_and_detect(url, get_fetcher())
        return await get_dataset_manager().create_from_detection(
            request.name, detection, url=url, comment=request.comment
        )
    except ChartdeckError as e:
        raise http_error(e) from e


@router.post("/import", response_model=Dataset, status_code=201)
async def import_dataset(request: DatasetImport):
    try:
        return await get_dataset_manager().import_from_file(request.filename, request.text)
    except ChartdeckError as e:
        raise http_error(e) from e


# ── Detail endpoints ─────────────────────────────────────


@router.get("/{dataset_id}", response_model=Dataset)
async def get_dataset(dataset_id: str):
    try:
        return await get_dataset_manager().get(dataset_id)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.patch("/{dataset_id}", response_model=DatasetUpdateResult)
async def update_dataset(dataset_id: str, request: DatasetUpdate):
    """Update a dataset. A new name is propagated to every referencing snippet."""
    try:
        return await get_dataset_manager().update_dataset(dataset_id, request)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.delete("/{dataset_id}", response_model=DatasetDeleteResult)
async def delete_dataset(dataset_id: str):
    """Delete a dataset, reporting how many snippets still referenced it."""
    try:
        return await get_dataset_manager().delete_dataset(dataset_id)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.get("/{dataset_id}/usage")
async def dataset_usage(dataset_id: str):
    manager = get_dataset_manager()
    try:
        dataset = await manager.get(dataset_id)
    except ChartdeckError as e:
        raise http_error(e) from e
    return {"name": dataset.name, "snippets": await manager.count_usage(dataset.name)}


@router.post("/{dataset_id}/refresh", response_model=Dataset)
async def refresh_metadata(dataset_id: str):
    """Recompute metadata; URL datasets are re-fetched."""
    try:
        return await get_dataset_manager().refresh_metadata(dataset_id)
    except ChartdeckError as e:
        raise http_error(e) from e


@router.get("/{dataset_id}/export")
async def export_dataset(dataset_id: str):
    try:
        export = await get_dataset_manager().export_dataset(dataset_id)
    except ChartdeckError as e:
        raise http_error(e) from e
    return Response(
        content=export.content,
        media_type=export.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.post("/{dataset_id}/chart", response_model=Snippet, status_code=201)
async def build_chart(
    dataset_id: str,
    mark: str = Query("bar", description="Vega-Lite mark type"),
):
    """Create a snippet charting this dataset: first column on x, second on y."""
    try:
        dataset = await get_dataset_manager().get(dataset_id)
        return await get_snippet_manager().create_snippet(
            build_chart_spec(dataset, mark=mark),
            comment=f"Chart built from dataset: {dataset.name}",
        )
    except ChartdeckError as e:
        raise http_error(e) from e
