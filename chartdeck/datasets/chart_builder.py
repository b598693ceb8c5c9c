"""Starter chart specs for a dataset.

Produces a Vega-Lite spec that references the dataset by name, with the
first column on x and the second on y.
"""

from typing import Any, Optional

from .schemas import ColumnType, Dataset

VEGA_LITE_SCHEMA = "https://vega.github.io/schema/vega-lite/v5.json"

ENCODING_TYPES = {
    ColumnType.NUMBER: "quantitative",
    ColumnType.DATE: "temporal",
    ColumnType.TEXT: "nominal",
    ColumnType.BOOLEAN: "nominal",
}


def encoding_type(dataset: Dataset, column: str, fallback: str) -> str:
    for info in dataset.column_types:
        if info.name == column:
            return ENCODING_TYPES.get(info.type, "nominal")
    return fallback


def build_chart_spec(
    dataset: Dataset,
    mark: str = "bar",
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "$schema": VEGA_LITE_SCHEMA,
        "data": {"name": dataset.name},
        "mark": {"type": mark, "tooltip": True},
    }

    encoding: dict[str, Any] = {}
    columns = dataset.columns
    if len(columns) >= 1:
        encoding["x"] = {
            "field": columns[0],
            "type": encoding_type(dataset, columns[0], "nominal"),
        }
    if len(columns) >= 2:
        encoding["y"] = {
            "field": columns[1],
            "type": encoding_type(dataset, columns[1], "quantitative"),
        }
    if encoding:
        spec["encoding"] = encoding

    if width:
        spec["width"] = width
    if height:
        spec["height"] = height
    return spec
