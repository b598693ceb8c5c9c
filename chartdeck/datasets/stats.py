"""Dataset metadata: row/column counts, byte size and per-column types.

Column types come from a fixed-order threshold vote: a column is boolean,
number or date only when at least 80% of its non-blank values support
that type, checked in that order; anything else is text.
"""

import json
import math
import re
from datetime import date, datetime
from typing import Any, Iterable

from .schemas import (
    ColumnType,
    ColumnTypeInfo,
    DataFormat,
    DataSource,
    DatasetStats,
    SchemaChange,
)

TYPE_THRESHOLD = 0.8

DELIMITERS = {
    DataFormat.CSV: ",",
    DataFormat.TSV: "\t",
}

BOOLEAN_TOKENS = {"true", "false", "0", "1"}

# 2024-01-15, 2024-01-15T10:30:00; the whole value must still parse
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2})?")
# 01/15/2024, 15-01-2024, 1/2/24
_COMMON_DATE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})$")

_EDGE_QUOTES = re.compile(r'^"|"$')


# ── Value classification ─────────────────────────────────


def _format_number(num: float) -> str:
    """Shortest string form of a number, integers without a decimal point."""
    if num.is_integer() and abs(num) < 1e21:
        return str(int(num))
    return repr(num)


def _is_number(text: str) -> bool:
    try:
        num = float(text)
    except ValueError:
        return False
    return math.isfinite(num) and _format_number(num) == text


def _is_date(text: str) -> bool:
    if _ISO_DATE.match(text):
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            datetime.fromisoformat(text)
            return True
        except ValueError:
            return False

    common = _COMMON_DATE.match(text)
    if common:
        first, second, year = (int(g) for g in common.groups())
        if year < 100:
            year += 2000
        # month/day or day/month, whichever is a real calendar date
        for month, day in ((first, second), (second, first)):
            try:
                date(year, month, day)
                return True
            except ValueError:
                continue
    return False


def _value_text(value: Any) -> str:
    # parsed floats print like 10.0; compare them in their shortest form
    if isinstance(value, float) and math.isfinite(value):
        return _format_number(value)
    return str(value).strip()


def infer_column_type(values: Iterable[Any]) -> ColumnType:
    """Infer the semantic type of a column from its values.

    Each value counts toward exactly one bucket, checked in the order
    boolean, number, date.
    """
    valid = [_value_text(v) for v in values if v is not None]
    valid = [v for v in valid if v]
    if not valid:
        return ColumnType.TEXT

    boolean_count = 0
    number_count = 0
    date_count = 0

    for text in valid:
        if text.lower() in BOOLEAN_TOKENS:
            boolean_count += 1
            continue
        if _is_number(text):
            number_count += 1
            continue
        if _is_date(text):
            date_count += 1

    total = len(valid)
    if boolean_count / total >= TYPE_THRESHOLD:
        return ColumnType.BOOLEAN
    if number_count / total >= TYPE_THRESHOLD:
        return ColumnType.NUMBER
    if date_count / total >= TYPE_THRESHOLD:
        return ColumnType.DATE
    return ColumnType.TEXT


# ── Stats ────────────────────────────────────────────────


def serialized_size(payload: Any) -> int:
    """UTF-8 byte size of the compact JSON form of a payload."""
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return len(text.encode("utf-8"))


def _clean_cell(cell: str) -> str:
    return _EDGE_QUOTES.sub("", cell.strip())


def _record_stats(payload: Any) -> DatasetStats:
    if not isinstance(payload, list):
        # topojson objects and other non-tabular documents
        size = serialized_size(payload) if payload is not None else 0
        return DatasetStats(row_count=0, column_count=0, byte_size=size)
    if not payload:
        return DatasetStats(row_count=0, column_count=0, byte_size=0)

    first = payload[0]
    columns = [str(k) for k in first.keys()] if isinstance(first, dict) else []
    column_types = [
        ColumnTypeInfo(
            name=col,
            type=infer_column_type(
                row.get(col) if isinstance(row, dict) else None for row in payload
            ),
        )
        for col in columns
    ]
    return DatasetStats(
        row_count=len(payload),
        column_count=len(columns),
        columns=columns,
        column_types=column_types,
        byte_size=serialized_size(payload),
    )


def _delimited_stats(text: Any, delimiter: str) -> DatasetStats:
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    lines = text.strip().splitlines()
    if not lines:
        return DatasetStats(row_count=0, column_count=0, byte_size=len(text.encode("utf-8")))

    columns = [_clean_cell(h) for h in lines[0].split(delimiter)]
    rows = [line.split(delimiter) for line in lines[1:]]

    column_types: list[ColumnTypeInfo] = []
    if rows:
        for index, col in enumerate(columns):
            cells = [_clean_cell(r[index]) if index < len(r) else "" for r in rows]
            column_types.append(ColumnTypeInfo(name=col, type=infer_column_type(cells)))

    return DatasetStats(
        row_count=len(lines) - 1,
        column_count=len(columns),
        columns=columns,
        column_types=column_types,
        byte_size=len(text.encode("utf-8")),
    )


def compute_stats(payload: Any, data_format: DataFormat, source: DataSource) -> DatasetStats:
    """Compute dataset metadata from a payload.

    URL sources get empty metadata: nothing is knowable without a fetch.
    """
    if source == DataSource.URL:
        return DatasetStats()
    if data_format in (DataFormat.JSON, DataFormat.TOPOJSON):
        return _record_stats(payload)
    return _delimited_stats(payload, DELIMITERS[data_format])


def diff_columns(old: Iterable[str], new: Iterable[str]) -> SchemaChange:
    """Columns added and removed between two schemas, in their original order."""
    old_list = list(old)
    new_list = list(new)
    return SchemaChange(
        added=[c for c in new_list if c not in old_list],
        removed=[c for c in old_list if c not in new_list],
    )
