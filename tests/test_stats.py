"""
Tests for column type inference and dataset metadata.
"""

import pytest

from chartdeck.datasets.schemas import ColumnType, DataFormat, DataSource
from chartdeck.datasets.stats import compute_stats, diff_columns, infer_column_type


class TestInferColumnType:
    """Test the threshold vote over column values."""

    def test_boolean(self):
        assert infer_column_type(["true", "false", "true", "true", "false"]) == ColumnType.BOOLEAN

    def test_boolean_case_insensitive(self):
        assert infer_column_type(["TRUE", "False", "true"]) == ColumnType.BOOLEAN

    def test_zero_one_column_is_boolean(self):
        assert infer_column_type(["0", "1", "1", "0"]) == ColumnType.BOOLEAN

    def test_zero_one_values_are_not_number_evidence(self):
        assert infer_column_type(["0", "1", "2", "3", "4"]) == ColumnType.TEXT

    def test_number_with_one_outlier(self):
        assert infer_column_type(["1", "2", "x", "3", "4"]) == ColumnType.NUMBER

    def test_too_many_outliers_is_text(self):
        assert infer_column_type(["1", "2", "x", "y", "4"]) == ColumnType.TEXT

    def test_numbers_from_records(self):
        assert infer_column_type([1.5, 2, -3, 10]) == ColumnType.NUMBER

    def test_integral_floats_are_numbers(self):
        assert infer_column_type([10.0, 3.0]) == ColumnType.NUMBER

    @pytest.mark.parametrize("value", ["007", "1e3", "1.50", "Infinity", "NaN"])
    def test_non_round_tripping_numbers(self, value):
        assert infer_column_type([value]) == ColumnType.TEXT

    def test_iso_dates(self):
        assert infer_column_type(["2024-01-15", "2024-02-01T10:30:00", "2023-12-31"]) == ColumnType.DATE

    def test_iso_timestamps_with_zone(self):
        assert infer_column_type(["2024-01-15T10:30:00Z", "2024-02-01T08:00:00+01:00"]) == ColumnType.DATE

    def test_iso_prefix_with_trailing_junk_is_text(self):
        assert infer_column_type(["2024-01-15xyz", "2024-02-01junk", "2023-12-31??"]) == ColumnType.TEXT

    def test_common_dates(self):
        assert infer_column_type(["01/15/2024", "15-01-2024", "1/2/24"]) == ColumnType.DATE

    def test_invalid_calendar_dates(self):
        assert infer_column_type(["2024-13-45", "2024-02-30", "99/99/2024"]) == ColumnType.TEXT

    def test_blank_and_null_values_ignored(self):
        assert infer_column_type(["", None, "  ", "3", "4"]) == ColumnType.NUMBER

    def test_empty_column_is_text(self):
        assert infer_column_type([None, ""]) == ColumnType.TEXT


class TestComputeStats:
    """Test metadata derivation per format and source."""

    def test_inline_records(self):
        rows = [
            {"city": "Paris", "population": 2100000, "capital": True},
            {"city": "Lyon", "population": 520000, "capital": False},
        ]
        stats = compute_stats(rows, DataFormat.JSON, DataSource.INLINE)

        assert stats.row_count == 2
        assert stats.column_count == 3
        assert stats.columns == ["city", "population", "capital"]
        assert [c.type for c in stats.column_types] == [
            ColumnType.TEXT, ColumnType.NUMBER, ColumnType.BOOLEAN,
        ]

    def test_float_prices_parsed_from_json(self):
        rows = [{"price": p} for p in [10.0, 12.5, 3.0, 4.0, 7.0]]
        stats = compute_stats(rows, DataFormat.JSON, DataSource.INLINE)
        assert stats.column_types[0].type == ColumnType.NUMBER

    def test_byte_size_is_compact_utf8_json(self):
        assert compute_stats([{"a": 1}], DataFormat.JSON, DataSource.INLINE).byte_size == 9
        assert compute_stats([{"a": "é"}], DataFormat.JSON, DataSource.INLINE).byte_size == 12

    def test_empty_records(self):
        stats = compute_stats([], DataFormat.JSON, DataSource.INLINE)
        assert (stats.row_count, stats.column_count, stats.byte_size) == (0, 0, 0)

    def test_topology_object(self):
        stats = compute_stats({"type": "Topology"}, DataFormat.TOPOJSON, DataSource.INLINE)
        assert stats.row_count == 0
        assert stats.column_count == 0
        assert stats.byte_size == len('{"type":"Topology"}')

    def test_csv(self):
        text = '"name", "score"\nann,3\nbob,4\n'
        stats = compute_stats(text, DataFormat.CSV, DataSource.INLINE)

        assert stats.row_count == 2
        assert stats.columns == ["name", "score"]
        assert [c.type for c in stats.column_types] == [ColumnType.TEXT, ColumnType.NUMBER]
        assert stats.byte_size == len(text.encode("utf-8"))

    def test_tsv(self):
        stats = compute_stats("a\tb\n1\t2024-01-01", DataFormat.TSV, DataSource.INLINE)
        assert stats.column_count == 2
        assert stats.column_types[1].type == ColumnType.DATE

    def test_url_source_has_no_metadata(self):
        stats = compute_stats("https://example.com/x.csv", DataFormat.CSV, DataSource.URL)
        assert stats.row_count is None
        assert stats.column_count is None
        assert stats.byte_size is None
        assert stats.columns == []


class TestDiffColumns:
    def test_added_and_removed(self):
        change = diff_columns(["a", "b", "c"], ["a", "c", "d"])
        assert change.added == ["d"]
        assert change.removed == ["b"]
        assert change.changed

    def test_same_columns(self):
        assert not diff_columns(["a"], ["a"]).changed
