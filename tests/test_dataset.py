"""Tests for exploreda row store."""

from __future__ import annotations

import pytest
from exploreda._dataset import ROW_ID, Dataset


class TestDataset:
    def test_from_records_assigns_ids(self) -> None:
        ds = Dataset.from_records([{"a": 1}, {"a": 2}, {"a": 3}])
        assert ds.row_ids == [0, 1, 2]
        assert ds[1] == {"a": 2, ROW_ID: 1}

    def test_explicit_ids(self) -> None:
        ds = Dataset([{ROW_ID: 10, "a": 1}, {ROW_ID: 20, "a": 2}])
        assert len(ds) == 2
        assert ds.get_row(20)["a"] == 2
        assert ds.get_row(99) is None

    def test_field_names_first_seen_order(self) -> None:
        ds = Dataset.from_records([{"b": 1, "a": 2}, {"a": 3, "c": 4}])
        assert ds.field_names == ("b", "a", "c")

    def test_rows_read_only(self) -> None:
        ds = Dataset.from_records([{"a": 1}])
        with pytest.raises(TypeError):
            ds[0]["a"] = 2  # type: ignore[index]

    def test_source_records_not_aliased(self) -> None:
        record = {"a": 1}
        ds = Dataset.from_records([record])
        record["a"] = 100
        assert ds[0]["a"] == 1

    def test_missing_id(self) -> None:
        with pytest.raises(ValueError, match="has no __ID"):
            Dataset([{"a": 1}])

    @pytest.mark.parametrize("bad_id", ["1", 1.0, True, None])
    def test_non_integer_id(self, bad_id: object) -> None:
        with pytest.raises(ValueError, match="non-integer"):
            Dataset([{ROW_ID: bad_id}])

    def test_duplicate_id(self) -> None:
        with pytest.raises(ValueError, match="Duplicate __ID 1"):
            Dataset([{ROW_ID: 1}, {ROW_ID: 1}])

    def test_head(self) -> None:
        ds = Dataset.from_records([{"a": i} for i in range(5)])
        assert [r["a"] for r in ds.head(2)] == [0, 1]
        assert ds.head(-1) == ()
        assert len(ds.head(100)) == 5

    def test_iteration(self) -> None:
        ds = Dataset.from_records([{"a": 1}, {"a": 2}])
        assert [row[ROW_ID] for row in ds] == [0, 1]
