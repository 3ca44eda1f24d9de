"""Dataset: the immutable row store calculations read from.

Every row carries a unique integer identifier under ``__ID``, assigned once at
import time.  A dataset is never mutated; importing new data replaces it.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

ROW_ID = "__ID"

Row = Mapping[str, Any]


class Dataset:
    """Read-only sequence of rows keyed by ``__ID``."""

    __slots__ = ("_rows", "_index", "_field_names")

    def __init__(self, rows: Iterable[Mapping[str, Any]]) -> None:
        frozen: list[Row] = []
        index: dict[int, int] = {}
        fields: dict[str, None] = {}

        for position, row in enumerate(rows):
            if ROW_ID not in row:
                raise ValueError(f"Row {position} has no {ROW_ID} field")
            row_id = row[ROW_ID]
            if isinstance(row_id, bool) or not isinstance(row_id, int):
                raise ValueError(f"Row {position} has a non-integer {ROW_ID}: {row_id!r}")
            if row_id in index:
                raise ValueError(f"Duplicate {ROW_ID} {row_id} at row {position}")
            index[row_id] = position
            frozen.append(MappingProxyType(dict(row)))
            for key in row:
                if key != ROW_ID:
                    fields.setdefault(key, None)

        self._rows: tuple[Row, ...] = tuple(frozen)
        self._index = index
        self._field_names = tuple(fields)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> Dataset:
        """Import plain records, assigning ``__ID`` from the record position."""
        return cls({**record, ROW_ID: i} for i, record in enumerate(records))

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __getitem__(self, position: int) -> Row:
        return self._rows[position]

    @property
    def field_names(self) -> tuple[str, ...]:
        """Field names in first-seen order, without ``__ID``."""
        return self._field_names

    @property
    def row_ids(self) -> list[int]:
        return [row[ROW_ID] for row in self._rows]

    def get_row(self, row_id: int) -> Row | None:
        position = self._index.get(row_id)
        if position is None:
            return None
        return self._rows[position]

    def head(self, limit: int) -> tuple[Row, ...]:
        return self._rows[:max(limit, 0)]
