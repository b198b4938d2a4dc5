"""
Original column values for revert and dirty tracking.

When an edit changes or drops a column, the column as it was before the
first such edit since the last save is remembered under a structured
(table id, column id) key. Later edits to the same cell never overwrite
the remembered value.

Invariants:
    - Only the first prior value per cell is kept
    - Keys are structured, never concatenated strings
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterator

from ..schema.types import Column, Schema


@dataclass(frozen=True)
class CellKey:
    """Identifies a column within a table."""

    row_id: str
    column_id: str


class OriginalValueCache:
    """First-prior-value cache keyed by CellKey."""

    def __init__(self) -> None:
        self._values: dict[CellKey, Column] = {}

    def remember(self, table_id: str, column: Column) -> None:
        self._values.setdefault(CellKey(table_id, column.id), column)

    def get(self, table_id: str, column_id: str) -> Column | None:
        return self._values.get(CellKey(table_id, column_id))

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[CellKey]:
        return iter(self._values)

    def clear(self) -> None:
        self._values.clear()

    def restore(self, schema: Schema) -> Schema:
        """Put every remembered column back into its table.

        Edited columns are replaced in place; dropped columns are appended.
        Tables that no longer exist are skipped.

        Args:
            schema: Current schema

        Returns:
            Schema with the remembered column values restored
        """
        tables = []
        for table in schema.tables:
            columns = list(table.columns)
            for key, original in self._values.items():
                if key.row_id != table.id:
                    continue
                for i, column in enumerate(columns):
                    if column.id == key.column_id:
                        columns[i] = original
                        break
                else:
                    columns.append(original)
            tables.append(replace(table, columns=tuple(columns)))
        return Schema(tables=tuple(tables))
