"""
Bounded read views of the schema document.

Reads never return the live document. They return plain-data projections
whose size is bounded by caller-selected verbosity and by hard ceilings
that force a cheaper projection on very large schemas.

Invariants:
    - When the table or total column count exceeds its ceiling, no table
      in the overview carries a ``columns`` field and ``columnsOmitted``
      is true, whatever detail was requested
    - Foreign key mappings pair ``columns[i]`` with ``referencedColumns[i]``
      by position, never by matching names
    - Projections are JSON-serializable and share no objects with the document

How to change safely:
    - Add detail levels at the end of ColumnDetail (ordering is meaningful)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import InvalidRequestError
from .types import Column, ForeignKey, Schema, Table

DEFAULT_MAX_TABLES = 40
DEFAULT_MAX_COLUMNS = 400


class ColumnDetail(Enum):
    """How much column detail a projection carries, from least to most."""

    NONE = "none"
    NAMES = "names"
    NAMES_AND_TYPES = "namesAndTypes"
    FULL = "full"

    @classmethod
    def from_str(cls, value: Any, default: ColumnDetail, allowed: tuple[ColumnDetail, ...]) -> ColumnDetail:
        """Parse a caller-supplied level.

        Raises:
            InvalidRequestError: If the value is not one of ``allowed``
        """
        if value is None:
            return default
        for level in allowed:
            if level.value == value:
                return level
        valid = [level.value for level in allowed]
        raise InvalidRequestError(f"Invalid column detail '{value}'. Valid values: {valid}")


OVERVIEW_LEVELS = (ColumnDetail.NONE, ColumnDetail.NAMES, ColumnDetail.NAMES_AND_TYPES)
TABLE_LEVELS = (ColumnDetail.NAMES, ColumnDetail.NAMES_AND_TYPES, ColumnDetail.FULL)


@dataclass
class Overview:
    """Result of build_overview.

    Attributes:
        tables: Projected tables
        table_count: Number of tables in the document
        column_count: Total columns across all tables
        columns_omitted: Column detail was dropped by the size guard
    """

    tables: list[dict[str, Any]] = field(default_factory=list)
    table_count: int = 0
    column_count: int = 0
    columns_omitted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tableCount": self.table_count,
            "columnCount": self.column_count,
            "tables": self.tables,
        }


def render_foreign_key(fk: ForeignKey) -> dict[str, Any]:
    return {
        "name": fk.name,
        "referencedTable": {
            "schema": fk.referenced_schema_name,
            "name": fk.referenced_table_name,
        },
        "mappings": [
            {"column": column, "referencedColumn": referenced}
            for column, referenced in fk.mappings()
        ],
        "onDeleteAction": int(fk.on_delete_action),
        "onUpdateAction": int(fk.on_update_action),
    }


def render_column(column: Column, detail: ColumnDetail) -> dict[str, Any] | str:
    if detail == ColumnDetail.NAMES:
        return column.name
    if detail == ColumnDetail.NAMES_AND_TYPES:
        return {
            "name": column.name,
            "dataType": column.data_type,
            "isPrimaryKey": column.is_primary_key,
            "isNullable": column.is_nullable,
        }
    return column.to_dict()


def build_table_view(
    table: Table,
    detail: ColumnDetail = ColumnDetail.NAMES_AND_TYPES,
    include_foreign_keys: bool = False,
) -> dict[str, Any]:
    """Project a single table.

    ``full`` adds every column attribute and the table/column/key ids.
    """
    view: dict[str, Any] = {"schema": table.schema, "name": table.name}
    if detail == ColumnDetail.FULL:
        view["id"] = table.id
    if detail != ColumnDetail.NONE:
        view["columns"] = [render_column(c, detail) for c in table.columns]
    if include_foreign_keys:
        keys = []
        for fk in table.foreign_keys:
            rendered = render_foreign_key(fk)
            if detail == ColumnDetail.FULL:
                rendered["id"] = fk.id
            keys.append(rendered)
        view["foreignKeys"] = keys
    return view


def build_overview(
    schema: Schema,
    column_detail: ColumnDetail = ColumnDetail.NAMES,
    include_foreign_keys: bool = False,
    max_tables: int = DEFAULT_MAX_TABLES,
    max_columns: int = DEFAULT_MAX_COLUMNS,
) -> Overview:
    """Build a size-bounded overview of the schema.

    Args:
        schema: Schema snapshot
        column_detail: Requested column detail (none, names, namesAndTypes)
        include_foreign_keys: Render foreign keys (independent of column detail)
        max_tables: Table ceiling for column detail
        max_columns: Total column ceiling for column detail

    Returns:
        Overview with ``columns_omitted`` set when the size guard fired
    """
    table_count = len(schema.tables)
    column_count = schema.column_count
    over_ceiling = table_count > max_tables or column_count > max_columns

    detail = column_detail
    columns_omitted = False
    if over_ceiling and detail != ColumnDetail.NONE:
        detail = ColumnDetail.NONE
        columns_omitted = True

    tables = []
    for table in schema.tables:
        view = build_table_view(table, detail, include_foreign_keys)
        view["id"] = table.id
        tables.append(view)

    return Overview(
        tables=tables,
        table_count=table_count,
        column_count=column_count,
        columns_omitted=columns_omitted,
    )


def build_schema_summary(schema: Schema) -> dict[str, int]:
    """Counts-only projection."""
    return {
        "tableCount": len(schema.tables),
        "columnCount": schema.column_count,
        "foreignKeyCount": schema.foreign_key_count,
    }
