"""
Unit tests for the original-value cache.

Tests cover:
- First-prior-value retention
- Structured keys
- Restoring edited and dropped columns
"""

from dataclasses import replace

from sqltools.schema_designer.schema.types import Column, Schema, Table
from sqltools.schema_designer.session.original_values import CellKey, OriginalValueCache


def make_table():
    return Table.create(
        "dbo",
        "Users",
        columns=(Column.create("Id", "int", id="c-id"), Column.create("Name", "nvarchar", max_length="50", id="c-name")),
        id="t-users",
    )


class TestOriginalValueCache:
    """Tests for OriginalValueCache."""

    def test_first_value_wins(self):
        """Later edits never overwrite the remembered value."""
        cache = OriginalValueCache()
        table = make_table()
        first = table.columns[1]
        cache.remember(table.id, first)
        cache.remember(table.id, replace(first, name="FullName"))
        assert cache.get("t-users", "c-name").name == "Name"
        assert len(cache) == 1

    def test_structured_keys(self):
        """Keys are (table id, column id) pairs."""
        cache = OriginalValueCache()
        table = make_table()
        cache.remember(table.id, table.columns[0])
        assert CellKey("t-users", "c-id") in cache
        assert CellKey("t-users/c-id", "") not in cache
        assert list(cache) == [CellKey("t-users", "c-id")]

    def test_restore_edited_column(self):
        """Edited columns are restored in place."""
        cache = OriginalValueCache()
        table = make_table()
        cache.remember(table.id, table.columns[1])
        edited = replace(
            table, columns=(table.columns[0], replace(table.columns[1], name="FullName"))
        )
        restored = cache.restore(Schema(tables=(edited,)))
        assert [c.name for c in restored.tables[0].columns] == ["Id", "Name"]

    def test_restore_dropped_column(self):
        """Dropped columns are appended back."""
        cache = OriginalValueCache()
        table = make_table()
        cache.remember(table.id, table.columns[1])
        dropped = replace(table, columns=(table.columns[0],))
        restored = cache.restore(Schema(tables=(dropped,)))
        assert restored.tables[0].columns == table.columns

    def test_restore_skips_missing_tables(self):
        """Values for dropped tables are ignored."""
        cache = OriginalValueCache()
        cache.remember("t-gone", Column.create("X", "int"))
        other = Table.create("dbo", "Other", columns=(Column.create("Id", "int"),))
        restored = cache.restore(Schema(tables=(other,)))
        assert restored.tables[0].columns == other.columns

    def test_clear(self):
        """clear forgets everything."""
        cache = OriginalValueCache()
        cache.remember("t", Column.create("X", "int"))
        cache.clear()
        assert len(cache) == 0
