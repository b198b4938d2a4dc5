"""
Unit tests for table validation.

Tests cover:
- Column rules (names, primary keys, lengths)
- Table rules (schemas, duplicates, empty tables)
- Foreign key reference checks
- Data type checks
"""

import pytest

from sqltools.schema_designer.errors import ValidationError
from sqltools.schema_designer.schema.types import Column, ForeignKey, Schema, Table
from sqltools.schema_designer.schema.validation import (
    check_data_type,
    default_max_length,
    table_errors,
    validate_table,
)


def table_with(*columns, foreign_keys=(), schema="dbo", name="T"):
    return Table.create(schema, name, columns=columns, foreign_keys=foreign_keys)


class TestColumnRules:
    """Tests for per-column validation."""

    def test_valid_table(self):
        """A plain table has no errors."""
        table = table_with(Column.create("Id", "int", is_primary_key=True, is_nullable=False))
        assert table_errors(Schema(), table) == []

    def test_duplicate_column_names(self):
        """Column names are unique case-insensitively."""
        table = table_with(Column.create("Name", "int"), Column.create("NAME", "int"))
        assert "Column 'Name' already exists" in table_errors(Schema(), table)

    def test_nullable_primary_key(self):
        """Primary key columns cannot be nullable."""
        table = table_with(Column.create("Id", "int", is_primary_key=True))
        assert table_errors(Schema(), table) == [
            "Column 'Id' cannot be null because it is a primary key"
        ]

    def test_length_type_needs_length(self):
        """Length-based types need a max length."""
        table = table_with(Column.create("Name", "nvarchar"))
        assert table_errors(Schema(), table) == ["Column max length cannot be empty"]

    def test_invalid_length(self):
        """Max length must be positive or MAX."""
        bad = table_with(Column.create("Name", "varchar", max_length="abc"))
        zero = table_with(Column.create("Name", "varchar", max_length="0"))
        assert table_errors(Schema(), bad) == ["Invalid max length 'abc'"]
        assert table_errors(Schema(), zero) == ["Invalid max length '0'"]

    def test_max_length_max(self):
        """MAX is accepted in any case."""
        table = table_with(Column.create("Body", "nvarchar", max_length="max"))
        assert table_errors(Schema(), table) == []


class TestTableRules:
    """Tests for per-table validation."""

    def test_empty_table(self):
        """Tables need at least one column."""
        assert table_errors(Schema(), table_with()) == ["Table must have at least one column."]

    def test_unavailable_schema(self):
        """Schema must be one of the available schemas."""
        table = table_with(Column.create("Id", "int"), schema="sales")
        assert table_errors(Schema(), table, ["dbo"]) == ["Schema 'sales' is not available."]
        assert table_errors(Schema(), table, ["DBO", "Sales"]) == []

    def test_duplicate_table(self):
        """(schema, name) is unique case-insensitively."""
        existing = table_with(Column.create("Id", "int"), name="Orders")
        candidate = table_with(Column.create("Id", "int"), schema="DBO", name="orders")
        errors = table_errors(Schema(tables=(existing,)), candidate)
        assert errors == ["Table 'orders' already exists"]
        assert table_errors(Schema(tables=(existing,)), candidate, check_name=False) == []

    def test_validate_raises_first_error(self):
        """validate_table raises the first error and lists all of them."""
        table = table_with(Column.create("Id", "int", is_primary_key=True), schema="x")
        with pytest.raises(ValidationError) as exc_info:
            validate_table(Schema(), table, ["dbo"])
        assert exc_info.value.message == "Schema 'x' is not available."
        assert len(exc_info.value.details["errors"]) == 2


class TestForeignKeyRules:
    """Tests for foreign key validation."""

    def make_fk(self, **overrides):
        values = dict(
            id="fk1",
            name="FK_T_Parent",
            columns=("ParentId",),
            referenced_schema_name="dbo",
            referenced_table_name="Parent",
            referenced_columns=("Id",),
        )
        values.update(overrides)
        return ForeignKey(**values)

    def test_missing_referenced_table(self):
        """Referenced tables must exist."""
        table = table_with(Column.create("ParentId", "int"), foreign_keys=(self.make_fk(),))
        assert table_errors(Schema(), table) == ["Referenced table 'dbo.Parent' not found"]

    def test_valid_reference(self):
        """A key to an existing column passes."""
        parent = table_with(Column.create("Id", "int"), name="Parent")
        table = table_with(Column.create("ParentId", "int"), foreign_keys=(self.make_fk(),))
        assert table_errors(Schema(tables=(parent,)), table) == []

    def test_missing_columns(self):
        """Both sides of each mapping must exist."""
        parent = table_with(Column.create("Key", "int"), name="Parent")
        table = table_with(Column.create("Other", "int"), foreign_keys=(self.make_fk(),))
        assert table_errors(Schema(tables=(parent,)), table) == [
            "Column 'ParentId' not found",
            "Referenced column 'Id' not found",
        ]

    def test_duplicate_key_names(self):
        """Key names are unique within a table."""
        parent = table_with(Column.create("Id", "int"), name="Parent")
        table = table_with(
            Column.create("ParentId", "int"),
            foreign_keys=(self.make_fk(), self.make_fk(id="fk2", name="fk_t_parent")),
        )
        assert table_errors(Schema(tables=(parent,)), table) == [
            "Foreign key 'fk_t_parent' already exists"
        ]

    def test_self_reference(self):
        """A table may reference itself."""
        fk = self.make_fk(referenced_table_name="T", columns=("ParentId",), referenced_columns=("Id",))
        table = table_with(Column.create("Id", "int"), Column.create("ParentId", "int"), foreign_keys=(fk,))
        assert table_errors(Schema(tables=(table,)), table) == []


class TestDataTypes:
    """Tests for data type helpers."""

    def test_case_insensitive(self):
        """Types match case-insensitively and keep the caller's spelling."""
        assert check_data_type(" NVARCHAR ", ["nvarchar"]) == "NVARCHAR"

    def test_unknown_type(self):
        """Unknown types are rejected."""
        with pytest.raises(ValidationError, match="Data type 'nvarchar2' is invalid."):
            check_data_type("nvarchar2", ["nvarchar"])

    def test_empty_list_accepts_any(self):
        """An empty list disables the check."""
        assert check_data_type("anything", []) == "anything"

    def test_default_lengths(self):
        """Single-character types default to 1, others to 50."""
        assert default_max_length("char") == "1"
        assert default_max_length("vector") == "1"
        assert default_max_length("nvarchar") == "50"
        assert default_max_length("int") == ""
