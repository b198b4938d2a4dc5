"""
Structural validation of tables.

Validation runs on the table an edit is about to commit, in the context of
the rest of the schema. It returns human-readable errors in a fixed order
so the first one is deterministic.

Invariants:
    - Validation never mutates its inputs
    - An empty ``data_types`` or ``schema_names`` collection disables that check
"""

from __future__ import annotations

from collections.abc import Iterable

from ..errors import ValidationError
from .types import Column, Schema, Table

LENGTH_BASED_TYPES = frozenset(
    {"char", "varchar", "nchar", "nvarchar", "binary", "varbinary", "vector"}
)


def default_max_length(data_type: str) -> str:
    """Length assigned to new length-based columns that do not give one."""
    data_type = data_type.lower()
    if data_type in ("char", "nchar", "binary", "vector"):
        return "1"
    if data_type in LENGTH_BASED_TYPES:
        return "50"
    return ""


def check_data_type(data_type: str, data_types: Iterable[str]) -> str:
    """Validate a column data type case-insensitively.

    Args:
        data_type: Requested type name
        data_types: Accepted type names (empty accepts anything)

    Returns:
        The type name as supplied (trimmed)

    Raises:
        ValidationError: If the type is not recognized
    """
    data_type = data_type.strip()
    accepted = {t.lower() for t in data_types}
    if accepted and data_type.lower() not in accepted:
        raise ValidationError(f"Data type '{data_type}' is invalid.")
    return data_type


def column_errors(column: Column, columns: Iterable[Column]) -> list[str]:
    """Validate one column against its siblings."""
    errors: list[str] = []
    if not column.name:
        errors.append("Column name cannot be empty")
        return errors

    conflict = any(
        c.id != column.id and c.name.lower() == column.name.lower() for c in columns
    )
    if conflict:
        errors.append(f"Column '{column.name}' already exists")
    if column.is_primary_key and column.is_nullable:
        errors.append(f"Column '{column.name}' cannot be null because it is a primary key")

    if column.data_type.lower() in LENGTH_BASED_TYPES:
        if not column.max_length:
            errors.append("Column max length cannot be empty")
        elif column.max_length.upper() != "MAX":
            try:
                valid = int(column.max_length) > 0
            except ValueError:
                valid = False
            if not valid:
                errors.append(f"Invalid max length '{column.max_length}'")
    return errors


def table_errors(
    schema: Schema,
    table: Table,
    schema_names: Iterable[str] = (),
    check_name: bool = True,
) -> list[str]:
    """Collect validation errors for ``table`` as it would be committed.

    Args:
        schema: Current schema (``table`` replaces the entry with its id)
        table: Candidate table
        schema_names: Schemas available in the database (empty = any)
        check_name: Report other tables with the same qualified name. Edits
            that keep the table's name skip this so existing duplicates stay
            editable by id.

    Returns:
        List of error messages (empty if valid)
    """
    errors: list[str] = []
    if not table.columns:
        errors.append("Table must have at least one column.")

    available = {s.lower() for s in schema_names}
    if available and table.schema.lower() not in available:
        errors.append(f"Schema '{table.schema}' is not available.")

    if not table.name:
        errors.append("Table name cannot be empty")
    elif check_name and any(
        t.id != table.id and t.matches(table.schema, table.name) for t in schema.tables
    ):
        errors.append(f"Table '{table.name}' already exists")

    for column in table.columns:
        errors.extend(column_errors(column, table.columns))

    others = [t for t in schema.tables if t.id != table.id] + [table]
    column_names = {c.name.lower() for c in table.columns}
    seen_keys: set[str] = set()
    for fk in table.foreign_keys:
        if not fk.name:
            errors.append("Foreign key name cannot be empty")
        elif fk.name.lower() in seen_keys:
            errors.append(f"Foreign key '{fk.name}' already exists")
        seen_keys.add(fk.name.lower())

        if not fk.columns or not fk.referenced_columns:
            errors.append("Foreign key must map at least one column.")
            continue
        if len(fk.columns) != len(fk.referenced_columns):
            errors.append(
                "Foreign key columns and referenced columns must have the same length."
            )
            continue
        for name in fk.columns:
            if name.lower() not in column_names:
                errors.append(f"Column '{name}' not found")

        targets = [
            t for t in others if t.matches(fk.referenced_schema_name, fk.referenced_table_name)
        ]
        if not targets:
            errors.append(
                f"Referenced table '{fk.referenced_schema_name}.{fk.referenced_table_name}' not found"
            )
            continue
        for name in fk.referenced_columns:
            if not any(name.lower() in {c.name.lower() for c in t.columns} for t in targets):
                errors.append(f"Referenced column '{name}' not found")

    return errors


def validate_table(
    schema: Schema,
    table: Table,
    schema_names: Iterable[str] = (),
    check_name: bool = True,
) -> None:
    """Raise ValidationError with the first error for ``table``, if any."""
    errors = table_errors(schema, table, schema_names, check_name)
    if errors:
        raise ValidationError(errors[0], details={"errors": errors})
