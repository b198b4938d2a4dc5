"""
Stepwise schema edit applier.

The SchemaEditApplier takes a schema snapshot and a batch of raw edits and
applies them one at a time. Each edit is parsed, resolved and validated
against the schema as left by the previous edits. The first failing edit
stops the batch; everything before it stays applied.

Invariants:
    - Edits are applied in request order, never reordered or merged
    - A failing edit leaves no trace: neither schema changes nor receipt entries
    - The returned schema is always the committed prefix
    - Every variant in EDIT_TYPES has a handler (checked at import)
    - Cancellation is only observed between edits

How to change safely:
    - New edit kinds need a parser in edits.py and a handler here
    - Keep handlers pure: build new values, never mutate the input schema
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from ..cancellation import CancellationToken
from ..config import SQL_SERVER_DATA_TYPES
from ..errors import DesignerToolError, ErrorKind, ValidationError
from ..schema.resolver import (
    QualifiedRef,
    resolve_column,
    resolve_column_name,
    resolve_foreign_key,
    resolve_table,
)
from ..schema.types import Column, ForeignKey, OnAction, Schema, Table, new_id
from ..schema.validation import (
    LENGTH_BASED_TYPES,
    check_data_type,
    default_max_length,
    validate_table,
)
from .edits import (
    EDIT_TYPES,
    AddColumn,
    AddForeignKey,
    AddTable,
    ColumnMapping,
    DropColumn,
    DropForeignKey,
    DropTable,
    SetColumn,
    SetForeignKey,
    SetTable,
    parse_edit,
)

logger = logging.getLogger(__name__)

RECEIPT_GROUPS: tuple[str, ...] = (
    "tablesAdded",
    "tablesDropped",
    "tablesUpdated",
    "columnsAdded",
    "columnsDropped",
    "columnsUpdated",
    "foreignKeysAdded",
    "foreignKeysDropped",
    "foreignKeysUpdated",
)

_ACTION_CHOICES = OnAction.describe()


def table_entry(table: Table) -> dict[str, str]:
    return {"schema": table.schema, "name": table.name}


def member_entry(table: Table, name: str) -> dict[str, Any]:
    return {"table": table_entry(table), "name": name}


def check_on_action(value: Any) -> OnAction:
    """Validate a referential action sent as its integer code.

    Raises:
        ValidationError: If the value is not a number or out of range
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Foreign key action must be a number ({_ACTION_CHOICES}).")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Foreign key action must be one of: {_ACTION_CHOICES}.")
        value = int(value)
    try:
        return OnAction(value)
    except ValueError:
        raise ValidationError(f"Foreign key action must be one of: {_ACTION_CHOICES}.") from None


@dataclass
class EditReceipt:
    """Names of the entities touched by the applied edits, grouped by effect.

    Only non-empty groups are rendered.
    """

    groups: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    def add(self, group: str, entry: dict[str, Any]) -> None:
        if group not in RECEIPT_GROUPS:
            raise KeyError(f"Unknown receipt group: {group}")
        self.groups.setdefault(group, []).append(entry)

    def merge(self, other: EditReceipt) -> None:
        for group, entries in other.groups.items():
            for entry in entries:
                self.add(group, entry)

    @property
    def is_empty(self) -> bool:
        return not any(self.groups.values())

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {g: list(self.groups[g]) for g in RECEIPT_GROUPS if self.groups.get(g)}


@dataclass
class _Step:
    """Side effects of one edit, merged into the batch only if it succeeds."""

    receipt: EditReceipt = field(default_factory=EditReceipt)
    touched_columns: list[tuple[str, Column]] = field(default_factory=list)


@dataclass
class EditBatchResult:
    """Result of applying a batch of schema edits.

    Attributes:
        success: Every edit was applied
        schema: Schema after the applied prefix
        applied_edits: Number of edits applied (the committed prefix length)
        receipt: Entities touched by the applied edits
        failed_edit_index: Index of the edit that stopped the batch
        error: Typed error of the failing edit
        touched_columns: (table id, prior column) for every column edited or dropped
    """

    success: bool
    schema: Schema
    applied_edits: int = 0
    receipt: EditReceipt = field(default_factory=EditReceipt)
    failed_edit_index: int | None = None
    error: DesignerToolError | None = None
    touched_columns: list[tuple[str, Column]] = field(default_factory=list)


class SchemaEditApplier:
    """Applies schema edit batches with prefix-commit semantics.

    Thread safety:
        Stateless apart from counters; callers serialize batches per document.

    Example:
        >>> applier = SchemaEditApplier()
        >>> result = applier.apply(Schema(), [
        ...     {"op": "add_table", "table": {"schema": "dbo", "name": "X"}},
        ... ])
        >>> result.applied_edits, result.receipt.to_dict()
        (1, {'tablesAdded': [{'schema': 'dbo', 'name': 'X'}]})
    """

    def __init__(
        self,
        data_types: tuple[str, ...] | list[str] = SQL_SERVER_DATA_TYPES,
        schema_names: tuple[str, ...] | list[str] = (),
    ) -> None:
        """Initialize the applier.

        Args:
            data_types: Accepted column data types (empty accepts any)
            schema_names: Schemas tables may live in (empty accepts any)
        """
        self.data_types = tuple(data_types)
        self.schema_names = tuple(schema_names)
        self._handlers: dict[type, Callable[[Schema, Any, _Step], Schema]] = {
            edit_type: getattr(self, name) for edit_type, name in _HANDLER_NAMES.items()
        }
        self._batches_applied = 0
        self._edits_applied = 0
        self._edits_failed = 0

    def apply(
        self,
        schema: Schema,
        raw_edits: list[Any],
        cancellation: CancellationToken | None = None,
    ) -> EditBatchResult:
        """Apply ``raw_edits`` to ``schema`` in order, stopping at the first failure.

        Args:
            schema: Schema snapshot to start from
            raw_edits: Raw JSON edits, parsed one at a time
            cancellation: Checked before each edit

        Returns:
            EditBatchResult holding the committed prefix
        """
        result = EditBatchResult(success=True, schema=schema)
        for index, raw in enumerate(raw_edits):
            step = _Step()
            try:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                edit = parse_edit(raw)
                new_schema = self._handlers[type(edit)](result.schema, edit, step)
            except DesignerToolError as e:
                self._fail(result, index, e)
                break
            except Exception as e:
                logger.exception(f"Unexpected error applying edit {index}")
                self._fail(
                    result, index, DesignerToolError(str(e), reason=ErrorKind.INTERNAL_ERROR)
                )
                break

            result.schema = new_schema
            result.applied_edits += 1
            result.receipt.merge(step.receipt)
            result.touched_columns.extend(step.touched_columns)

        self._batches_applied += 1
        self._edits_applied += result.applied_edits
        logger.debug(
            f"Applied {result.applied_edits}/{len(raw_edits)} schema edits",
            extra={
                "applied_edits": result.applied_edits,
                "edit_count": len(raw_edits),
                "failed_edit_index": result.failed_edit_index,
            },
        )
        return result

    def _fail(self, result: EditBatchResult, index: int, error: DesignerToolError) -> None:
        result.success = False
        result.failed_edit_index = index
        result.error = error
        self._edits_failed += 1

    @property
    def stats(self) -> dict[str, int]:
        return {
            "batches_applied": self._batches_applied,
            "edits_applied": self._edits_applied,
            "edits_failed": self._edits_failed,
        }

    # -- columns -------------------------------------------------------------

    def _build_column(self, attrs: dict[str, Any]) -> Column:
        attrs = dict(attrs)
        name = attrs.pop("name", "")
        data_type = check_data_type(attrs.pop("data_type"), self.data_types)
        if data_type.lower() in LENGTH_BASED_TYPES and not attrs.get("max_length"):
            attrs["max_length"] = default_max_length(data_type)
        if attrs.get("is_primary_key") and "is_nullable" not in attrs:
            attrs["is_nullable"] = False
        if attrs.get("is_identity"):
            attrs.setdefault("identity_seed", 1)
            attrs.setdefault("identity_increment", 1)
        return Column.create(name, data_type, **attrs)

    def _validate(self, schema: Schema, table: Table, check_name: bool = False) -> None:
        # Only edits that create or rename a table check for a duplicate name.
        validate_table(schema, table, self.schema_names, check_name)

    # -- tables --------------------------------------------------------------

    def _apply_add_table(self, schema: Schema, edit: AddTable, step: _Step) -> Schema:
        if edit.initial_columns is None:
            columns = (
                Column.create(
                    "Id",
                    "int",
                    is_primary_key=True,
                    is_identity=True,
                    identity_seed=1,
                    identity_increment=1,
                    is_nullable=False,
                ),
            )
        else:
            columns = tuple(self._build_column(attrs) for attrs in edit.initial_columns)
        table = Table.create(schema=edit.schema, name=edit.name, columns=columns)
        self._validate(schema, table, check_name=True)
        step.receipt.add("tablesAdded", table_entry(table))
        return Schema(tables=schema.tables + (table,))

    def _apply_drop_table(self, schema: Schema, edit: DropTable, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        remaining = [t for t in schema.tables if t.id != table.id]
        # A case-insensitive twin keeps references to the shared name alive.
        name_survives = any(t.matches(table.schema, table.name) for t in remaining)

        tables = []
        for other in remaining:
            if not name_survives:
                kept = tuple(
                    fk for fk in other.foreign_keys if not fk.references(table.schema, table.name)
                )
                for fk in other.foreign_keys:
                    if fk not in kept:
                        step.receipt.add("foreignKeysDropped", member_entry(other, fk.name))
                other = replace(other, foreign_keys=kept)
            tables.append(other)

        step.receipt.add("tablesDropped", table_entry(table))
        return Schema(tables=tuple(tables))

    def _apply_set_table(self, schema: Schema, edit: SetTable, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        updated = replace(
            table,
            name=edit.name or table.name,
            schema=edit.schema or table.schema,
        )

        renamed = not updated.matches(table.schema, table.name)
        name_survives = any(
            t.id != table.id and t.matches(table.schema, table.name) for t in schema.tables
        )
        tables = []
        for other in schema.tables:
            current = updated if other.id == table.id else other
            if renamed and not name_survives:
                current = replace(
                    current,
                    foreign_keys=tuple(
                        replace(
                            fk,
                            referenced_schema_name=updated.schema,
                            referenced_table_name=updated.name,
                        )
                        if fk.references(table.schema, table.name)
                        else fk
                        for fk in current.foreign_keys
                    ),
                )
            tables.append(current)

        result = Schema(tables=tuple(tables))
        updated = result.get_table(table.id)
        self._validate(result, updated, check_name=renamed)
        step.receipt.add("tablesUpdated", table_entry(updated))
        return result

    # -- columns -------------------------------------------------------------

    def _apply_add_column(self, schema: Schema, edit: AddColumn, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        column = self._build_column(edit.column)
        updated = replace(table, columns=table.columns + (column,))
        self._validate(schema, updated)
        step.receipt.add("columnsAdded", member_entry(updated, column.name))
        return schema.replace_table(updated)

    def _apply_drop_column(self, schema: Schema, edit: DropColumn, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        column = resolve_column(table, edit.column)
        _check_column_unreferenced(schema, table, column)

        updated = replace(table, columns=tuple(c for c in table.columns if c.id != column.id))
        self._validate(schema, updated)
        step.receipt.add("columnsDropped", member_entry(updated, column.name))
        step.touched_columns.append((table.id, column))
        return schema.replace_table(updated)

    def _apply_set_column(self, schema: Schema, edit: SetColumn, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        column = resolve_column(table, edit.column)

        changes = dict(edit.changes)
        if "data_type" in changes:
            changes["data_type"] = check_data_type(changes["data_type"], self.data_types)
            new_type = changes["data_type"].lower()
            if new_type in LENGTH_BASED_TYPES and not changes.get("max_length"):
                if column.data_type.lower() not in LENGTH_BASED_TYPES or not column.max_length:
                    changes["max_length"] = default_max_length(new_type)
            elif new_type not in LENGTH_BASED_TYPES and "max_length" not in changes:
                changes["max_length"] = ""
        if changes.get("is_identity") and not column.is_identity:
            changes.setdefault("identity_seed", column.identity_seed or 1)
            changes.setdefault("identity_increment", column.identity_increment or 1)
        updated_column = replace(column, **changes)

        updated = replace(
            table,
            columns=tuple(updated_column if c.id == column.id else c for c in table.columns),
        )
        old_name = column.name
        new_name = updated_column.name
        if new_name != old_name:
            updated = replace(
                updated,
                foreign_keys=tuple(
                    replace(fk, columns=_rename(fk.columns, old_name, new_name))
                    for fk in updated.foreign_keys
                ),
            )
        tables = []
        for other in schema.tables:
            current = updated if other.id == table.id else other
            if new_name != old_name:
                current = replace(
                    current,
                    foreign_keys=tuple(
                        replace(
                            fk,
                            referenced_columns=_rename(fk.referenced_columns, old_name, new_name),
                        )
                        if fk.references(table.schema, table.name)
                        else fk
                        for fk in current.foreign_keys
                    ),
                )
            tables.append(current)

        result = Schema(tables=tuple(tables))
        updated = result.get_table(table.id)
        self._validate(result, updated)
        step.receipt.add("columnsUpdated", member_entry(updated, new_name))
        step.touched_columns.append((table.id, column))
        return result

    # -- foreign keys --------------------------------------------------------

    def _resolve_mappings(
        self,
        table: Table,
        referenced: Table,
        mappings: tuple[ColumnMapping, ...] | None,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        if not mappings:
            raise ValidationError("Foreign key must map at least one column.")
        columns = tuple(resolve_column_name(table, m.column) for m in mappings)
        referenced_columns = tuple(
            resolve_column_name(referenced, m.referenced_column) for m in mappings
        )
        return columns, referenced_columns

    def _apply_add_foreign_key(self, schema: Schema, edit: AddForeignKey, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        on_delete = check_on_action(edit.on_delete_action)
        on_update = check_on_action(edit.on_update_action)
        referenced = resolve_table(schema.tables, edit.referenced_table)
        columns, referenced_columns = self._resolve_mappings(table, referenced, edit.mappings)

        fk = ForeignKey(
            id=new_id(),
            name=edit.name,
            columns=columns,
            referenced_schema_name=referenced.schema,
            referenced_table_name=referenced.name,
            referenced_columns=referenced_columns,
            on_delete_action=on_delete,
            on_update_action=on_update,
        )
        updated = replace(table, foreign_keys=table.foreign_keys + (fk,))
        self._validate(schema, updated)
        step.receipt.add("foreignKeysAdded", member_entry(updated, fk.name))
        return schema.replace_table(updated)

    def _apply_drop_foreign_key(
        self, schema: Schema, edit: DropForeignKey, step: _Step
    ) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        fk = resolve_foreign_key(table, edit.foreign_key)
        updated = replace(
            table, foreign_keys=tuple(k for k in table.foreign_keys if k.id != fk.id)
        )
        step.receipt.add("foreignKeysDropped", member_entry(updated, fk.name))
        return schema.replace_table(updated)

    def _apply_set_foreign_key(self, schema: Schema, edit: SetForeignKey, step: _Step) -> Schema:
        table = resolve_table(schema.tables, edit.table)
        fk = resolve_foreign_key(table, edit.foreign_key)

        changes: dict[str, Any] = {}
        if edit.name is not None:
            changes["name"] = edit.name
        if edit.set_on_delete:
            changes["on_delete_action"] = check_on_action(edit.on_delete_action)
        if edit.set_on_update:
            changes["on_update_action"] = check_on_action(edit.on_update_action)

        if edit.referenced_table is not None or edit.mappings is not None:
            ref = edit.referenced_table or QualifiedRef(
                schema=fk.referenced_schema_name, name=fk.referenced_table_name
            )
            referenced = resolve_table(schema.tables, ref)
            changes["referenced_schema_name"] = referenced.schema
            changes["referenced_table_name"] = referenced.name
            if edit.mappings is not None:
                columns, referenced_columns = self._resolve_mappings(
                    table, referenced, edit.mappings
                )
                changes["columns"] = columns
                changes["referenced_columns"] = referenced_columns

        updated_fk = replace(fk, **changes)
        updated = replace(
            table,
            foreign_keys=tuple(updated_fk if k.id == fk.id else k for k in table.foreign_keys),
        )
        self._validate(schema, updated)
        step.receipt.add("foreignKeysUpdated", member_entry(updated, updated_fk.name))
        return schema.replace_table(updated)


def _rename(names: tuple[str, ...], old: str, new: str) -> tuple[str, ...]:
    return tuple(new if n.lower() == old.lower() else n for n in names)


def _check_column_unreferenced(schema: Schema, table: Table, column: Column) -> None:
    """Refuse to drop a column a foreign key still maps."""
    name = column.name.lower()
    for fk in table.foreign_keys:
        if any(c.lower() == name for c in fk.columns):
            raise ValidationError(
                f"Column '{column.name}' is used by foreign key '{fk.name}'. "
                "Drop or update the foreign key first."
            )
    for other in schema.tables:
        for fk in other.foreign_keys:
            if fk.references(table.schema, table.name) and any(
                c.lower() == name for c in fk.referenced_columns
            ):
                raise ValidationError(
                    f"Column '{column.name}' is referenced by foreign key "
                    f"'{other.qualified_name}.{fk.name}'. Drop or update the foreign key first."
                )


_HANDLER_NAMES: dict[type, str] = {
    AddTable: "_apply_add_table",
    DropTable: "_apply_drop_table",
    SetTable: "_apply_set_table",
    AddColumn: "_apply_add_column",
    DropColumn: "_apply_drop_column",
    SetColumn: "_apply_set_column",
    AddForeignKey: "_apply_add_foreign_key",
    DropForeignKey: "_apply_drop_foreign_key",
    SetForeignKey: "_apply_set_foreign_key",
}

_unhandled = [t.__name__ for t in EDIT_TYPES if t not in _HANDLER_NAMES]
if _unhandled:
    raise RuntimeError(f"Schema edit variants without a handler: {_unhandled}")

