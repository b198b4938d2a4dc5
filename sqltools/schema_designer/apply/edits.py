"""
Schema edit variants.

Every structural edit a caller can request is one of a closed set of
frozen dataclasses. ``parse_edit`` turns a raw JSON edit into its variant,
rejecting malformed shapes with InvalidRequestError; semantic checks
(resolution, data types, name collisions) happen when the edit is applied.

Invariants:
    - EDIT_TYPES is the complete, closed set of variants
    - Parsing never looks at the document
    - Every variant's ``op`` is unique and matches the wire discriminator

How to change safely:
    - Add a variant class, a parser in _PARSERS and a handler in the
      applier; the applier refuses to import with a missing handler
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Callable, ClassVar, Union

from ..errors import InvalidRequestError
from ..payload import clean_str, optional_str, require_mapping, required_str
from ..schema.resolver import MemberRef, QualifiedRef

# Wire name -> (Column attribute, expected kind)
COLUMN_ATTRIBUTES: dict[str, tuple[str, str]] = {
    "name": ("name", "str"),
    "dataType": ("data_type", "str"),
    "maxLength": ("max_length", "length"),
    "precision": ("precision", "int"),
    "scale": ("scale", "int"),
    "isPrimaryKey": ("is_primary_key", "bool"),
    "isIdentity": ("is_identity", "bool"),
    "identitySeed": ("identity_seed", "int"),
    "identityIncrement": ("identity_increment", "int"),
    "isNullable": ("is_nullable", "bool"),
    "defaultValue": ("default_value", "text"),
    "isComputed": ("is_computed", "bool"),
    "computedFormula": ("computed_formula", "text"),
    "computedPersisted": ("computed_persisted", "bool"),
}


def parse_column_attributes(raw: Any, label: str) -> dict[str, Any]:
    """Shape-check a column object and map it to Column attribute names.

    ``id`` is accepted and ignored so projected columns can be sent back.

    Raises:
        InvalidRequestError: On unknown properties or mistyped values
    """
    data = require_mapping(raw, label)
    attrs: dict[str, Any] = {}
    for key, value in data.items():
        if key == "id":
            continue
        if key not in COLUMN_ATTRIBUTES:
            suggestions = get_close_matches(key, list(COLUMN_ATTRIBUTES), n=3)
            hint = f" Did you mean: {suggestions}?" if suggestions else ""
            raise InvalidRequestError(f"Unsupported property '{label}.{key}'.{hint}")
        attr, kind = COLUMN_ATTRIBUTES[key]
        if value is None:
            continue
        if kind == "str":
            attrs[attr] = clean_str(value, f"{label}.{key}") or ""
        elif kind == "text":
            if not isinstance(value, str):
                raise InvalidRequestError(f"{label}.{key} must be a string.")
            attrs[attr] = value
        elif kind == "length":
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise InvalidRequestError(f"{label}.{key} must be a string or integer.")
            attrs[attr] = str(value).strip()
        elif kind == "int":
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidRequestError(f"{label}.{key} must be an integer.")
            attrs[attr] = value
        else:
            if not isinstance(value, bool):
                raise InvalidRequestError(f"{label}.{key} must be a boolean.")
            attrs[attr] = value
    return attrs


@dataclass(frozen=True)
class ColumnMapping:
    """One owning-column to referenced-column pair of a foreign key."""

    column: str
    referenced_column: str


_MAPPING_ITEM_ERROR = (
    "Invalid foreignKey.mappings item. Expected { column: string, referencedColumn: string }."
)


def parse_mappings(raw: Any) -> tuple[ColumnMapping, ...] | None:
    """Parse foreign key mappings.

    Returns None when ``raw`` is not a list so the applier can report the
    missing mapping as a validation error.
    """
    if not isinstance(raw, list):
        return None
    mappings = []
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidRequestError(_MAPPING_ITEM_ERROR)
        column = item.get("column")
        referenced = item.get("referencedColumn")
        if not isinstance(column, str) or not isinstance(referenced, str):
            raise InvalidRequestError(_MAPPING_ITEM_ERROR)
        if not column.strip() or not referenced.strip():
            raise InvalidRequestError(_MAPPING_ITEM_ERROR)
        mappings.append(ColumnMapping(column.strip(), referenced.strip()))
    return tuple(mappings)


@dataclass(frozen=True)
class AddTable:
    op: ClassVar[str] = "add_table"
    schema: str
    name: str
    initial_columns: tuple[dict[str, Any], ...] | None = None


@dataclass(frozen=True)
class DropTable:
    op: ClassVar[str] = "drop_table"
    table: QualifiedRef


@dataclass(frozen=True)
class SetTable:
    op: ClassVar[str] = "set_table"
    table: QualifiedRef
    name: str | None = None
    schema: str | None = None


@dataclass(frozen=True)
class AddColumn:
    op: ClassVar[str] = "add_column"
    table: QualifiedRef
    column: dict[str, Any]


@dataclass(frozen=True)
class DropColumn:
    op: ClassVar[str] = "drop_column"
    table: QualifiedRef
    column: MemberRef


@dataclass(frozen=True)
class SetColumn:
    op: ClassVar[str] = "set_column"
    table: QualifiedRef
    column: MemberRef
    changes: dict[str, Any]


@dataclass(frozen=True)
class AddForeignKey:
    op: ClassVar[str] = "add_foreign_key"
    table: QualifiedRef
    name: str
    referenced_table: QualifiedRef
    mappings: tuple[ColumnMapping, ...] | None
    on_delete_action: Any = None
    on_update_action: Any = None


@dataclass(frozen=True)
class DropForeignKey:
    op: ClassVar[str] = "drop_foreign_key"
    table: QualifiedRef
    foreign_key: MemberRef


@dataclass(frozen=True)
class SetForeignKey:
    op: ClassVar[str] = "set_foreign_key"
    table: QualifiedRef
    foreign_key: MemberRef
    name: str | None = None
    referenced_table: QualifiedRef | None = None
    mappings: tuple[ColumnMapping, ...] | None = None
    # _UNSET means "leave unchanged"; anything else is validated on apply.
    on_delete_action: Any = None
    on_update_action: Any = None
    set_on_delete: bool = False
    set_on_update: bool = False


Edit = Union[
    AddTable,
    DropTable,
    SetTable,
    AddColumn,
    DropColumn,
    SetColumn,
    AddForeignKey,
    DropForeignKey,
    SetForeignKey,
]

EDIT_TYPES: tuple[type, ...] = (
    AddTable,
    DropTable,
    SetTable,
    AddColumn,
    DropColumn,
    SetColumn,
    AddForeignKey,
    DropForeignKey,
    SetForeignKey,
)


def _parse_new_column(raw: Any, label: str) -> dict[str, Any]:
    """Column attributes for a column being created; dataType is required."""
    attrs = parse_column_attributes(raw, label)
    if not attrs.get("data_type"):
        raise InvalidRequestError(f"Missing {label}.dataType.")
    return attrs


def _parse_add_table(raw: dict[str, Any]) -> AddTable:
    table = raw.get("table")
    if not isinstance(table, dict):
        raise InvalidRequestError("Missing edit.table (schema + name).")
    schema = optional_str(table, "schema", "table.schema")
    name = optional_str(table, "name", "table.name")
    if not schema or not name:
        raise InvalidRequestError("Missing edit.table (schema + name).")

    initial = raw.get("initialColumns")
    columns = None
    if initial is not None:
        if not isinstance(initial, list):
            raise InvalidRequestError("initialColumns must be an array.")
        columns = tuple(
            _parse_new_column(c, f"initialColumns[{i}]") for i, c in enumerate(initial)
        )
    return AddTable(schema=schema, name=name, initial_columns=columns)


def _parse_drop_table(raw: dict[str, Any]) -> DropTable:
    return DropTable(table=QualifiedRef.parse(raw.get("table")))


def _parse_set_table(raw: dict[str, Any]) -> SetTable:
    table = QualifiedRef.parse(raw.get("table"))
    changes = require_mapping(raw.get("set"), "edit.set")
    unknown = set(changes) - {"name", "schema"}
    if unknown:
        raise InvalidRequestError(f"Unsupported property 'set.{sorted(unknown)[0]}'.")
    name = optional_str(changes, "name", "set.name")
    schema = optional_str(changes, "schema", "set.schema")
    if name is None and schema is None:
        raise InvalidRequestError("edit.set must include name or schema.")
    return SetTable(table=table, name=name, schema=schema)


def _parse_add_column(raw: dict[str, Any]) -> AddColumn:
    table = QualifiedRef.parse(raw.get("table"))
    if raw.get("column") is None:
        raise InvalidRequestError("Missing edit.column.")
    column = parse_column_attributes(raw.get("column"), "column")
    if not column.get("name"):
        raise InvalidRequestError("Missing column.name.")
    if not column.get("data_type"):
        raise InvalidRequestError("Missing column.dataType.")
    return AddColumn(table=table, column=column)


def _parse_drop_column(raw: dict[str, Any]) -> DropColumn:
    table = QualifiedRef.parse(raw.get("table"))
    if raw.get("column") is None:
        raise InvalidRequestError("Missing edit.column.")
    return DropColumn(table=table, column=MemberRef.parse(raw.get("column"), "column"))


def _parse_set_column(raw: dict[str, Any]) -> SetColumn:
    table = QualifiedRef.parse(raw.get("table"))
    if raw.get("column") is None:
        raise InvalidRequestError("Missing edit.column.")
    column = MemberRef.parse(raw.get("column"), "column")
    changes = parse_column_attributes(raw.get("set"), "set")
    if not changes:
        raise InvalidRequestError("edit.set must include at least one column property.")
    if "name" in changes and not changes["name"]:
        raise InvalidRequestError("set.name cannot be empty.")
    if "data_type" in changes and not changes["data_type"]:
        raise InvalidRequestError("set.dataType cannot be empty.")
    return SetColumn(table=table, column=column, changes=changes)


def _parse_add_foreign_key(raw: dict[str, Any]) -> AddForeignKey:
    table = QualifiedRef.parse(raw.get("table"))
    fk = raw.get("foreignKey")
    if not isinstance(fk, dict):
        raise InvalidRequestError("Missing edit.foreignKey.")
    name = required_str(fk, "name", "foreignKey.name")
    if fk.get("referencedTable") is None:
        raise InvalidRequestError("Missing foreignKey.referencedTable.")
    return AddForeignKey(
        table=table,
        name=name,
        referenced_table=QualifiedRef.parse(fk.get("referencedTable"), "foreignKey.referencedTable"),
        mappings=parse_mappings(fk.get("mappings")),
        on_delete_action=fk.get("onDeleteAction"),
        on_update_action=fk.get("onUpdateAction"),
    )


def _parse_drop_foreign_key(raw: dict[str, Any]) -> DropForeignKey:
    table = QualifiedRef.parse(raw.get("table"))
    if raw.get("foreignKey") is None:
        raise InvalidRequestError("Missing edit.foreignKey.")
    return DropForeignKey(
        table=table, foreign_key=MemberRef.parse(raw.get("foreignKey"), "foreignKey")
    )


_SET_FOREIGN_KEY_PROPERTIES = {
    "name",
    "referencedTable",
    "mappings",
    "onDeleteAction",
    "onUpdateAction",
}


def _parse_set_foreign_key(raw: dict[str, Any]) -> SetForeignKey:
    table = QualifiedRef.parse(raw.get("table"))
    if raw.get("foreignKey") is None:
        raise InvalidRequestError("Missing edit.foreignKey.")
    foreign_key = MemberRef.parse(raw.get("foreignKey"), "foreignKey")
    changes = require_mapping(raw.get("set"), "edit.set")
    unknown = sorted(set(changes) - _SET_FOREIGN_KEY_PROPERTIES)
    if unknown:
        raise InvalidRequestError(f"Unsupported property 'set.{unknown[0]}'.")
    if not changes:
        raise InvalidRequestError("edit.set must include at least one foreign key property.")

    referenced = None
    if changes.get("referencedTable") is not None:
        referenced = QualifiedRef.parse(changes["referencedTable"], "set.referencedTable")
    mappings = None
    if "mappings" in changes:
        mappings = parse_mappings(changes["mappings"])
        if mappings is None:
            raise InvalidRequestError("set.mappings must be an array.")
    return SetForeignKey(
        table=table,
        foreign_key=foreign_key,
        name=optional_str(changes, "name", "set.name"),
        referenced_table=referenced,
        mappings=mappings,
        on_delete_action=changes.get("onDeleteAction"),
        on_update_action=changes.get("onUpdateAction"),
        set_on_delete="onDeleteAction" in changes,
        set_on_update="onUpdateAction" in changes,
    )


_PARSERS: dict[str, Callable[[dict[str, Any]], Edit]] = {
    AddTable.op: _parse_add_table,
    DropTable.op: _parse_drop_table,
    SetTable.op: _parse_set_table,
    AddColumn.op: _parse_add_column,
    DropColumn.op: _parse_drop_column,
    SetColumn.op: _parse_set_column,
    AddForeignKey.op: _parse_add_foreign_key,
    DropForeignKey.op: _parse_drop_foreign_key,
    SetForeignKey.op: _parse_set_foreign_key,
}

EDIT_OPS: tuple[str, ...] = tuple(_PARSERS)


def parse_edit(raw: Any) -> Edit:
    """Parse one raw JSON edit into its variant.

    Args:
        raw: Edit object with an ``op`` discriminator

    Returns:
        The edit variant

    Raises:
        InvalidRequestError: Unknown op or malformed payload
    """
    if not isinstance(raw, dict):
        raise InvalidRequestError("Each edit must be an object with an 'op' field.")
    op = raw.get("op")
    parser = _PARSERS.get(op) if isinstance(op, str) else None
    if parser is None:
        raise InvalidRequestError(f"Unknown edit op: {op}")
    return parser(raw)


def count_edit_ops(raw_edits: list[Any]) -> dict[str, int]:
    """Count attempted edits per op (``<op>_count``), ignoring unknown ops."""
    counts = {f"{op}_count": 0 for op in EDIT_OPS}
    for raw in raw_edits:
        op = raw.get("op") if isinstance(raw, dict) else None
        key = f"{op}_count"
        if key in counts:
            counts[key] += 1
    return counts
