"""
Core type definitions for the schema designer document.

This module defines the relational model edited by the designer:
- Column: A column within a table
- ForeignKey: A (possibly composite) reference to another table
- Table: A table with ordered columns and a set of foreign keys
- Schema: The root document, an ordered collection of tables

Invariants:
    - ids are opaque, assigned at creation and never reused
    - (schema, name) is case-insensitively unique at rest, but duplicates
      are a legal transient state (for example mid-rename)
    - ForeignKey.columns[i] maps to ForeignKey.referenced_columns[i]
    - All types are immutable; edits build new values with dataclasses.replace

How to change safely:
    - Add new column attributes with defaults so old documents still load
    - Keep the camelCase wire names stable (they are the editor's format)

Example:
    >>> orders = Table.create(
    ...     schema="dbo",
    ...     name="Orders",
    ...     columns=(Column.create("OrderId", "int", is_primary_key=True, is_identity=True),),
    ... )
    >>> Schema(tables=(orders,)).to_dict()["tables"][0]["name"]
    'Orders'
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


def new_id() -> str:
    """Generate a fresh opaque entity id."""
    return str(uuid.uuid4())


class OnAction(IntEnum):
    """Referential action for foreign key delete/update."""

    CASCADE = 0
    NO_ACTION = 1
    SET_NULL = 2
    SET_DEFAULT = 3

    @classmethod
    def describe(cls) -> str:
        """Human-readable list used in validation messages."""
        return ", ".join(f"{a.value}={a.name}" for a in cls)


@dataclass(frozen=True)
class Column:
    """A column within a table.

    Attributes:
        id: Stable identifier within the table
        name: Column name (case-insensitively unique within the table)
        data_type: SQL data type name, e.g. "int" or "nvarchar"
        max_length: Length for length-based types ("50", "MAX"), "" otherwise
        precision: Precision for decimal/numeric
        scale: Scale for decimal/numeric and time-based types
        is_primary_key: Part of the primary key
        is_identity: Identity column
        identity_seed: Identity seed (when is_identity)
        identity_increment: Identity increment (when is_identity)
        is_nullable: Allows NULL
        default_value: Default constraint expression, "" for none
        is_computed: Computed column
        computed_formula: Formula (when is_computed)
        computed_persisted: Persisted computed column
    """

    id: str
    name: str
    data_type: str
    max_length: str = ""
    precision: int = 0
    scale: int = 0
    is_primary_key: bool = False
    is_identity: bool = False
    identity_seed: int = 0
    identity_increment: int = 0
    is_nullable: bool = True
    default_value: str = ""
    is_computed: bool = False
    computed_formula: str = ""
    computed_persisted: bool = False

    @classmethod
    def create(cls, name: str, data_type: str, **attrs: Any) -> Column:
        """Create a column with a fresh id."""
        return cls(id=attrs.pop("id", None) or new_id(), name=name, data_type=data_type, **attrs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the editor's camelCase representation."""
        return {
            "id": self.id,
            "name": self.name,
            "dataType": self.data_type,
            "maxLength": self.max_length,
            "precision": self.precision,
            "scale": self.scale,
            "isPrimaryKey": self.is_primary_key,
            "isIdentity": self.is_identity,
            "identitySeed": self.identity_seed,
            "identityIncrement": self.identity_increment,
            "isNullable": self.is_nullable,
            "defaultValue": self.default_value,
            "isComputed": self.is_computed,
            "computedFormula": self.computed_formula,
            "computedPersisted": self.computed_persisted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Column:
        """Create from the editor's camelCase representation."""
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            data_type=data.get("dataType", ""),
            max_length=str(data.get("maxLength") or ""),
            precision=int(data.get("precision") or 0),
            scale=int(data.get("scale") or 0),
            is_primary_key=bool(data.get("isPrimaryKey", False)),
            is_identity=bool(data.get("isIdentity", False)),
            identity_seed=int(data.get("identitySeed") or 0),
            identity_increment=int(data.get("identityIncrement") or 0),
            is_nullable=bool(data.get("isNullable", True)),
            default_value=data.get("defaultValue") or "",
            is_computed=bool(data.get("isComputed", False)),
            computed_formula=data.get("computedFormula") or "",
            computed_persisted=bool(data.get("computedPersisted", False)),
        )


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key owned by a table.

    Attributes:
        id: Stable identifier
        name: Constraint name (case-insensitively unique within the table)
        columns: Owning-table column names
        referenced_schema_name: Schema of the referenced table
        referenced_table_name: Name of the referenced table
        referenced_columns: Referenced column names, parallel to ``columns``
        on_delete_action: Referential action on delete
        on_update_action: Referential action on update
    """

    id: str
    name: str
    columns: tuple[str, ...]
    referenced_schema_name: str
    referenced_table_name: str
    referenced_columns: tuple[str, ...]
    on_delete_action: OnAction = OnAction.NO_ACTION
    on_update_action: OnAction = OnAction.NO_ACTION

    def mappings(self) -> list[tuple[str, str]]:
        """Column pairs matched positionally."""
        return list(zip(self.columns, self.referenced_columns))

    def references(self, schema: str, name: str) -> bool:
        """Whether this key points at ``schema.name`` (case-insensitive)."""
        return (
            self.referenced_schema_name.lower() == schema.lower()
            and self.referenced_table_name.lower() == name.lower()
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the editor's camelCase representation."""
        return {
            "id": self.id,
            "name": self.name,
            "columns": list(self.columns),
            "referencedSchemaName": self.referenced_schema_name,
            "referencedTableName": self.referenced_table_name,
            "referencedColumns": list(self.referenced_columns),
            "onDeleteAction": int(self.on_delete_action),
            "onUpdateAction": int(self.on_update_action),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ForeignKey:
        """Create from the editor's camelCase representation."""
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            columns=tuple(data.get("columns") or ()),
            referenced_schema_name=data.get("referencedSchemaName", ""),
            referenced_table_name=data.get("referencedTableName", ""),
            referenced_columns=tuple(data.get("referencedColumns") or ()),
            on_delete_action=OnAction(data.get("onDeleteAction", OnAction.NO_ACTION)),
            on_update_action=OnAction(data.get("onUpdateAction", OnAction.NO_ACTION)),
        )


@dataclass(frozen=True)
class Table:
    """A table in the schema document.

    Attributes:
        id: Stable identifier
        name: Table name
        schema: Owning schema name, e.g. "dbo"
        columns: Ordered columns
        foreign_keys: Foreign keys owned by this table
    """

    id: str
    name: str
    schema: str
    columns: tuple[Column, ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = ()

    @classmethod
    def create(
        cls,
        schema: str,
        name: str,
        columns: tuple[Column, ...] = (),
        foreign_keys: tuple[ForeignKey, ...] = (),
        id: str | None = None,
    ) -> Table:
        """Create a table with a fresh id."""
        return cls(
            id=id or new_id(),
            name=name,
            schema=schema,
            columns=tuple(columns),
            foreign_keys=tuple(foreign_keys),
        )

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    def matches(self, schema: str, name: str) -> bool:
        """Case-insensitive comparison against ``schema.name``."""
        return self.schema.lower() == schema.lower() and self.name.lower() == name.lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the editor's camelCase representation."""
        return {
            "id": self.id,
            "name": self.name,
            "schema": self.schema,
            "columns": [c.to_dict() for c in self.columns],
            "foreignKeys": [fk.to_dict() for fk in self.foreign_keys],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Table:
        """Create from the editor's camelCase representation."""
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            schema=data.get("schema", ""),
            columns=tuple(Column.from_dict(c) for c in data.get("columns") or ()),
            foreign_keys=tuple(ForeignKey.from_dict(fk) for fk in data.get("foreignKeys") or ()),
        )


@dataclass(frozen=True)
class Schema:
    """Root schema document: an ordered collection of tables.

    Table order is display order only; it does not affect identity or the
    version token.
    """

    tables: tuple[Table, ...] = ()

    @property
    def column_count(self) -> int:
        return sum(len(t.columns) for t in self.tables)

    @property
    def foreign_key_count(self) -> int:
        return sum(len(t.foreign_keys) for t in self.tables)

    def get_table(self, table_id: str) -> Table | None:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def replace_table(self, table: Table) -> Schema:
        """Return a schema with the table of the same id swapped in."""
        return Schema(tables=tuple(table if t.id == table.id else t for t in self.tables))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the editor's camelCase representation."""
        return {"tables": [t.to_dict() for t in self.tables]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Create from the editor's camelCase representation."""
        return cls(tables=tuple(Table.from_dict(t) for t in data.get("tables") or ()))
