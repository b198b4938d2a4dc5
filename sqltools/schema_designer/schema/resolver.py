"""
Entity reference resolution.

Callers point at tables, columns, foreign keys and DAB entities with loose
references: either a stable ``id`` or a name (``schema`` + ``name`` for
tables and entities, ``name`` for members of a table). Resolution yields
exactly one entity or raises a typed error.

Invariants:
    - A reference carrying both an id and name parts is rejected before lookup
    - Name matching is case-insensitive and never picks one of several
      matches; more than one is AmbiguousIdentifierError
    - Resolution never mutates the collection

How to change safely:
    - Do not enforce global name uniqueness here; case-insensitive
      duplicates are a legal transient state of the document
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..errors import AmbiguousIdentifierError, InvalidRequestError, NotFoundError
from ..payload import clean_str
from .types import Column, ForeignKey, Table

T = TypeVar("T")


@dataclass(frozen=True)
class QualifiedRef:
    """Reference to a table or DAB entity: ``{id}`` or ``{schema, name}``.

    ``schemaName``/``tableName`` are accepted as spellings of
    ``schema``/``name``.
    """

    id: str | None = None
    schema: str | None = None
    name: str | None = None

    @classmethod
    def parse(cls, raw: Any, label: str = "table") -> QualifiedRef:
        """Parse and shape-check a qualified reference.

        Args:
            raw: JSON value supplied by the caller
            label: Field name used in error messages

        Raises:
            InvalidRequestError: If the shape is wrong or id and names are mixed
        """
        if not isinstance(raw, dict):
            raise InvalidRequestError(f"Missing {label} reference (schema + name) or id.")
        ref_id = clean_str(raw.get("id"), f"{label}.id")
        schema = clean_str(raw.get("schema", raw.get("schemaName")), f"{label}.schema")
        name = clean_str(raw.get("name", raw.get("tableName")), f"{label}.name")
        if ref_id and (schema or name):
            raise InvalidRequestError(
                f"Ambiguous {label} reference: use either id or schema + name, not both."
            )
        if not ref_id and not (schema and name):
            raise InvalidRequestError(f"Missing {label} reference (schema + name) or id.")
        return cls(id=ref_id, schema=schema, name=name)

    def describe(self) -> str:
        return self.id if self.id else f"{self.schema}.{self.name}"


@dataclass(frozen=True)
class MemberRef:
    """Reference to a member of a table (column or foreign key): ``{id}`` or ``{name}``."""

    id: str | None = None
    name: str | None = None

    @classmethod
    def parse(cls, raw: Any, label: str) -> MemberRef:
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict):
            raise InvalidRequestError(f"Missing {label} reference name or id.")
        ref_id = clean_str(raw.get("id"), f"{label}.id")
        name = clean_str(raw.get("name"), f"{label}.name")
        if ref_id and name:
            raise InvalidRequestError(
                f"Ambiguous {label} reference: use either id or name, not both."
            )
        if not ref_id and not name:
            raise InvalidRequestError(f"Missing {label} reference name or id.")
        return cls(id=ref_id, name=name)

    def describe(self) -> str:
        return self.id or self.name or ""


def _resolve(
    items: Iterable[T],
    ref_id: str | None,
    get_id: Callable[[T], str],
    name_matches: Callable[[T], bool],
    resource_type: str,
    described: str,
) -> T:
    candidates = list(items)
    if ref_id is not None:
        matches = [item for item in candidates if get_id(item) == ref_id]
    else:
        matches = [item for item in candidates if name_matches(item)]

    if not matches:
        raise NotFoundError(
            f"{resource_type} '{described}' not found.",
            resource_type=resource_type.lower(),
            reference=described,
        )
    if len(matches) > 1:
        raise AmbiguousIdentifierError(
            f"{resource_type} reference '{described}' matched more than one "
            f"{resource_type.lower()}. Use an id reference instead.",
            resource_type=resource_type.lower(),
            reference=described,
            match_count=len(matches),
        )
    return matches[0]


def resolve_table(tables: Iterable[Table], ref: QualifiedRef) -> Table:
    """Resolve a table reference.

    Raises:
        NotFoundError: No table matches
        AmbiguousIdentifierError: Several tables match the name
    """
    return _resolve(
        tables,
        ref.id,
        lambda t: t.id,
        lambda t: t.matches(ref.schema or "", ref.name or ""),
        "Table",
        ref.describe(),
    )


def resolve_column(table: Table, ref: MemberRef) -> Column:
    """Resolve a column reference within ``table``."""
    name = (ref.name or "").lower()
    return _resolve(
        table.columns,
        ref.id,
        lambda c: c.id,
        lambda c: c.name.lower() == name,
        "Column",
        ref.describe(),
    )


def resolve_foreign_key(table: Table, ref: MemberRef) -> ForeignKey:
    """Resolve a foreign key reference within ``table``."""
    name = (ref.name or "").lower()
    return _resolve(
        table.foreign_keys,
        ref.id,
        lambda fk: fk.id,
        lambda fk: fk.name.lower() == name,
        "Foreign key",
        ref.describe(),
    )


def resolve_column_name(table: Table, column_name: str) -> str:
    """Resolve a column name case-insensitively, returning the stored casing."""
    return resolve_column(table, MemberRef(name=column_name)).name


def resolve_entity(entities: Iterable[T], ref: QualifiedRef) -> T:
    """Resolve a DAB entity reference.

    Entities are matched on ``schema_name``/``table_name``.
    """
    schema = (ref.schema or "").lower()
    name = (ref.name or "").lower()
    return _resolve(
        entities,
        ref.id,
        lambda e: e.id,
        lambda e: e.schema_name.lower() == schema and e.table_name.lower() == name,
        "Entity",
        ref.describe(),
    )
