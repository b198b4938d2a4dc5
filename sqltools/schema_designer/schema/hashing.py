"""
Version tokens for optimistic concurrency.

A version token is the SHA-256 digest of a normalized, canonical snapshot of
a document. Callers read a token, send it back with a batch of edits, and the
batch is rejected as stale when the live document no longer hashes to it.

Invariants:
    - Tokens are pure functions of document content; never persisted
    - Schema tokens ignore case, ids, and the order of tables, columns,
      foreign keys and foreign key column pairs
    - Reordering foreign key ``columns`` without ``referencedColumns`` breaks
      the pairing and therefore changes the token
    - DAB tokens carry a ``dabcfg_`` prefix so they are never accepted by
      the schema protocol and vice versa

How to change safely:
    - Any change to normalization invalidates every outstanding token; that
      only costs callers one extra read, but do it deliberately
    - Keep ``json.dumps(sort_keys=True)`` as the canonical encoder

Example:
    >>> len(compute_schema_version(Schema()))
    64
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

from .types import Column, ForeignKey, Schema, Table

if TYPE_CHECKING:
    from ..dab.types import DabConfig

DAB_VERSION_PREFIX = "dabcfg_"


def canonical_digest(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON encoding of ``data``."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _lower(value: str | None) -> str:
    return (value or "").lower()


def _normalize_column(column: Column) -> dict[str, Any]:
    return {
        "name": _lower(column.name),
        "dataType": _lower(column.data_type),
        "maxLength": _lower(column.max_length),
        "precision": column.precision,
        "scale": column.scale,
        "isPrimaryKey": column.is_primary_key,
        "isIdentity": column.is_identity,
        "identitySeed": column.identity_seed,
        "identityIncrement": column.identity_increment,
        "isNullable": column.is_nullable,
        "defaultValue": column.default_value,
        "isComputed": column.is_computed,
        "computedFormula": column.computed_formula,
        "computedPersisted": column.computed_persisted,
    }


def _normalize_foreign_key(fk: ForeignKey) -> dict[str, Any]:
    # Sort the pairs, not the two arrays independently.
    pairs = sorted(
        (_lower(col), _lower(ref)) for col, ref in zip(fk.columns, fk.referenced_columns)
    )
    # Unpaired trailing names still count towards identity.
    extra_columns = [_lower(c) for c in fk.columns[len(fk.referenced_columns):]]
    extra_referenced = [_lower(c) for c in fk.referenced_columns[len(fk.columns):]]
    return {
        "name": _lower(fk.name),
        "columns": [p[0] for p in pairs] + extra_columns,
        "referencedSchemaName": _lower(fk.referenced_schema_name),
        "referencedTableName": _lower(fk.referenced_table_name),
        "referencedColumns": [p[1] for p in pairs] + extra_referenced,
        "onDeleteAction": int(fk.on_delete_action),
        "onUpdateAction": int(fk.on_update_action),
    }


def _normalize_table(table: Table) -> dict[str, Any]:
    columns = sorted(
        (_normalize_column(c) for c in table.columns),
        key=lambda c: (f"{c['name']}.{c['dataType']}", json.dumps(c, sort_keys=True)),
    )
    foreign_keys = sorted(
        (_normalize_foreign_key(fk) for fk in table.foreign_keys),
        key=lambda fk: (
            f"{fk['name']}.{fk['referencedSchemaName']}.{fk['referencedTableName']}",
            json.dumps(fk, sort_keys=True),
        ),
    )
    return {
        "schema": _lower(table.schema),
        "name": _lower(table.name),
        "columns": columns,
        "foreignKeys": foreign_keys,
    }


def normalize_schema(schema: Schema) -> dict[str, Any]:
    """Build the hash input for a schema document.

    Names are lower-cased and ids dropped; collections whose order carries
    no meaning are sorted. The live document keeps its original casing.

    Args:
        schema: Schema snapshot

    Returns:
        Plain dict ready for canonical encoding
    """
    tables = [_normalize_table(t) for t in schema.tables]
    # Full-content tiebreak keeps transient case-insensitive duplicates stable.
    tables.sort(key=lambda t: (f"{t['schema']}.{t['name']}", json.dumps(t, sort_keys=True)))
    return {"tables": tables}


def compute_schema_version(schema: Schema) -> str:
    """Compute the version token of a schema document.

    Args:
        schema: Schema snapshot

    Returns:
        Lowercase 64-character hex SHA-256 digest
    """
    return canonical_digest(normalize_schema(schema))


def normalize_dab_config(config: DabConfig) -> dict[str, Any]:
    """Build the hash input for a DAB configuration.

    Entity settings are API-visible names, so their casing is preserved.
    """
    entities = [
        {
            "id": e.id,
            "schemaName": e.schema_name,
            "tableName": e.table_name,
            "isEnabled": e.is_enabled,
            "enabledActions": sorted(a.value for a in e.enabled_actions),
            "advancedSettings": e.advanced_settings.to_dict(),
        }
        for e in config.entities
    ]
    entities.sort(key=lambda e: (f"{e['schemaName']}.{e['tableName']}".lower(), e["id"]))
    return {
        "apiTypes": sorted(a.value for a in config.api_types),
        "entities": entities,
    }


def compute_dab_version(config: DabConfig) -> str:
    """Compute the ``dabcfg_``-prefixed version token of a DAB configuration."""
    return DAB_VERSION_PREFIX + canonical_digest(normalize_dab_config(config))
