"""
Schema module for the schema designer - document model and read paths.

This module handles:
- Immutable table/column/foreign key model
- Version tokens for optimistic concurrency
- Reference resolution by id or name
- Size-bounded projections and structural validation

Invariants:
    - Version tokens are pure functions of document content
    - Name references never silently pick one of several matches

How to change safely:
    - Changing hash normalization invalidates outstanding tokens
"""

from .hashing import DAB_VERSION_PREFIX, compute_dab_version, compute_schema_version
from .projection import ColumnDetail, Overview, build_overview, build_table_view
from .resolver import MemberRef, QualifiedRef, resolve_table
from .types import Column, ForeignKey, OnAction, Schema, Table

__all__ = [
    "DAB_VERSION_PREFIX",
    "compute_dab_version",
    "compute_schema_version",
    "ColumnDetail",
    "Overview",
    "build_overview",
    "build_table_view",
    "MemberRef",
    "QualifiedRef",
    "resolve_table",
    "Column",
    "ForeignKey",
    "OnAction",
    "Schema",
    "Table",
]
