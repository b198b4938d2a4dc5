"""
Apply module for the schema designer - edit parsing and stepwise application.

This module handles:
- Closed set of schema edit variants and their parsers
- Stepwise application with prefix-commit semantics
- Receipts naming the entities each batch touched

Invariants:
    - A batch stops at its first failing edit; the prefix stays applied
    - Every edit variant has exactly one parser and one handler

How to change safely:
    - Add variants in edits.py and handlers in applier.py together
"""

from .applier import EditBatchResult, EditReceipt, SchemaEditApplier, check_on_action
from .edits import EDIT_OPS, EDIT_TYPES, count_edit_ops, parse_edit

__all__ = [
    "EditBatchResult",
    "EditReceipt",
    "SchemaEditApplier",
    "check_on_action",
    "EDIT_OPS",
    "EDIT_TYPES",
    "count_edit_ops",
    "parse_edit",
]
