"""
Tools module for the schema designer - the JSON tool facade.

This module handles:
- SchemaDesignerTool: overview/table reads and versioned edit batches
- DabTool: DAB configuration reads and versioned change batches
- Shared target-hint checks, failure mapping and telemetry

Invariants:
    - Tool calls never raise; failures are typed responses
    - Target mismatches are reported before any document access
"""

from .base import ToolBase, matches_strict_target_hint, parse_target_hint
from .dab_tool import DabTool
from .schema_designer_tool import SchemaDesignerTool

__all__ = [
    "ToolBase",
    "matches_strict_target_hint",
    "parse_target_hint",
    "DabTool",
    "SchemaDesignerTool",
]
