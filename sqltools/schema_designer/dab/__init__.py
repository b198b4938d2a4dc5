"""
DAB module for the schema designer - API exposure configuration.

This module handles:
- The Data API builder configuration model and its sync with tables
- Closed set of configuration change variants
- Stepwise change application and bounded state shaping

Invariants:
    - Entities are bound to tables by id
    - DAB version tokens are never interchangeable with schema tokens
"""

from .applier import (
    DabBatchResult,
    DabChangeApplier,
    DabStateView,
    build_dab_summary,
    parse_return_state,
    shape_dab_state,
)
from .changes import CHANGE_KINDS, count_change_types, counts_to_receipt, parse_change
from .types import (
    ApiType,
    AuthorizationRole,
    DabConfig,
    DabEntityConfig,
    EntityAction,
    EntityAdvancedSettings,
    create_default_config,
    create_default_entity_config,
    sync_config_with_tables,
)

__all__ = [
    "DabBatchResult",
    "DabChangeApplier",
    "DabStateView",
    "build_dab_summary",
    "parse_return_state",
    "shape_dab_state",
    "CHANGE_KINDS",
    "count_change_types",
    "counts_to_receipt",
    "parse_change",
    "ApiType",
    "AuthorizationRole",
    "DabConfig",
    "DabEntityConfig",
    "EntityAction",
    "EntityAdvancedSettings",
    "create_default_config",
    "create_default_entity_config",
    "sync_config_with_tables",
]
