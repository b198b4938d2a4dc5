"""
Schema designer tool: bounded reads and versioned edit batches.

Operations:
    - show: open (or reuse) the session for a connection and activate it
    - get_overview: size-bounded overview of every table plus the version
    - get_table: one table at caller-selected detail plus the version
    - apply_edits: apply an edit batch against an expected version

Invariants:
    - A targetHint mismatch is reported before the version is compared
    - A stale batch changes nothing and returns the current version with a
      names-level overview so the caller can retry without another read
    - Partial application is always disclosed through appliedEdits and
      failedEditIndex

Example:
    >>> tool = SchemaDesignerTool(registry)
    >>> state = await tool.call({"operation": "get_overview"})
    >>> await tool.call({
    ...     "operation": "apply_edits",
    ...     "payload": {
    ...         "expectedVersion": state["version"],
    ...         "edits": [{"op": "add_table", "table": {"schema": "dbo", "name": "X"}}],
    ...     },
    ... })
"""

from __future__ import annotations

import logging
from typing import Any

from ..apply.edits import count_edit_ops
from ..cancellation import CancellationToken
from ..dab.applier import parse_return_state
from ..errors import ApplyInProgressError, InvalidRequestError, StaleStateError
from ..payload import clean_str, optional_bool, require_mapping
from ..schema.hashing import compute_schema_version
from ..schema.projection import (
    OVERVIEW_LEVELS,
    TABLE_LEVELS,
    ColumnDetail,
    build_overview,
    build_schema_summary,
    build_table_view,
)
from ..schema.resolver import QualifiedRef, resolve_table
from ..schema.types import Schema
from ..session.document import DesignerDocument
from .base import ToolBase, parse_target_hint

logger = logging.getLogger(__name__)


def _options(params: dict[str, Any]) -> dict[str, Any]:
    options = params.get("options")
    if options is None:
        return {}
    return require_mapping(options, "options")


class SchemaDesignerTool(ToolBase):
    """Tool facade over the active designer's schema document."""

    tool_name = "schema_designer"
    telemetry_action = "SchemaDesignerTool"

    async def _run(
        self,
        operation: str,
        params: dict[str, Any],
        cancellation: CancellationToken | None,
    ) -> tuple[dict[str, Any], dict[str, float]]:
        if operation == "show":
            return self._show(params), {}

        document = self.require_active()
        if operation == "get_overview":
            return self._get_overview(document, params), {}
        if operation == "get_table":
            return self._get_table(document, params), {}
        if operation == "apply_edits":
            return self._apply_edits(document, params, cancellation)
        raise InvalidRequestError(f"Unknown operation: {operation}")

    def _overview(
        self, schema: Schema, detail: ColumnDetail, include_foreign_keys: bool = False
    ) -> dict[str, Any]:
        settings = self.registry.settings
        overview = build_overview(
            schema,
            column_detail=detail,
            include_foreign_keys=include_foreign_keys,
            max_tables=settings.overview_max_tables,
            max_columns=settings.overview_max_columns,
        )
        return {"overview": overview.to_dict(), "columnsOmitted": overview.columns_omitted}

    def _show(self, params: dict[str, Any]) -> dict[str, Any]:
        connection_id = clean_str(params.get("connectionId"), "connectionId")
        if connection_id is None:
            raise InvalidRequestError("Missing connectionId.")
        document = self.registry.open_connection(connection_id)
        document.reveal_to_foreground()
        version = document.version
        self.registry.remember_version(document.key, version)
        return self.with_target(
            {
                "success": True,
                "message": "Schema designer opened.",
                "designerKey": document.key,
                "version": version,
            },
            document,
        )

    def _get_overview(self, document: DesignerDocument, params: dict[str, Any]) -> dict[str, Any]:
        options = _options(params)
        detail = ColumnDetail.from_str(options.get("columns"), ColumnDetail.NAMES, OVERVIEW_LEVELS)
        include_foreign_keys = optional_bool(options, "includeForeignKeys") or False

        schema = document.schema
        version = compute_schema_version(schema)
        self.registry.remember_version(document.key, version)
        return self.with_target(
            {"success": True, "version": version, **self._overview(schema, detail, include_foreign_keys)},
            document,
        )

    def _get_table(self, document: DesignerDocument, params: dict[str, Any]) -> dict[str, Any]:
        payload = require_mapping(params.get("payload"), "payload")
        options = _options(params)
        ref = QualifiedRef.parse(payload.get("table"), "table")
        detail = ColumnDetail.from_str(options.get("detail"), ColumnDetail.FULL, TABLE_LEVELS)
        include_foreign_keys = optional_bool(options, "includeForeignKeys")
        if include_foreign_keys is None:
            include_foreign_keys = True

        schema = document.schema
        table = resolve_table(schema.tables, ref)
        version = compute_schema_version(schema)
        self.registry.remember_version(document.key, version)
        return self.with_target(
            {
                "success": True,
                "version": version,
                "table": build_table_view(table, detail, include_foreign_keys),
            },
            document,
        )

    def _apply_edits(
        self,
        document: DesignerDocument,
        params: dict[str, Any],
        cancellation: CancellationToken | None,
    ) -> tuple[dict[str, Any], dict[str, float]]:
        payload = params.get("payload")
        if not isinstance(payload, dict):
            payload = {}
        expected_version = payload.get("expectedVersion")
        if not isinstance(expected_version, str) or not expected_version.strip():
            raise InvalidRequestError("Missing payload.expectedVersion.")
        edits = payload.get("edits")
        if not isinstance(edits, list) or not edits:
            raise InvalidRequestError("Missing payload.edits (non-empty array).")
        return_state = parse_return_state(_options(params).get("returnState"), default="summary")
        hint = parse_target_hint(payload.get("targetHint"))

        measurements: dict[str, float] = {
            "editsCount": len(edits),
            "appliedEdits": 0,
            **count_edit_ops(edits),
        }
        mismatch = self.check_target(document, hint)
        if mismatch is not None:
            return {**mismatch, "appliedEdits": 0}, measurements

        document.reveal_to_foreground()
        try:
            result = document.apply_edits(expected_version.strip(), edits, cancellation)
        except ApplyInProgressError as e:
            return self.with_target({**e.to_dict(), "appliedEdits": 0}, document), measurements
        except StaleStateError as e:
            schema = document.schema
            current_version = compute_schema_version(schema)
            self.registry.remember_version(document.key, current_version)
            response = {
                **e.to_dict(),
                "appliedEdits": 0,
                "currentVersion": current_version,
                "currentOverview": self._overview(schema, ColumnDetail.NAMES)["overview"],
                "suggestedNextCall": {
                    "operation": "get_overview",
                    "options": {"columns": "namesAndTypes"},
                },
            }
            return self.with_target(response, document), measurements

        version = compute_schema_version(result.schema)
        self.registry.remember_version(document.key, version)
        measurements["appliedEdits"] = result.applied_edits

        if result.error is not None:
            response = {
                **result.error.to_dict(),
                "failedEditIndex": result.failed_edit_index,
                "appliedEdits": result.applied_edits,
                "currentVersion": version,
                "receipt": result.receipt.to_dict(),
            }
            return self.with_target(response, document), measurements

        response = {
            "success": True,
            "message": f"Applied {result.applied_edits} edit(s).",
            "appliedEdits": result.applied_edits,
            "version": version,
            "receipt": result.receipt.to_dict(),
        }
        if return_state == "full":
            response.update(self._overview(result.schema, ColumnDetail.NAMES_AND_TYPES))
        elif return_state == "summary":
            response["summary"] = build_schema_summary(result.schema)
        return self.with_target(response, document), measurements
