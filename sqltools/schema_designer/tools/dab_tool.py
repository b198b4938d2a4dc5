"""
DAB tool: read and change the active designer's API exposure config.

Operations:
    - get_state: initialize/sync the DAB config and return it shaped
    - apply_changes: apply a change batch against an expected ``dabcfg_`` version

Invariants:
    - The target hint is checked before the document is revealed or touched
    - Failures pass through only the fields the document produced
    - Success responses carry a per-type receipt of the requested changes
"""

from __future__ import annotations

import logging
from typing import Any

from ..cancellation import CancellationToken
from ..dab.applier import parse_return_state
from ..dab.changes import count_change_types, counts_to_receipt
from ..errors import ApplyInProgressError, InvalidRequestError
from ..payload import require_mapping
from .base import ToolBase, parse_target_hint

logger = logging.getLogger(__name__)

_FAILURE_FIELDS = (
    "reason",
    "message",
    "failedChangeIndex",
    "appliedChanges",
    "version",
    "summary",
    "returnState",
    "stateOmittedReason",
    "config",
)


class DabTool(ToolBase):
    """Tool facade over the active designer's DAB configuration."""

    tool_name = "dab"
    telemetry_action = "DabTool"

    async def _run(
        self,
        operation: str,
        params: dict[str, Any],
        cancellation: CancellationToken | None,
    ) -> tuple[dict[str, Any], dict[str, float]]:
        document = self.require_active()

        if operation == "get_state":
            state = document.get_dab_state()
            measurements = {"stateOmitted": 0 if "config" in state else 1}
            return self.with_target({"success": True, **state}, document), measurements

        if operation != "apply_changes":
            raise InvalidRequestError(f"Unknown operation: {operation}")

        payload = params.get("payload")
        if not isinstance(payload, dict):
            payload = {}
        expected_version = payload.get("expectedVersion")
        if not isinstance(expected_version, str) or not expected_version.strip():
            raise InvalidRequestError("Missing payload.expectedVersion.")
        changes = payload.get("changes")
        if not isinstance(changes, list) or not changes:
            raise InvalidRequestError("Missing payload.changes (non-empty array).")

        options = params.get("options")
        options = require_mapping(options, "options") if options is not None else {}
        return_state = parse_return_state(options.get("returnState"), default="full")
        hint = parse_target_hint(payload.get("targetHint"))

        counts = count_change_types(changes)
        unapplied = {
            "changesCount": len(changes),
            "appliedChanges": 0,
            "stateOmitted": 1,
            **counts,
        }
        mismatch = self.check_target(document, hint)
        if mismatch is not None:
            return {**mismatch, "appliedChanges": 0}, unapplied

        document.reveal_to_foreground()
        document.show_auxiliary_view("dab")
        try:
            result = document.apply_dab_changes(
                expected_version.strip(), changes, return_state, cancellation
            )
        except ApplyInProgressError as e:
            return self.with_target({**e.to_dict(), "appliedChanges": 0}, document), unapplied

        measurements = {
            "changesCount": len(changes),
            "appliedChanges": result.get("appliedChanges", 0),
            "stateOmitted": 0 if "config" in result else 1,
            **counts,
        }
        if not result["success"]:
            response = {"success": False}
            response.update({k: result[k] for k in _FAILURE_FIELDS if result.get(k) is not None})
            return self.with_target(response, document), measurements

        response = {**result, "receipt": counts_to_receipt(counts)}
        return self.with_target(response, document), measurements
