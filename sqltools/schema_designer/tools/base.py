"""
Shared plumbing for the schema designer tools.

Each tool accepts one JSON object per call and returns one JSON object.
ToolBase turns every raised DesignerToolError into a typed failure
response, wraps anything unexpected as ``internal_error``, attaches the
active target and sends one best-effort telemetry event per call.

Invariants:
    - call() never raises; every outcome is a response dict
    - Responses carry ``server``/``database`` whenever a document is active
    - Telemetry failures never change a response
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..cancellation import CancellationToken
from ..errors import (
    DesignerToolError,
    ErrorKind,
    InvalidRequestError,
    NoActiveDesignerError,
    TargetMismatchError,
)
from ..session.document import DesignerDocument
from ..session.registry import DocumentRegistry
from ..session.telemetry import TelemetrySink, emit

logger = logging.getLogger(__name__)

TARGET_MISMATCH_MESSAGE = "Active schema designer does not match targetHint."


def parse_target_hint(raw: Any) -> dict[str, str] | None:
    """Shape-check an optional ``targetHint``.

    Raises:
        InvalidRequestError: If present but not ``{server: str, database: str}``
    """
    if raw is None:
        return None
    if (
        not isinstance(raw, dict)
        or not isinstance(raw.get("server"), str)
        or not isinstance(raw.get("database"), str)
    ):
        raise InvalidRequestError(
            "targetHint must be an object with string 'server' and 'database'."
        )
    return {"server": raw["server"], "database": raw["database"]}


def matches_strict_target_hint(active: dict[str, str], hint: dict[str, str]) -> bool:
    """Both server and database must match, case-insensitively after trimming."""
    return all(
        (active.get(part) or "").strip().lower() == (hint.get(part) or "").strip().lower()
        for part in ("server", "database")
    )


class ToolBase:
    """Base class for JSON-in/JSON-out designer tools.

    Subclasses implement ``_run`` returning ``(response, measurements)``.
    """

    tool_name = ""
    telemetry_action = ""

    def __init__(self, registry: DocumentRegistry, telemetry: TelemetrySink | None = None) -> None:
        self.registry = registry
        self.telemetry = telemetry

    async def call(
        self, params: Any, cancellation: CancellationToken | None = None
    ) -> dict[str, Any]:
        """Run one tool call.

        Args:
            params: Tool input (``operation`` plus operation-specific fields)
            cancellation: Optional cancellation token for batch operations

        Returns:
            Response dict with ``success`` and, on failure, ``reason`` and ``message``
        """
        operation = params.get("operation") if isinstance(params, dict) else None
        measurements: dict[str, float] = {}
        try:
            if not isinstance(params, dict):
                raise InvalidRequestError("Tool input must be an object.")
            response, measurements = await self._run(str(operation), params, cancellation)
        except DesignerToolError as e:
            response = self.with_target(e.to_dict(), self.registry.active)
        except Exception as e:
            logger.exception(f"{self.tool_name} failed unexpectedly")
            response = self.with_target(
                DesignerToolError(str(e), reason=ErrorKind.INTERNAL_ERROR).to_dict(),
                self.registry.active,
            )

        self.send_telemetry(operation, response, measurements)
        return response

    async def invoke(self, params: Any, cancellation: CancellationToken | None = None) -> str:
        """Run one tool call and serialize the response."""
        return json.dumps(await self.call(params, cancellation))

    async def _run(
        self,
        operation: str,
        params: dict[str, Any],
        cancellation: CancellationToken | None,
    ) -> tuple[dict[str, Any], dict[str, float]]:
        raise NotImplementedError

    def require_active(self) -> DesignerDocument:
        document = self.registry.active
        if document is None:
            raise NoActiveDesignerError()
        return document

    def with_target(
        self, payload: dict[str, Any], document: DesignerDocument | None
    ) -> dict[str, Any]:
        if document is None:
            return payload
        return {**payload, "server": document.server, "database": document.database}

    def target_mismatch(self, document: DesignerDocument, hint: dict[str, str]) -> dict[str, Any]:
        error = TargetMismatchError(
            TARGET_MISMATCH_MESSAGE,
            details={
                "activeTarget": {"server": document.server, "database": document.database},
                "targetHint": hint,
            },
        )
        return self.with_target(error.to_dict(), document)

    def check_target(
        self, document: DesignerDocument, hint: dict[str, str] | None
    ) -> dict[str, Any] | None:
        """Return a target_mismatch response if ``hint`` names another target."""
        if hint is None:
            return None
        active = {"server": document.server, "database": document.database}
        if matches_strict_target_hint(active, hint):
            return None
        logger.info(
            f"{self.tool_name} target mismatch",
            extra={"designer": document.key, "hint_database": hint["database"]},
        )
        return self.target_mismatch(document, hint)

    def send_telemetry(
        self,
        operation: Any,
        response: dict[str, Any],
        measurements: dict[str, float],
    ) -> None:
        properties = {
            "operation": str(operation),
            "success": str(bool(response.get("success"))).lower(),
        }
        if response.get("reason"):
            properties["reason"] = response["reason"]
        emit(self.telemetry, self.telemetry_action, properties, measurements)
