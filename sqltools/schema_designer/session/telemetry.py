"""
Best-effort usage telemetry.

Tools report one event per call. Telemetry must never change a tool's
outcome, so sink failures are logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TELEMETRY_VIEW = "SchemaDesignerTools"


class TelemetrySink(Protocol):
    def record(
        self,
        view: str,
        action: str,
        properties: dict[str, str],
        measurements: dict[str, float],
    ) -> None: ...


class LoggingTelemetrySink:
    """Writes telemetry events to the log."""

    def record(
        self,
        view: str,
        action: str,
        properties: dict[str, str],
        measurements: dict[str, float],
    ) -> None:
        logger.info(
            f"Telemetry {view}/{action}",
            extra={"view": view, "action": action, **properties, **measurements},
        )


class RecordingTelemetrySink:
    """Keeps events in memory."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def record(
        self,
        view: str,
        action: str,
        properties: dict[str, str],
        measurements: dict[str, float],
    ) -> None:
        self.events.append(
            {
                "view": view,
                "action": action,
                "properties": dict(properties),
                "measurements": dict(measurements),
            }
        )


def emit(
    sink: TelemetrySink | None,
    action: str,
    properties: dict[str, str],
    measurements: dict[str, float] | None = None,
) -> None:
    """Send one event, swallowing sink failures."""
    if sink is None:
        return
    try:
        sink.record(TELEMETRY_VIEW, action, properties, measurements or {})
    except Exception as e:
        logger.warning(f"Telemetry sink failed: {e}", extra={"action": action})
