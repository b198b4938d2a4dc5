"""
Session module for the schema designer - live documents and their hosts.

This module handles:
- DesignerDocument, the only place schema and DAB state are committed
- The injected DocumentRegistry of open sessions
- Original-value tracking, connection lookup and telemetry sinks

Invariants:
    - One in-flight apply per document
    - Only the active document is addressable by the tools
"""

from .connections import ConnectionInfo, ConnectionProvider, InMemoryConnectionProvider
from .document import DesignerDocument
from .original_values import CellKey, OriginalValueCache
from .registry import DocumentRegistry, make_session_key
from .telemetry import LoggingTelemetrySink, RecordingTelemetrySink, TelemetrySink, emit

__all__ = [
    "ConnectionInfo",
    "ConnectionProvider",
    "InMemoryConnectionProvider",
    "DesignerDocument",
    "CellKey",
    "OriginalValueCache",
    "DocumentRegistry",
    "make_session_key",
    "LoggingTelemetrySink",
    "RecordingTelemetrySink",
    "TelemetrySink",
    "emit",
]
