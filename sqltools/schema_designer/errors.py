"""
Error types for the schema designer tools.

This module defines the failure taxonomy shared by both tool protocols:
- ErrorKind: Stable discriminator strings returned to callers
- DesignerToolError: Base exception carrying a kind, message and details
- One subclass per kind raised by parsers, resolvers and validators

Invariants:
    - ErrorKind values are part of the wire contract and never renamed
    - Every error carries a human-readable message
    - Errors raised below the tool facade are converted to typed results
      by the appliers; they never escape a tool call

How to change safely:
    - Add new kinds at the end of ErrorKind
    - Keep messages actionable (say what to send instead)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure reasons returned in the ``reason`` field of a response."""

    INVALID_REQUEST = "invalid_request"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    AMBIGUOUS_IDENTIFIER = "ambiguous_identifier"
    TARGET_MISMATCH = "target_mismatch"
    STALE_STATE = "stale_state"
    INTERNAL_ERROR = "internal_error"
    NO_ACTIVE_DESIGNER = "no_active_designer"
    APPLY_IN_PROGRESS = "apply_in_progress"
    CANCELLED = "cancelled"


class DesignerToolError(Exception):
    """Base exception for all schema designer tool errors.

    Attributes:
        message: Error message
        reason: Failure kind for programmatic handling
        details: Additional error context
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        reason: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.kind
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Render as the failure part of a response envelope."""
        return {
            "success": False,
            "reason": self.reason.value,
            "message": self.message,
            **self.details,
        }


class InvalidRequestError(DesignerToolError):
    """Malformed caller input.

    Raised when:
    - A required field is missing or has the wrong JSON type
    - A reference mixes id and name parts
    - An operation or edit discriminator is unknown
    """

    kind = ErrorKind.INVALID_REQUEST


class ValidationError(DesignerToolError):
    """Well-formed input that is invalid against the current document.

    Raised when:
    - A data type or enum value is not recognized
    - A name would collide with another entity
    - A set-valued field contains duplicates
    """

    kind = ErrorKind.VALIDATION_ERROR


class NotFoundError(DesignerToolError):
    """Referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, resource_type: str, reference: str) -> None:
        super().__init__(
            message,
            details={"resourceType": resource_type, "reference": reference},
        )
        self.resource_type = resource_type
        self.reference = reference


class AmbiguousIdentifierError(DesignerToolError):
    """A name reference matched more than one entity.

    Case-insensitive duplicates are a legal transient state (for example
    mid-rename), so callers should retry with an ``id`` reference.
    """

    kind = ErrorKind.AMBIGUOUS_IDENTIFIER

    def __init__(self, message: str, resource_type: str, reference: str, match_count: int) -> None:
        super().__init__(
            message,
            details={
                "resourceType": resource_type,
                "reference": reference,
                "matchCount": match_count,
            },
        )
        self.resource_type = resource_type
        self.reference = reference
        self.match_count = match_count


class StaleStateError(DesignerToolError):
    """Caller's expected version does not match the live document."""

    kind = ErrorKind.STALE_STATE

    def __init__(self, expected_version: str, current_version: str) -> None:
        super().__init__(
            "The document changed since it was last read. Re-read the state and retry.",
            details={"expectedVersion": expected_version, "currentVersion": current_version},
        )
        self.expected_version = expected_version
        self.current_version = current_version


class TargetMismatchError(DesignerToolError):
    """Active document is bound to a different server/database."""

    kind = ErrorKind.TARGET_MISMATCH


class ApplyInProgressError(DesignerToolError):
    """Another apply batch is already running against the same document."""

    kind = ErrorKind.APPLY_IN_PROGRESS

    def __init__(self, document_key: str) -> None:
        super().__init__(
            f"Another batch is already being applied to '{document_key}'. Retry after it completes.",
            details={"designerKey": document_key},
        )
        self.document_key = document_key


class CancelledError(DesignerToolError):
    """The caller cancelled the request between batch items."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "The request was cancelled.") -> None:
        super().__init__(message)


class NoActiveDesignerError(DesignerToolError):
    """No designer session is open in the foreground."""

    kind = ErrorKind.NO_ACTIVE_DESIGNER

    def __init__(
        self,
        message: str = "No active schema designer found. Please open a schema designer first.",
    ) -> None:
        super().__init__(message)
