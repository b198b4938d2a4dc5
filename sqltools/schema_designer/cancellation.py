"""
Cooperative cancellation for batch applies.

Edits are fast, in-memory operations, so cancellation is only observed
between batch items, never in the middle of one.
"""

from __future__ import annotations

import threading

from .errors import CancelledError


class CancellationToken:
    """Thread-safe cancellation flag passed in at the transport boundary.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.is_cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if cancellation was requested."""
        if self._event.is_set():
            raise CancelledError()
